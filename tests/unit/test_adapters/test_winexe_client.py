# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import subprocess
from pathlib import Path

import pytest
from virtconn.core.exceptions import CredentialFailure, CredentialVerificationFailed, RemoteCommandError
from virtconn.core.utils import U
from virtconn.remote.winexe_client import WinexeClient, winexe_client_factory


class RunRecorder:
    def __init__(self, rc=0, stdout="", stderr="", raises=None):
        self.rc = rc
        self.stdout = stdout
        self.stderr = stderr
        self.raises = raises
        self.calls = []

    def __call__(self, logger, cmd, **kw):
        auth = Path(cmd[cmd.index("-A") + 1])
        self.calls.append({"argv": list(cmd), "auth_path": auth, "auth_text": auth.read_text(encoding="utf-8"), **kw})
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(cmd, self.rc, self.stdout, self.stderr)


@pytest.fixture
def client(logger):
    return WinexeClient("hv01.corp", "Administrator", "Pa55!", "CORP", logger=logger)


@pytest.mark.security
class TestCredentialsHandling:
    def test_password_not_on_argv(self, client, monkeypatch):
        rec = RunRecorder(stdout="ok")
        monkeypatch.setattr(U, "run_cmd", rec)

        assert client.run_cli_command("winrm quickconfig -q") == "ok"

        call = rec.calls[0]
        assert not any("Pa55!" in a for a in call["argv"])
        assert call["argv"][0] == "winexe"
        assert call["argv"][3] == "//hv01.corp"
        assert call["argv"][4] == "cmd.exe /c \"winrm quickconfig -q\""
        assert "password = Pa55!" in call["auth_text"]
        assert "domain = CORP" in call["auth_text"]
        assert not call["auth_path"].exists()

    def test_auth_file_removed_on_failure(self, client, monkeypatch):
        rec = RunRecorder(raises=subprocess.TimeoutExpired(["winexe"], 5))
        monkeypatch.setattr(U, "run_cmd", rec)

        with pytest.raises(RemoteCommandError):
            client.run_cli_command("dir", timeout=5)

        assert not rec.calls[0]["auth_path"].exists()

    def test_failure_output_stripped(self, client, monkeypatch):
        monkeypatch.setattr(U, "run_cmd", RunRecorder(rc=1, stderr="error near Pa55! in script"))

        with pytest.raises(RemoteCommandError) as ei:
            client.run_powershell_command("Start-Service MSiSCSI")

        assert "Pa55!" not in str(ei.value)
        assert "Pa55!" not in ei.value.context["output"]
        assert "error near" in ei.value.context["output"]


@pytest.mark.unit
class TestWinexeClient:
    def test_powershell_wrapping(self, client, monkeypatch):
        rec = RunRecorder(stdout="10.0.17763.0\r\n")
        monkeypatch.setattr(U, "run_cmd", rec)

        out = client.run_powershell_command("[System.Environment]::OSVersion.Version.ToString()")

        assert out.strip() == "10.0.17763.0"
        remote = rec.calls[0]["argv"][4]
        assert remote.startswith("powershell.exe -NonInteractive -NoProfile -Command")
        assert rec.calls[0]["check"] is False
        assert rec.calls[0]["timeout"] == 120

    def test_logon_failure(self, client, monkeypatch):
        monkeypatch.setattr(U, "run_cmd", RunRecorder(rc=1, stderr="ERROR: Failed to open connection - NT_STATUS_LOGON_FAILURE"))

        with pytest.raises(CredentialVerificationFailed) as ei:
            client.run_cli_command("winrm quickconfig -q")
        assert ei.value.reason is CredentialFailure.INVALID_LOGIN

    def test_missing_binary(self, logger):
        client = WinexeClient("hv01", "u", "p", winexe_bin="/nonexistent/winexe", logger=logger)
        with pytest.raises(RemoteCommandError):
            client.run_cli_command("dir")

    def test_factory(self, logger):
        make = winexe_client_factory(winexe_bin="/opt/winexe", logger=logger)
        client = make("h", "u", "p", None)
        assert client.winexe_bin == "/opt/winexe"
        assert client.domain is None
