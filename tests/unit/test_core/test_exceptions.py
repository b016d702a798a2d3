# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for exception handling and secret redaction."""
from __future__ import annotations

import pytest
from virtconn.core.exceptions import (
    REDACTED,
    CredentialFailure,
    CredentialVerificationFailed,
    DuplicateConnectionName,
    Fatal,
    SanitizedError,
    VirtConnError,
    VMwareError,
    format_exception_for_cli,
    strip_secrets,
    wrap_fatal,
)
from virtconn.core.secret import Secret


@pytest.mark.unit
class TestExceptionHierarchy:
    """Test exception class hierarchy and basic functionality."""

    def test_base_exception_creation(self):
        err = VirtConnError(code=1, msg="Test error")

        assert err.code == 1
        assert err.msg == "Test error"
        assert err.cause is None
        assert err.context == {}

    def test_fatal_exception(self):
        err = Fatal(code=2, msg="Fatal error")

        assert isinstance(err, VirtConnError)
        assert err.code == 2

    def test_vmware_exception(self):
        err = VMwareError(msg="vSphere connection failed")

        assert isinstance(err, VirtConnError)
        assert "vSphere" in str(err)

    def test_registry_errors_are_project_errors(self):
        err = DuplicateConnectionName(code=2, msg="Connection lab already exists.", context={"name": "lab"})

        assert isinstance(err, VirtConnError)
        assert str(err) == "Connection lab already exists."

    def test_exception_with_context(self):
        err = VirtConnError(code=1, msg="Error").with_context(name="lab", operation="save")

        assert err.context["name"] == "lab"
        assert err.context["operation"] == "save"

    def test_exit_code_clamped(self):
        assert VirtConnError(code=300, msg="x").code == 255
        assert VirtConnError(code=-4, msg="x").code == 1
        assert VirtConnError(code="nope", msg="x").code == 1

    def test_message_is_single_line(self):
        err = VirtConnError(code=1, msg="line one\nline two")
        assert str(err) == "line one line two"

    def test_wrap_fatal(self):
        cause = OSError("disk full")
        err = wrap_fatal("Cannot save", cause, code=4, path="/tmp/x")

        assert isinstance(err, Fatal)
        assert err.cause is cause
        assert err.context == {"path": "/tmp/x"}

    def test_credential_failure_reason_in_dict(self):
        err = CredentialVerificationFailed(code=3, msg="bad", reason=CredentialFailure.INVALID_LOGIN)
        assert err.to_dict()["reason"] == "invalid-login"


@pytest.mark.security
class TestSecretRedaction:
    """Test that secrets are redacted from error contexts."""

    def test_password_redacted_in_context(self):
        err = VirtConnError(code=1, msg="Auth failed").with_context(
            username="admin", password="super_secret_123", host="vcenter.local"
        )

        d = err.to_dict()

        assert d["context"]["password"] == REDACTED
        assert d["context"]["username"] == "admin"
        assert d["context"]["host"] == "vcenter.local"

    def test_secret_object_redacted_under_any_key(self):
        err = VirtConnError(code=1, msg="x", context={"value": Secret("hunter2")})
        assert err.to_dict()["context"]["value"] == REDACTED

    def test_nested_context_redacted(self):
        err = VirtConnError(code=1, msg="x", context={"params": {"server": "esx", "password": "pw"}})
        assert err.to_dict()["context"]["params"] == {"server": "esx", "password": REDACTED}

    def test_cli_format_hides_password(self):
        err = VirtConnError(code=1, msg="failed", context={"password": "pw123"})
        out = format_exception_for_cli(err, verbose=2)

        assert "pw123" not in out
        assert "<redacted>" in out

    def test_strip_secrets_longest_first(self):
        text = "login abc and abcdef failed"
        assert strip_secrets(text, ["abc", Secret("abcdef")]) == f"login {REDACTED} and {REDACTED} failed"

    def test_strip_secrets_ignores_empty(self):
        assert strip_secrets("nothing here", [None, "", Secret("")]) == "nothing here"

    def test_sanitized_error_drops_original(self):
        original = RuntimeError("Login failed for root with password s3cret!")
        sanitized = SanitizedError.from_exception(original, [Secret("s3cret!")])

        assert "s3cret!" not in str(sanitized)
        assert "RuntimeError" in str(sanitized)
        assert sanitized.cause is None
        assert sanitized.__cause__ is None
