# SPDX-License-Identifier: LGPL-3.0-or-later
import logging
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from virtconn.core.exceptions import Fatal
from virtconn.core.utils import U

_LOG = logging.getLogger("virtconn_test.utils")


class TestUtilsFileOperations(unittest.TestCase):
    """Test utility file operations."""

    def test_ensure_dir_creates_directory(self):
        with tempfile.TemporaryDirectory() as td:
            new_dir = Path(td) / "subdir" / "nested"

            U.ensure_dir(new_dir)

            self.assertTrue(new_dir.is_dir())

    def test_ensure_dir_handles_existing(self):
        with tempfile.TemporaryDirectory() as td:
            existing = Path(td) / "existing"
            existing.mkdir()

            U.ensure_dir(existing)

            self.assertTrue(existing.exists())


class TestFileNames(unittest.TestCase):
    def test_plain_name_unchanged(self):
        self.assertEqual(U.sanitize_file_name("lab-esx_01.prod"), "lab-esx_01.prod")

    def test_path_separators_replaced(self):
        self.assertEqual(U.sanitize_file_name("../../etc/passwd"), "_.._etc_passwd")

    def test_no_hidden_files(self):
        self.assertFalse(U.sanitize_file_name(".hidden").startswith("."))

    def test_empty_name(self):
        self.assertEqual(U.sanitize_file_name(""), "_")
        self.assertEqual(U.sanitize_file_name("..."), "_")

    def test_spaces_collapse(self):
        self.assertEqual(U.sanitize_file_name("my  esx host"), "my_esx_host")

    def test_basename(self):
        self.assertEqual(U.basename("/DC1/host/rack1/esx01"), "esx01")
        self.assertEqual(U.basename("esx01"), "esx01")
        self.assertEqual(U.basename("/DC1/"), "DC1")
        self.assertEqual(U.basename(None), "")


class TestRunCmd(unittest.TestCase):
    def test_capture_output(self):
        res = U.run_cmd(_LOG, [sys.executable, "-c", "print('hello')"], capture=True)
        self.assertEqual(res.stdout.strip(), "hello")

    def test_failure_raises_called_process_error(self):
        with self.assertRaises(subprocess.CalledProcessError):
            U.run_cmd(_LOG, [sys.executable, "-c", "import sys; sys.exit(3)"], capture=True)

    def test_failure_fatal(self):
        with self.assertRaises(Fatal) as cm:
            U.run_cmd(_LOG, [sys.executable, "-c", "import sys; sys.exit(3)"], capture=True, fatal=True)
        self.assertEqual(cm.exception.code, 3)

    def test_no_check(self):
        res = U.run_cmd(_LOG, [sys.executable, "-c", "import sys; sys.exit(2)"], check=False, capture=True)
        self.assertEqual(res.returncode, 2)

    def test_die_raises_fatal(self):
        with self.assertRaises(Fatal) as cm:
            U.die(_LOG, "boom", 7)
        self.assertEqual(cm.exception.code, 7)
        self.assertEqual(cm.exception.msg, "boom")


if __name__ == "__main__":
    unittest.main()
