# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/core/file_ops.py
"""
Atomic file operation utilities.

Profiles are small JSON documents; they are always written through a temp
file in the target directory followed by os.replace(), so a reader sees
either the previous content or the new content, never a torn file.
"""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional


@contextmanager
def atomic_write(
    target_path: Path,
    *,
    suffix: str = ".part",
    dir: Optional[Path] = None,
    file_mode: Optional[int] = None,
    delete_on_error: bool = True,
) -> Generator[Path, None, None]:
    """
    Context manager for atomic file writes using temporary file + rename.

    Creates a temporary file, yields its path for writing, then atomically
    renames it to the target path on success. Cleans up temp file on failure.

    Args:
        target_path: Final destination path
        suffix: Suffix for temporary file (default: ".part")
        dir: Directory for temp file (default: target_path.parent)
        file_mode: chmod applied to the temp file before the rename
        delete_on_error: Delete temp file if exception occurs (default: True)

    Yields:
        Path to temporary file for writing
    """
    target_path = Path(target_path)
    temp_dir = Path(dir) if dir else target_path.parent

    temp_dir.mkdir(parents=True, exist_ok=True)

    # mkstemp creates the file 0600 already
    fd, temp_name = tempfile.mkstemp(
        suffix=suffix,
        prefix=f".{target_path.name}.",
        dir=str(temp_dir),
    )
    temp_path = Path(temp_name)

    try:
        os.close(fd)
        yield temp_path

        if file_mode is not None:
            os.chmod(temp_path, file_mode)
        os.replace(temp_path, target_path)

    except Exception:
        if delete_on_error:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                pass
        raise


def atomic_write_text(target_path: Path, text: str, *, file_mode: Optional[int] = 0o600) -> None:
    """Write text to target_path atomically (utf-8)."""
    with atomic_write(target_path, file_mode=file_mode) as tmp:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())


def safe_unlink(path: Path, missing_ok: bool = True) -> None:
    """
    Delete a file, optionally ignoring if it doesn't exist.
    """
    try:
        Path(path).unlink()
    except FileNotFoundError:
        if not missing_ok:
            raise
