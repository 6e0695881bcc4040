"""Shared file utilities for npl-lsm.

Provides common utilities used by config, the version registry and the
binary manager:
- get_app_dir: OS-appropriate configuration directory
- set_secure_permissions: Owner-only file/directory permissions
- is_owner_executable / make_executable: Binary permission handling
- write_json_file / read_json_file: Whole-file JSON persistence
"""

from __future__ import annotations

import json
import os
import stat
import sys
from pathlib import Path
from typing import Any

import click

from npl_lsm.constants import APP_NAME

__all__ = [
    # App directory
    "get_app_dir",
    # Permissions
    "set_secure_permissions",
    "is_owner_executable",
    "make_executable",
    # JSON persistence
    "read_json_file",
    "write_json_file",
]

# Permission bits added when a downloaded binary is not executable (0o755 semantics)
_EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def get_app_dir() -> Path:
    """Get the OS-appropriate application configuration directory.

    Uses click.get_app_dir() which returns:
    - macOS: ~/Library/Application Support/npl-lsm
    - Linux: ~/.config/npl-lsm (XDG compliant)
    - Windows: C:\\Users\\<user>\\AppData\\Roaming\\npl-lsm

    Returns:
        Path to the application directory.
    """
    return Path(click.get_app_dir(APP_NAME))


def set_secure_permissions(path: Path, *, is_directory: bool = False) -> None:
    """Set secure permissions on file or directory.

    Sets permissions to restrict access to owner only:
    - Directory: 0o700 (rwx------)
    - File: 0o600 (rw-------)

    Does nothing on Windows. Silently ignores permission errors
    (some systems don't allow permission changes).

    Args:
        path: Path to file or directory.
        is_directory: If True, use directory permissions (0o700).
    """
    if sys.platform == "win32":
        return

    try:
        mode = 0o700 if is_directory else 0o600
        path.chmod(mode)
    except OSError:
        pass  # Permission changes might fail on some systems


def is_owner_executable(mode: int) -> bool:
    """Check the owner execute bit of an st_mode value."""
    return bool(mode & stat.S_IXUSR)


def make_executable(path: Path, current_mode: int) -> None:
    """Add read and execute bits for everyone, keeping existing bits.

    Args:
        path: File to modify.
        current_mode: The file's current st_mode.

    Raises:
        OSError: If chmod fails.
    """
    new_mode = stat.S_IMODE(current_mode) | stat.S_IRUSR | stat.S_IWUSR | _EXECUTABLE_BITS
    new_mode |= stat.S_IRGRP | stat.S_IROTH
    os.chmod(path, new_mode)


def read_json_file(file_path: Path) -> Any:
    """Read and parse a JSON file.

    Args:
        file_path: Path to the JSON file.

    Returns:
        Parsed JSON value.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        json.JSONDecodeError: If content is not valid JSON.
        OSError: If the file cannot be read.
    """
    with file_path.open(encoding="utf-8") as f:
        return json.load(f)


def write_json_file(file_path: Path, data: Any, *, secure: bool = False) -> None:
    """Overwrite a JSON file with indented, human-readable content.

    Creates the parent directory if needed. The file is rewritten wholesale.

    Args:
        file_path: Destination path.
        data: JSON-serializable value.
        secure: If True, restrict the file to owner read/write.

    Raises:
        OSError: If the directory or file cannot be written.
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with file_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")
    if secure:
        set_secure_permissions(file_path)
