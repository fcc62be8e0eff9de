"""File management with idempotent operations and templating."""

import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from jinja2 import Template

from .paths import TEMPLATES_DIR


def read_file(path: Union[str, Path]) -> str:
    """
    Read file content, returning an empty string for a missing file.

    This is exported for use by other modules.
    """
    path = Path(path)
    if not path.exists():
        return ""
    return path.read_text()


def ensure_dir(path: Union[str, Path], mode: Optional[int] = None) -> bool:
    """
    Idempotently ensure a directory exists with correct permissions.

    Returns:
        True if any changes were made
    """
    path = Path(path)
    changed = False

    if not path.exists():
        print(f"Creating directory: {path}")
        path.mkdir(parents=True, exist_ok=True)
        changed = True

    if mode is not None and (path.stat().st_mode & 0o777) != mode:
        path.chmod(mode)
        changed = True

    return changed


def ensure_file(
    path: Union[str, Path],
    content: str,
    mode: Optional[int] = None,
) -> bool:
    """
    Idempotently ensure a file exists with specific content.

    Args:
        path: Target file path
        content: Desired file content
        mode: File permissions (e.g., 0o644)

    Returns:
        True if any changes were made
    """
    path = Path(path)
    changed = False

    if read_file(path) != content or not path.exists():
        print(f"Writing file: {path}")

        # Atomic write: temp file in the same directory, then rename
        tmp_path = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=path.parent,
                delete=False,
                suffix=".tmp",
            ) as tmp:
                tmp.write(content)
                tmp_path = tmp.name
            if path.exists():
                shutil.copymode(path, tmp_path)
            Path(tmp_path).replace(path)
            tmp_path = None
        finally:
            if tmp_path and Path(tmp_path).exists():
                Path(tmp_path).unlink()
        changed = True

    if mode is not None and (path.stat().st_mode & 0o777) != mode:
        print(f"Setting mode {oct(mode)} on {path}")
        path.chmod(mode)
        changed = True

    if not changed:
        print(f"File {path} already up to date")

    return changed


def remove_file(path: Union[str, Path]) -> bool:
    """
    Idempotently remove a file.

    Returns:
        True if the file existed and was removed
    """
    path = Path(path)
    if not path.exists():
        print(f"File {path} already absent")
        return False
    print(f"Removing file: {path}")
    path.unlink()
    return True


def backup_file(
    path: Union[str, Path],
    backup_dir: Union[str, Path],
    timestamp: Optional[str] = None,
) -> Optional[Path]:
    """
    Copy a file into a backup directory with a timestamped name.

    Backups are named <backup_dir>/<name>-YYMMDD_HHMMSS.backup and keep the
    original file's permissions.

    Returns:
        Path of the backup, or None if the source does not exist
    """
    path = Path(path)
    if not path.is_file():
        return None

    backup_dir = Path(backup_dir)
    ensure_dir(backup_dir)
    timestamp = timestamp or datetime.now().strftime("%y%m%d_%H%M%S")
    backup_path = backup_dir / f"{path.name}-{timestamp}.backup"
    shutil.copy2(path, backup_path)
    print(f"Backed up {path} -> {backup_path}")
    return backup_path


def render_template(template_name: Union[str, Path], context: dict) -> str:
    """
    Render a template with Jinja2.

    Args:
        template_name: Template file name under the package templates
            directory, or an absolute path
        context: Dictionary of variables to substitute

    Returns:
        Rendered template content
    """
    template_path = TEMPLATES_DIR / template_name
    template = Template(template_path.read_text(), keep_trailing_newline=True)
    return template.render(**context)


def is_readable(path: Union[str, Path]) -> bool:
    """Check whether a path exists and can be read by this process."""
    path = Path(path)
    return path.exists() and os.access(path, os.R_OK)
