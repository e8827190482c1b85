"""Executable, bundled-resource and workspace path helpers."""
import os
import sys
from typing import Optional

from settings import IMAGE_SUBDIR, SIDE_FILE_NAME, WORKSPACE_DATA_DIR


def is_frozen() -> bool:
    """Return True when running from a PyInstaller bundle."""
    return getattr(sys, "frozen", False) is True


def get_exe_dir() -> str:
    """Bundle: directory of the exe; source: directory of this file."""
    if is_frozen():
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.abspath(__file__))


def resource_path(name: str) -> str:
    """Absolute path of a bundled static asset (onefile bundles unpack to _MEIPASS)."""
    base = getattr(sys, "_MEIPASS", None) if is_frozen() else None
    return os.path.join(base or get_exe_dir(), name)


def resolve_workspace(candidate: Optional[str]) -> Optional[str]:
    """Normalize a configured workspace root; None when it does not exist."""
    if not candidate or not str(candidate).strip():
        return None
    root = os.path.abspath(os.path.expanduser(str(candidate).strip()))
    return root if os.path.isdir(root) else None


def image_rel_dir() -> str:
    """Workspace-relative image directory, always with forward slashes."""
    return f"{WORKSPACE_DATA_DIR}/{IMAGE_SUBDIR}"


def image_dir(workspace: str) -> str:
    return os.path.join(workspace, WORKSPACE_DATA_DIR, IMAGE_SUBDIR)


def side_file(workspace: str) -> str:
    return os.path.join(workspace, WORKSPACE_DATA_DIR, SIDE_FILE_NAME)
