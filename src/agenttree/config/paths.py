"""Platform-aware configuration path resolution.

Config file locations:
- Windows: %PROGRAMDATA% (system), %APPDATA% (user)
- Unix: /etc/agenttree/ (system), ~/.config/agenttree/ or ~/.agenttree/ (user)
- Project: $workspace/.agenttree/
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "agenttree"
PROJECT_DIR = ".agenttree"


def get_system_config_path() -> Path | None:
    """Get system-level config path. The file may not exist."""
    if sys.platform == "win32":
        program_data = os.environ.get("PROGRAMDATA")
        if program_data:
            return Path(program_data) / APP_NAME / CONFIG_FILENAME
        return None
    return Path("/etc") / APP_NAME / CONFIG_FILENAME


def get_user_config_path() -> Path | None:
    """Get user-level config path. The file may not exist.

    On Unix, XDG_CONFIG_HOME wins, then ~/.config if it exists, then
    ~/.agenttree.
    """
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME / CONFIG_FILENAME
        return None

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME / CONFIG_FILENAME

    home = Path.home()
    xdg_default = home / ".config"
    if xdg_default.exists():
        return xdg_default / APP_NAME / CONFIG_FILENAME

    return home / PROJECT_DIR / CONFIG_FILENAME


def get_project_dir(workspace: str | os.PathLike[str]) -> Path:
    """Get the per-project state directory ($workspace/.agenttree)."""
    return Path(workspace) / PROJECT_DIR


def get_project_config_path(workspace: str | os.PathLike[str]) -> Path:
    """Get project-level config path. The file may not exist."""
    return get_project_dir(workspace) / CONFIG_FILENAME


def get_config_paths(workspace: str | os.PathLike[str] | None = None) -> list[Path]:
    """Get all config paths, lowest priority first (system, user, project)."""
    paths: list[Path] = []

    system_path = get_system_config_path()
    if system_path:
        paths.append(system_path)

    user_path = get_user_config_path()
    if user_path:
        paths.append(user_path)

    if workspace:
        paths.append(get_project_config_path(workspace))

    return paths
