"""Path resolution for kroki-embed.

Project configuration lives in ``.kroki/`` under the effective working
directory. KROKI_CWD overrides the working directory, which lets a host
processor convert documents outside the process cwd.
"""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_DIR_NAME = ".kroki"
CONFIG_FILE_NAME = "kroki-embed.yaml"


def get_effective_cwd() -> Path:
    """Get the effective working directory.

    Returns KROKI_CWD if set, else Path.cwd().

    Returns:
        Resolved Path for working directory
    """
    env_cwd = os.getenv("KROKI_CWD")
    if env_cwd:
        return Path(env_cwd).resolve()
    return Path.cwd()


def get_project_config_path() -> Path:
    """Default project config location (not necessarily existing)."""
    return get_effective_cwd() / PROJECT_DIR_NAME / CONFIG_FILE_NAME


def expand_path(path: str | Path, base: Path | None = None) -> Path:
    """Expand ``~`` and resolve a relative path against ``base``.

    Args:
        path: Path string
        base: Directory for relative paths (default: effective cwd)

    Returns:
        Absolute Path
    """
    expanded = Path(path).expanduser()
    if expanded.is_absolute():
        return expanded
    return ((base or get_effective_cwd()) / expanded).resolve()
