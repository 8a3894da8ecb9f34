"""Locate the library workspace a command operates on.

A workspace is the directory holding ``librarian.toml``, the ``.librarian/``
data directory, or both. Discovery walks up from the starting directory the
way git finds ``.git/``, so commands work from any subdirectory of a library
that has already been initialized, even one running without a config file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import NamedTuple

CONFIG_FILENAME = "librarian.toml"
CONFIG_ENV_VAR = "LIBRARIAN_CONFIG"
DATA_DIRNAME = ".librarian"


class Workspace(NamedTuple):
    root: Path
    config_path: Path | None


def _marks_workspace(directory: Path) -> bool:
    return (directory / CONFIG_FILENAME).is_file() or (directory / DATA_DIRNAME).is_dir()


def locate_workspace(start: Path | None = None) -> Workspace:
    """Find the nearest workspace at or above *start* (default: cwd).

    ``LIBRARIAN_CONFIG`` names the config file explicitly; its directory
    is then the workspace root. A missing file there is ignored. With no
    marker anywhere up the tree, *start* itself becomes the root so that
    the first write creates the library in place.
    """
    origin = (start or Path.cwd()).resolve()

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        explicit = Path(env_path)
        if explicit.is_file():
            return Workspace(root=explicit.resolve().parent, config_path=explicit)
        return Workspace(root=origin, config_path=None)

    for directory in (origin, *origin.parents):
        if _marks_workspace(directory):
            config = directory / CONFIG_FILENAME
            return Workspace(root=directory, config_path=config if config.is_file() else None)
    return Workspace(root=origin, config_path=None)
