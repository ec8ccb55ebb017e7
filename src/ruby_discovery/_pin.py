from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from ._config import VERSION_FILE
from ._errors import ConfigError

if TYPE_CHECKING:
    from pathlib import Path
    from typing import TextIO

    from ._config import Config


def pin(config: Config, version: str | None = None, stream: TextIO | None = None) -> str:
    """Show the project's pinned ruby, or pin it to *version*; returns the pinned request text."""
    stream = sys.stdout if stream is None else stream
    if version is None:
        return show_pinned_ruby(config, stream)
    set_pinned_ruby(config, version, stream)
    return version


def set_pinned_ruby(config: Config, version: str, stream: TextIO) -> Path:
    project_dir = config.project_dir if config.project_dir is not None else config.current_dir
    ruby_version_path = project_dir / VERSION_FILE
    ruby_version_path.write_text(f"{version}\n", encoding="utf-8")
    stream.write(f"{project_dir} pinned to Ruby {version}\n")
    return ruby_version_path


def show_pinned_ruby(config: Config, stream: TextIO) -> str:
    if config.project_dir is None:
        msg = f"No project was found in the parents of {config.current_dir}"
        raise ConfigError(msg)
    ruby_version = (config.project_dir / VERSION_FILE).read_text(encoding="utf-8").strip()
    stream.write(f"{config.project_dir} is pinned to Ruby {ruby_version}\n")
    return ruby_version


__all__ = [
    "pin",
    "set_pinned_ruby",
    "show_pinned_ruby",
]
