from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest

from ruby_discovery import Config, ConfigError, NoOpCache, pin

if TYPE_CHECKING:
    from pathlib import Path


def _config(current_dir: Path, project_dir: Path | None = None) -> Config:
    return Config(ruby_dirs=[], cache=NoOpCache(), current_dir=current_dir, project_dir=project_dir)


def test_pin_creates_ruby_version(tmp_path: Path) -> None:
    stream = io.StringIO()
    assert pin(_config(tmp_path), "3.4.1", stream) == "3.4.1"
    assert (tmp_path / ".ruby-version").read_text(encoding="utf-8") == "3.4.1\n"
    assert stream.getvalue() == f"{tmp_path} pinned to Ruby 3.4.1\n"


def test_pin_overwrites_in_project_dir(tmp_path: Path) -> None:
    (tmp_path / ".ruby-version").write_text("3.3.0\n", encoding="utf-8")
    nested = tmp_path / "lib"
    nested.mkdir()

    pin(_config(nested, tmp_path), "jruby-9.4.12.0", io.StringIO())

    assert (tmp_path / ".ruby-version").read_text(encoding="utf-8") == "jruby-9.4.12.0\n"
    assert not (nested / ".ruby-version").exists()


def test_pin_show(tmp_path: Path) -> None:
    (tmp_path / ".ruby-version").write_text("3.3.0\n", encoding="utf-8")
    stream = io.StringIO()
    assert pin(_config(tmp_path, tmp_path), stream=stream) == "3.3.0"
    assert stream.getvalue() == f"{tmp_path} is pinned to Ruby 3.3.0\n"


def test_pin_show_without_project(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="No project was found in the parents of"):
        pin(_config(tmp_path), stream=io.StringIO())


def test_pin_then_show(tmp_path: Path) -> None:
    config = _config(tmp_path)
    pin(config, "3.4.1", io.StringIO())
    config.project_dir = tmp_path
    assert pin(config, stream=io.StringIO()) == "3.4.1"
