from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console
from typer.testing import CliRunner

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
for _path in (SRC, ROOT):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: Any) -> Path:
    """Point config and memory to temp paths so tests don't touch user state."""
    cfg_path = tmp_path / "config.toml"
    monkeypatch.setenv("DEBUG_MEMORY_CONFIG", str(cfg_path))
    monkeypatch.setenv("DEBUG_MEMORY_MEMORY_PATH", str(tmp_path / "memory"))
    for key in list(os.environ):
        if key.startswith("DEBUG_MEMORY_") and key not in {
            "DEBUG_MEMORY_CONFIG",
            "DEBUG_MEMORY_MEMORY_PATH",
        }:
            monkeypatch.delenv(key, raising=False)
    return cfg_path


@pytest.fixture
def memory_dir(tmp_path: Path) -> Path:
    return tmp_path / "memory"


@pytest.fixture(autouse=True)
def capture_console(monkeypatch: Any) -> Console:
    """Use an in-memory Rich console during tests."""
    test_console = Console(record=True, width=200)
    import debugmemory.commands.memory as memory_commands
    import debugmemory.core.console as core_console
    import debugmemory.main as dmem_main

    monkeypatch.setattr(core_console, "console", test_console)
    monkeypatch.setattr(dmem_main, "console", test_console)
    monkeypatch.setattr(memory_commands, "console", test_console)
    return test_console
