"""Core shared infrastructure for debugmemory.

This package contains foundational utilities:
    - config: Memory configuration management
    - console: Rich console output and logging
    - result: Error handling patterns
"""

from __future__ import annotations

from . import config, console

__all__ = ["config", "console"]
