"""CLI command modules for dmem.

    - memory: search, check, extract and stats over the incident memory
"""

from __future__ import annotations

from . import memory

__all__ = ["memory"]
