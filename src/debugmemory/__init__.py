"""debugmemory - incident retrieval and pattern mining for debugging memory.

This package provides the engine behind the `dmem` command-line tool:
multi-strategy incident search, pattern extraction from incident clusters,
and fusion of heterogeneous results into one ranked list.

Exports:
    __version__: Package version string.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.4.0"
