"""HardbanLab: state core for a creative-projects dashboard.

The package keeps releases, books and tasks in a single store, tracks
unsaved edits per editing surface, guards navigation away from dirty
surfaces and pushes full snapshots to a persistence backend.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
