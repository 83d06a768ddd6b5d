from __future__ import annotations

from .factory import createApp

__all__ = ["createApp"]
