# modman/progress/__init__.py
from __future__ import annotations

from .bar import ProgressBar
from .payloads import (
    PROGRESS_CHANNEL,
    ProgressType,
    ProgressAction,
    ProgressStartPayload,
    ProgressIncrementPayload,
    ProgressMessagePayload,
    ProgressFinishPayload,
    UnknownPayload,
    ProgressPayload,
    parseProgressLine,
    encodeProgressPayload,
)
from .tracker import ProgressBarState, ProgressTracker

__all__ = [
    "PROGRESS_CHANNEL",
    "ProgressBar",
    "ProgressType",
    "ProgressAction",
    "ProgressStartPayload",
    "ProgressIncrementPayload",
    "ProgressMessagePayload",
    "ProgressFinishPayload",
    "UnknownPayload",
    "ProgressPayload",
    "parseProgressLine",
    "encodeProgressPayload",
    "ProgressBarState",
    "ProgressTracker",
]
