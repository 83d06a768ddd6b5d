# modman/core/ids.py
from __future__ import annotations

import uuid
import uuid6

__all__ = ["uuidv7", "uuid_10"]



def uuidv7(*, prefix: str = "") -> str:
    """Returns a UUIDv7 string (time-ordered), optionally prefixed."""
    return prefix + str(uuid6.uuid7())



def uuid_10(prefix = "") -> str:
    """Returns a short ID with 10 chars from a UUIDv4, optionally prefixed."""
    if not isinstance(prefix, str):
        raise TypeError("prefix must be a str")
    return f"{prefix}{uuid.uuid4().hex[:10]}"
