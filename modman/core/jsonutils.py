# modman/core/jsonutils.py
from __future__ import annotations

import base64
import json
import os
from collections.abc import Mapping, Iterable
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import json5
from pydantic import BaseModel

__all__ = ["safeJsonDumps", "tryJSONify", "readJsonFile", "writeJsonFile", "fixJson"]



# ------------------------------------------------
#                JSON serialization
# ------------------------------------------------

def safeJsonDumps(obj: Any) -> str:
    """
    Serializes an object to a compact JSON string.
    Uses deterministic separators (",", ":") and disallows NaN/infinity.
    If direct JSON encoding fails, falls back to tryJSONify (circular/depth-safe) and retries.
    """
    try:
        return json.dumps(obj, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except Exception:
        # Hardened fallback
        safePayload = tryJSONify(obj, _maxDepth=None)
        return json.dumps(safePayload, ensure_ascii=False, allow_nan=False, separators=(",", ":"))



def tryJSONify(obj: Any, *, _seen: set[int] | None = None, _depth: int = 0, _maxDepth: int | None = 10) -> Any:
    """
    Attempts to make any object JSON-serializable.

    Rules:
      • Basic scalars (None, bool, int, float, str) are preserved.
      • pydantic models → model_dump(mode="json").
      • Exceptions → {"type", "message"}.
      • bytes/bytearray/memoryview → base64 {"__b64__":"..."}.
      • date/datetime → ISO8601 string.
      • Enum → its value. Path → string path.
      • dataclasses → dict; sets/tuples/iterables → list; mappings → dict with str keys.
      • fallback → repr(obj)
    """
    if _seen is None:
        _seen = set()

    oid = id(obj)
    if oid in _seen:
        return f"<circular_ref {type(obj).__name__}>"
    if isinstance(_maxDepth, int) and _depth > _maxDepth:
        return f"<max_depth_exceeded {type(obj).__name__}>"

    # Primitives
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj

    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")

    if isinstance(obj, BaseException):
        return {"type": type(obj).__name__, "message": str(obj)}

    if isinstance(obj, (bytes, bytearray, memoryview)):
        return {"__b64__": base64.b64encode(bytes(obj)).decode("ascii")}

    if isinstance(obj, (date, datetime)):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return tryJSONify(obj.value, _seen=_seen, _depth=_depth + 1, _maxDepth=_maxDepth)

    if isinstance(obj, Path):
        return str(obj)

    # Only containers on the current path count as seen
    _seen.add(oid)
    try:
        return _jsonifyContainer(obj, _seen=_seen, _depth=_depth, _maxDepth=_maxDepth)
    finally:
        _seen.discard(oid)



def _jsonifyContainer(obj: Any, *, _seen: set[int], _depth: int, _maxDepth: int | None) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        return tryJSONify(
            {f.name: getattr(obj, f.name) for f in fields(obj)},
            _seen=_seen, _depth=_depth + 1, _maxDepth=_maxDepth,
        )

    if isinstance(obj, Mapping):
        return {
            str(key): tryJSONify(value, _seen=_seen, _depth=_depth + 1, _maxDepth=_maxDepth) for key, value in obj.items()
        }

    if isinstance(obj, Iterable):
        return [tryJSONify(value, _seen=_seen, _depth=_depth + 1, _maxDepth=_maxDepth) for value in obj]

    # Last-ditch representation
    return repr(obj)



# ------------------------------------------------
#                 JSON files on disk
# ------------------------------------------------

def fixJson(text: str) -> str:
    """Strips a UTF-8 BOM and surrounding whitespace. json5 deals with trailing commas and comments."""
    return text.lstrip("\ufeff").strip()



def readJsonFile(path: Path) -> Any:
    """
    Reads a JSON document leniently (BOM, trailing commas, comments).
    Raises OSError when the file can't be read and ValueError when it can't be parsed.
    """
    text = Path(path).read_text(encoding="utf-8-sig")
    return json5.loads(fixJson(text))



def writeJsonFile(path: Path, data: Any, *, pretty: bool = True) -> None:
    """
    Writes strict JSON atomically (temp file + replace) so readers never see a torn file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(data, ensure_ascii=False, indent=2 if pretty else None)
    tmpPath = path.with_name(f".{path.name}.tmp")
    tmpPath.write_text(text, encoding="utf-8")
    os.replace(tmpPath, path)
