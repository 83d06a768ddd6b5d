# modman/install/download.py
from __future__ import annotations
import logging
from pathlib import Path

import httpx

from modman.app.settings import HttpSettings
from modman.core.errors import FilesystemError, NetworkError
from modman.core.ids import uuid_10, uuidv7
from modman.http.client import HTTPError, download
from modman.progress import ProgressAction, ProgressBar, ProgressType

logger = logging.getLogger(__name__)

__all__ = ["downloadArchive"]



async def downloadArchive(
    url: str,
    destDir: str | Path,
    *,
    label: str,
    barId: str | None = None,
    http: HttpSettings | None = None,
) -> Path:
    """
    Streams `url` into a fresh .zip under `destDir` and returns its path.

    The progress bar is Definite when the server sends Content-Length and
    Indefinite otherwise. The caller owns (and deletes) the returned file.
    """
    http = http or HttpSettings()
    dest = Path(destDir) / f"{uuidv7(prefix='dl-')}.zip"
    barId = barId or uuid_10("pb-")
    bars: list[ProgressBar] = []

    def onStart(total: int | None) -> None:
        bars.append(ProgressBar(
            barId,
            total or 0,
            f"Downloading {label}",
            f"Failed to download {label}",
            ProgressType.Definite if total else ProgressType.Indefinite,
            ProgressAction.Download,
        ))

    def onChunk(size: int) -> None:
        if bars:
            bars[0].inc(size)

    try:
        await download(url, dest, onStart=onStart, onChunk=onChunk, timeoutMs=http.timeoutMs)
        if bars:
            bars[0].finish(True, f"Downloaded {label}")
    except HTTPError as err:
        raise NetworkError(f"Download of {label} failed (HTTP {err.status})", path=url) from err
    except httpx.HTTPError as err:
        raise NetworkError(f"Download of {label} failed", path=url) from err
    except OSError as err:
        raise FilesystemError(f"Couldn't save download of {label}", path=str(dest)) from err
    finally:
        for bar in bars:
            bar.close()

    logger.debug("Downloaded %s to '%s'", url, dest)
    return dest
