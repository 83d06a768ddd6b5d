# modman/server.py
from __future__ import annotations
import os

import uvicorn

from modman.api.factory import createApp

# uvicorn modman.server:app
app = createApp()


def main() -> None:
    host = os.environ.get("MODMAN_HOST", "127.0.0.1")
    port = int(os.environ.get("MODMAN_PORT", "8000"))
    uvicorn.run("modman.server:app", host=host, port=port, log_config=None)
