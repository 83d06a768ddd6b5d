# modman/api/factory.py
from __future__ import annotations
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from modman.app.context import AppContext
from modman.core.errors import (
    AlreadyInProgressError,
    FilesystemError,
    LogServerError,
    MalformedDataError,
    ModManagerError,
    NetworkError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

__all__ = ["createApp", "statusForError"]

DEV_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]



def statusForError(err: ModManagerError) -> int:
    if isinstance(err, NotFoundError):
        return 404
    if isinstance(err, MalformedDataError):
        return 422
    if isinstance(err, NetworkError):
        return 502
    if isinstance(err, AlreadyInProgressError):
        return 409
    if isinstance(err, (FilesystemError, LogServerError)):
        return 500
    return 500



async def _handleModManagerError(request: Request, err: Exception) -> JSONResponse:
    assert isinstance(err, ModManagerError)
    status = statusForError(err)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, err)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, status, err)
    return JSONResponse(
        {
            "error": type(err).__name__,
            "message": err.message,
            "uniqueName": err.uniqueName,
            "path": err.path,
            "cause": str(err.__cause__) if err.__cause__ is not None else None,
        },
        status_code=status,
    )



def createApp(ctx: AppContext | None = None, *, extraRouters: Sequence[APIRouter] = ()) -> FastAPI:
    """
    Builds the HTTP/WebSocket surface over an AppContext.

    Without `ctx`, configuration is loaded from disk, logging is configured and
    the context is created during startup and closed on shutdown. A passed-in
    context is owned by the caller and left open.
    """
    ownsContext = ctx is None

    @asynccontextmanager
    async def life(app: FastAPI) -> AsyncIterator[None]:
        # --------------- Startup ---------------
        if ownsContext:
            from modman.app.settings import loadConfig
            from modman.core.logging import configureLogging
            config = loadConfig()
            configureLogging(config)
            app.state.ctx = AppContext.create(config)
            try:
                await app.state.ctx.orchestrator.refreshLocalDb()
                await app.state.ctx.orchestrator.refreshRemoteDb()
            except ModManagerError as err:
                # Still serve; the UI can retry with /api/refresh/*
                logger.error("Initial database refresh failed: %s", err)
        yield

        # --------------- Shutdown ---------------
        if ownsContext:
            await app.state.ctx.aclose()

    app = FastAPI(lifespan=life)
    if ctx is not None:
        app.state.ctx = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=DEV_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ModManagerError, _handleModManagerError)

    from modman.api.events_ws import router as eventsRouter
    from modman.api.routes import router as apiRouter

    app.include_router(apiRouter)
    app.include_router(eventsRouter)
    for router in extraRouters:
        app.include_router(router)

    logger.info("API initialized with %d extra router(s)", len(extraRouters))
    return app
