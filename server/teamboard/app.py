"""
FastAPI application entry point for the Teamboard service.

Run with ``uvicorn teamboard.app:create_app --factory``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from teamboard.access import AccessLayer
from teamboard.auth import Authenticator, SessionSigner
from teamboard.config import DEFAULT_AUTH_SECRET, Settings, get_settings
from teamboard.db import RecordStore
from teamboard.dependencies import create_record_store
from teamboard.routes import router

logger = logging.getLogger(__name__)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.debug("Rejected request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None, store: Optional[RecordStore] = None
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if store is None:
        store = create_record_store(settings)
    store.init_schema()
    if settings.uses_database and settings.auth_secret == DEFAULT_AUTH_SECRET:
        logger.warning("AUTH_SECRET is not set; sessions are signed with the default key")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        store.close()

    app = FastAPI(title="Teamboard", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.access = AccessLayer(store, user_search_limit=settings.user_search_limit)
    app.state.authenticator = Authenticator(store)
    app.state.session_signer = SessionSigner(
        settings.auth_secret, settings.session_max_age_seconds
    )

    origins = settings.get_cors_origins_list()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    _register_exception_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app
