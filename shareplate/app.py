"""
FastAPI application entry point for the SharePlate backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shareplate.config import Settings, get_settings
from shareplate.dependencies import Backends, build_backends
from shareplate.errors import ShareplateError
from shareplate.routes import router

logger = logging.getLogger(__name__)


def _handle_shareplate_error(request: Request, exc: ShareplateError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = exc.errors()
    missing = any(p.get("type") == "missing" for p in problems)
    details = [
        {"loc": list(p.get("loc", ())), "msg": p.get("msg")} for p in problems
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {
                "message": "Missing required fields" if missing else "Invalid request body",
                "errors": details,
            }
        ),
    )


def create_app(
    settings: Optional[Settings] = None, backends: Optional[Backends] = None
) -> FastAPI:
    """Build the app. Passing ``backends`` skips connecting at startup."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.backends is None
        if owned:
            app.state.backends = build_backends(settings)
        logger.info("SharePlate API ready (CORS origins: %s)", settings.allowed_origins)
        try:
            yield
        finally:
            if owned:
                app.state.backends.close()
                app.state.backends = None

    app = FastAPI(title="SharePlate API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.backends = backends

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShareplateError, _handle_shareplate_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
