"""DepSentinel REST API — FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from depsentinel.api.deps import set_runtime
from depsentinel.api.errors import register_error_handlers
from depsentinel.api.routers import analysis, scans, settings
from depsentinel.runtime import Runtime


def create_app(runtime: Runtime, *, manage_lifecycle: bool = True) -> FastAPI:
    """Build the application around an already wired :class:`Runtime`.

    With *manage_lifecycle* the app starts the runtime (tables, start-up scan,
    periodic rescans) on startup and closes it on shutdown.
    """

    @asynccontextmanager
    async def _lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        if manage_lifecycle:
            await runtime.start()
        yield
        if manage_lifecycle:
            await runtime.close()

    set_runtime(runtime)
    app = FastAPI(
        title="DepSentinel",
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )

    register_error_handlers(app)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok", "scanning": runtime.coordinator.is_running})

    app.include_router(scans.router, prefix="/api/v1/scans", tags=["scans"])
    app.include_router(analysis.router, prefix="/api/v1/analysis", tags=["analysis"])
    app.include_router(settings.router, prefix="/api/v1/settings", tags=["settings"])

    return app
