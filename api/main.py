import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from core import config
from core.errors import ConfigMissing
from core.lifecycle import LifecycleManager
from health import router as health_router
from query import router as query_router

logger = logging.getLogger(__name__)


def _build_manager() -> LifecycleManager:
    try:
        conn_config = config.load_connection_config()
    except ConfigMissing as exc:
        # Keep serving non-database traffic.
        logger.error("db_config_missing missing=%s", ",".join(exc.missing))
        conn_config = None
    return LifecycleManager(conn_config)


def create_app(
    *,
    manager: LifecycleManager | None = None,
    settings: config.ServiceSettings | None = None,
) -> FastAPI:
    settings = settings or config.load_service_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # One lifecycle manager per process; it owns the DB pool.
        app.state.settings = settings
        app.state.started_at = time.monotonic()
        app.state.db = manager or _build_manager()
        logger.info(
            "service_starting port=%s app_env=%s has_db_config=%s",
            settings.port,
            settings.app_env,
            app.state.db.is_configured,
        )
        await app.state.db.start()
        try:
            yield
        finally:
            logger.info("service_shutting_down")
            await app.state.db.shutdown(settings.shutdown_timeout_s)

    app = FastAPI(lifespan=lifespan)

    # Allow local frontend dev server to call this API from the browser.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.include_router(health_router.router, tags=["health"])
    app.include_router(query_router.router, tags=["query"])

    _mount_frontend(app, Path(settings.static_dir))
    return app


def _mount_frontend(app: FastAPI, static_dir: Path) -> None:
    """
    Serve the built single-page app, falling back to index.html for client-side routes.
    """
    index = static_dir / "index.html"
    if not index.is_file():
        logger.info("frontend_not_mounted static_dir=%s", static_dir)
        return None

    assets = static_dir / "assets"
    if assets.is_dir():
        app.mount("/assets", StaticFiles(directory=assets), name="assets")

    root = static_dir.resolve()

    @app.get("/{path:path}", include_in_schema=False)
    async def spa(path: str) -> FileResponse:
        if path.startswith("api/"):
            raise HTTPException(status_code=404, detail="Not Found")
        candidate = (root / path).resolve()
        if path and candidate.is_file() and candidate.is_relative_to(root):
            return FileResponse(candidate)
        return FileResponse(index)


# ASGI target for `uvicorn main:app`; `serve()` builds its own from one settings load.
app = create_app()


def serve() -> None:
    """Console entrypoint: run the API under uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    settings = config.load_service_settings()
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)
