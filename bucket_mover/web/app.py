"""
Web Application
===============

FastAPI application exposing both buckets' contents and a button that moves
every object from the fuller bucket into the other one.

Author: Bucket Mover Project
License: MIT
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from ..core.errors import ListError, MigrationError, MigrationPhase
from ..core.migration import MigrationEngine
from ..scheduler.task_scheduler import MigrationScheduler
from ..storage.base import ObjectStore
from ..utils.logger import get_logger

logger = get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
STATIC_DIR = Path(__file__).parent / "static"

# Served as one stylesheet, in this order
STYLESHEETS = ("normalize.css", "tachyons.css", "styles.css")


def create_app(
    stores: Dict[str, ObjectStore],
    engine: MigrationEngine,
    scheduler: Optional[MigrationScheduler] = None,
    static_dir: Optional[Path] = None
) -> FastAPI:
    """
    Build the web application.

    Args:
        stores: Exactly two ready stores; the first is the migration's
            ``store_a`` (source on a tie)
        engine: Migration engine shared with the scheduler
        scheduler: Started and stopped with the application, if given
        static_dir: Directory holding ``css/`` (defaults to the bundled one)

    Returns:
        Configured FastAPI application
    """
    if len(stores) != 2:
        raise ValueError(f"Exactly two stores are required, got {len(stores)}")

    css_dir = Path(static_dir or STATIC_DIR) / "css"
    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Bucket Mover web application starting...")
        if scheduler is not None and scheduler.enabled:
            scheduler.start()
        yield
        logger.info("Bucket Mover web application shutting down...")
        if scheduler is not None:
            scheduler.stop()

    app = FastAPI(
        title="Bucket Mover",
        description="Moves objects between an S3 bucket and a GCS bucket",
        version="0.1.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan
    )
    app.state.stores = stores
    app.state.engine = engine
    app.state.scheduler = scheduler

    store_a, store_b = stores.values()

    @app.get("/", response_class=HTMLResponse)
    def index(request: Request):
        """Render both buckets' keys."""
        buckets: List[dict] = []
        for store in (store_a, store_b):
            try:
                keys = store.list_keys()
            except ListError as e:
                logger.error(f"Listing {store.name} failed: {e}")
                return PlainTextResponse(
                    MigrationError(MigrationPhase.LIST, store=store.name).reason,
                    status_code=500
                )
            buckets.append({"name": store.name, "bucket": store.bucket_name, "objects": keys})

        return templates.TemplateResponse(request, "index.html", {"buckets": buckets})

    @app.api_route("/move", methods=["GET", "POST"])
    async def move():
        """Run one migration and go back to the listing."""
        try:
            result = await run_in_threadpool(engine.migrate, store_a, store_b)
        except MigrationError as e:
            return PlainTextResponse(e.reason, status_code=500)

        logger.info(f"/move migrated {result.migrated} objects {result.direction}")
        return RedirectResponse(url="/", status_code=303)

    @app.get("/styles.css")
    def styles():
        """Serve the concatenated stylesheet."""
        parts = []
        for filename in STYLESHEETS:
            try:
                parts.append((css_dir / filename).read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                # ValueError covers UnicodeDecodeError
                logger.error(f"Failed to read stylesheet {filename}: {e}")
                return PlainTextResponse(f"failed to read {filename}: {e}", status_code=500)

        return Response("".join(part + "\n" for part in parts), media_type="text/css")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for container orchestration."""
        return {"status": "healthy", "service": "bucket_mover"}

    @app.get("/api/status")
    async def status():
        """Migration counters and scheduled jobs."""
        return {
            "stores": {name: store.bucket_name for name, store in stores.items()},
            "migrations": engine.get_stats(),
            "jobs": scheduler.get_jobs() if scheduler is not None else [],
        }

    return app
