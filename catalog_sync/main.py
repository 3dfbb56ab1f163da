from __future__ import annotations

import asyncio
import os
from contextlib import suppress
from functools import lru_cache
from pathlib import Path
from typing import Any

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import JSONResponse
from sqlalchemy import text

from catalog_sync.api.v1.router import api_router
from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.db import SessionLocal, engine
from catalog_sync.core.security import require_basic_auth
from catalog_sync.services.import_jobs import ImportJobTracker
from catalog_sync.services.import_pipeline import ImportPipeline
from catalog_sync.services.remote_files import GraphRemoteFileStore
from catalog_sync.services.remote_import import RemoteImportOrchestrator, build_remote_folders
from catalog_sync.services.remote_import_scheduler import remote_import_scheduler_loop
from catalog_sync.services.search_index import TypesenseClient
from catalog_sync.services.search_sync import SearchIndexSynchronizer
from catalog_sync.services.task_supervisor import BackgroundTaskSupervisor


@lru_cache
def _repo_head_revision() -> str | None:
    default_alembic_path = Path(__file__).resolve().parents[1] / "alembic.ini"
    alembic_path = Path(os.getenv("ALEMBIC_CONFIG_PATH", str(default_alembic_path)))
    if not alembic_path.exists():
        return None

    cfg = Config(str(alembic_path))
    script = ScriptDirectory.from_config(cfg)
    return script.get_current_head()


def configure_services(app: FastAPI, settings: Settings) -> None:
    """Build the process-wide singletons the endpoints pull from `app.state`."""
    supervisor = BackgroundTaskSupervisor()
    tracker = ImportJobTracker(retention_seconds=settings.import_job_retention_seconds)

    search_client: TypesenseClient | None = None
    search_sync: SearchIndexSynchronizer | None = None
    if settings.search_sync_enabled:
        search_client = TypesenseClient.from_settings(settings)
        search_sync = SearchIndexSynchronizer(
            search_client,
            SessionLocal,
            alias=settings.typesense_alias,
            batch_size=settings.search_sync_batch_size,
        )

    pipeline = ImportPipeline(
        SessionLocal,
        job_tracker=tracker,
        supervisor=supervisor,
        search_sync=search_sync,
        chunk_size=settings.import_chunk_size,
    )

    file_store = GraphRemoteFileStore.from_settings(settings) if settings.sharepoint_configured else None
    orchestrator = RemoteImportOrchestrator(
        file_store=file_store,
        folders=build_remote_folders(settings),
        pipeline=pipeline,
        session_factory=SessionLocal,
    )

    app.state.task_supervisor = supervisor
    app.state.job_tracker = tracker
    app.state.search_client = search_client
    app.state.search_sync = search_sync
    app.state.import_pipeline = pipeline
    app.state.remote_file_store = file_store
    app.state.remote_import_orchestrator = orchestrator


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Catalog Sync",
        version="1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    if settings.cors_origins:
        origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    configure_services(app, settings)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/healthz/deep")
    async def deep_healthz() -> JSONResponse:
        payload: dict[str, Any] = {
            "status": "ok",
            "checks": {
                "database": "ok",
            },
        }
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                table_count = int(
                    (
                        await conn.scalar(
                            text(
                                """
                                SELECT count(*)
                                FROM information_schema.tables
                                WHERE table_schema = 'public'
                                  AND table_name <> 'alembic_version'
                                """
                            )
                        )
                    )
                    or 0
                )
                has_alembic_version = bool(
                    await conn.scalar(text("SELECT to_regclass('public.alembic_version') IS NOT NULL"))
                )
                current_revision: str | None = None
                if has_alembic_version:
                    current_revision = await conn.scalar(text("SELECT version_num FROM alembic_version LIMIT 1"))
        except Exception as exc:
            payload["status"] = "error"
            payload["checks"]["database"] = "error"
            payload["error"] = f"{exc.__class__.__name__}: {exc}"
            return JSONResponse(status_code=503, content=payload)

        repo_head = _repo_head_revision()
        if not has_alembic_version:
            migration_state = "empty_schema" if table_count == 0 else "missing_alembic_version"
        elif repo_head is None:
            migration_state = "unknown_repo_head"
        elif current_revision == repo_head:
            migration_state = "up_to_date"
        else:
            migration_state = "behind_head"

        payload["checks"]["migration"] = {
            "state": migration_state,
            "table_count": table_count,
            "has_alembic_version": has_alembic_version,
            "current_revision": current_revision,
            "repo_head_revision": repo_head,
        }

        healthy = migration_state in {"up_to_date", "empty_schema"}
        payload["status"] = "ok" if healthy else "degraded"
        return JSONResponse(status_code=200 if healthy else 503, content=payload)

    @app.get("/openapi.json", include_in_schema=False, dependencies=[Depends(require_basic_auth)])
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/docs", include_in_schema=False, dependencies=[Depends(require_basic_auth)])
    async def swagger_ui_html():
        return get_swagger_ui_html(openapi_url="/openapi.json", title=app.title)

    @app.on_event("startup")
    async def startup() -> None:
        if settings.remote_import_enabled:
            app.state.remote_import_task = asyncio.create_task(
                remote_import_scheduler_loop(settings, app.state.remote_import_orchestrator)
            )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        task = getattr(app.state, "remote_import_task", None)
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await app.state.task_supervisor.shutdown()
        if app.state.search_client is not None:
            await app.state.search_client.aclose()
        if app.state.remote_file_store is not None:
            await app.state.remote_file_store.aclose()

    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
