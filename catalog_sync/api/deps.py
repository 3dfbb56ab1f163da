from __future__ import annotations

from fastapi import HTTPException, Request

from catalog_sync.services.import_jobs import ImportJobTracker
from catalog_sync.services.import_pipeline import ImportPipeline
from catalog_sync.services.remote_import import RemoteImportOrchestrator
from catalog_sync.services.search_sync import SearchIndexSynchronizer
from catalog_sync.services.task_supervisor import BackgroundTaskSupervisor


def get_job_tracker(request: Request) -> ImportJobTracker:
    return request.app.state.job_tracker


def get_pipeline(request: Request) -> ImportPipeline:
    return request.app.state.import_pipeline


def get_orchestrator(request: Request) -> RemoteImportOrchestrator:
    return request.app.state.remote_import_orchestrator


def get_search_sync(request: Request) -> SearchIndexSynchronizer:
    search_sync = getattr(request.app.state, "search_sync", None)
    if search_sync is None:
        raise HTTPException(status_code=503, detail="Search synchronization is disabled")
    return search_sync


def get_supervisor(request: Request) -> BackgroundTaskSupervisor:
    return request.app.state.task_supervisor
