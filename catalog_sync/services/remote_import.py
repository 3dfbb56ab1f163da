from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.config import Settings
from catalog_sync.core.enums import ImportEntityType, ImportSourceType, RemoteScanStatus, RemoteScanTrigger
from catalog_sync.models.base import utcnow
from catalog_sync.models.remote_scan_run import RemoteScanRun
from catalog_sync.services.import_pipeline import ImportPipeline
from catalog_sync.services.import_runs import latest_completed_remote_import
from catalog_sync.services.remote_files import RemoteFile, RemoteFileStore


logger = logging.getLogger(__name__)

IMPORTABLE_EXTENSIONS = (".xlsx", ".xls", ".csv")


class RemoteImportAlreadyRunningError(RuntimeError):
    pass


@dataclass(frozen=True)
class RemoteFolder:
    entity_type: ImportEntityType
    folder_id: str | None
    priority: int


def build_remote_folders(settings: Settings) -> list[RemoteFolder]:
    """Folders in dependency order: products first so later imports can reference them."""
    folders = [
        RemoteFolder(ImportEntityType.PRODUCTS, settings.sharepoint_products_folder_id, 1),
        RemoteFolder(ImportEntityType.SUPERSEDED_MAPPING, settings.sharepoint_superseded_folder_id, 2),
        RemoteFolder(ImportEntityType.ORDER_STATUS, settings.sharepoint_order_status_folder_id, 3),
        RemoteFolder(ImportEntityType.BACKORDER, settings.sharepoint_backorder_folder_id, 4),
        RemoteFolder(ImportEntityType.DEALERS, settings.sharepoint_dealers_folder_id, 5),
    ]
    return sorted(folders, key=lambda f: f.priority)


@dataclass
class FolderResult:
    entity_type: ImportEntityType
    found: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def as_json(self) -> dict[str, Any]:
        return {
            "found": self.found,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }


@dataclass
class RemoteScanSummary:
    run_id: uuid.UUID
    triggered_by: RemoteScanTrigger
    status: RemoteScanStatus
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    folders: list[FolderResult]
    errors: list[str]

    @property
    def total_found(self) -> int:
        return sum(f.found for f in self.folders)

    @property
    def total_processed(self) -> int:
        return sum(f.processed for f in self.folders)

    @property
    def total_skipped(self) -> int:
        return sum(f.skipped for f in self.folders)

    @property
    def total_failed(self) -> int:
        return sum(f.failed for f in self.folders)


def derive_scan_status(*, processed: int, failed: int) -> RemoteScanStatus:
    if failed == 0:
        return RemoteScanStatus.SUCCESS
    if processed > 0:
        return RemoteScanStatus.PARTIAL
    return RemoteScanStatus.FAILED


def is_importable(name: str) -> bool:
    return name.lower().endswith(IMPORTABLE_EXTENSIONS)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class RemoteImportOrchestrator:
    """
    Scans the configured remote folders and imports new or changed files.

    Folders run in priority order, files oldest-modified first. A failing file
    or folder is recorded and the scan moves on; only one scan runs at a time
    per process.
    """

    def __init__(
        self,
        *,
        file_store: RemoteFileStore | None,
        folders: list[RemoteFolder],
        pipeline: ImportPipeline,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self._file_store = file_store
        self._folders = sorted(folders, key=lambda f: f.priority)
        self._pipeline = pipeline
        self._session_factory = session_factory
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self, triggered_by: RemoteScanTrigger) -> RemoteScanSummary:
        if self._running:
            raise RemoteImportAlreadyRunningError("Remote import is already running. Please wait for it to complete.")
        self._running = True
        try:
            return await self._run(triggered_by)
        finally:
            self._running = False

    async def _run(self, triggered_by: RemoteScanTrigger) -> RemoteScanSummary:
        started_at = utcnow()
        started = time.monotonic()
        async with self._session_factory() as session:
            async with session.begin():
                scan = RemoteScanRun(id=uuid.uuid4(), triggered_by=triggered_by, started_at=started_at)
                session.add(scan)
        logger.info("Remote import %s started (%s, %s folders)", scan.id, triggered_by, len(self._folders))

        folder_results: list[FolderResult] = []
        errors: list[str] = []
        for folder in self._folders:
            try:
                folder_results.append(await self._scan_folder(folder))
            except Exception as exc:
                logger.exception("Remote import of %s folder aborted", folder.entity_type)
                errors.append(f"{folder.entity_type}: {exc}")

        completed_at = utcnow()
        summary = RemoteScanSummary(
            run_id=scan.id,
            triggered_by=triggered_by,
            status=RemoteScanStatus.SUCCESS,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=int((time.monotonic() - started) * 1000),
            folders=folder_results,
            errors=errors,
        )
        summary.status = derive_scan_status(processed=summary.total_processed, failed=summary.total_failed)

        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(RemoteScanRun, scan.id)
                row.status = summary.status
                row.completed_at = completed_at
                row.duration_ms = summary.duration_ms
                row.total_files_found = summary.total_found
                row.total_files_processed = summary.total_processed
                row.total_files_skipped = summary.total_skipped
                row.total_files_failed = summary.total_failed
                row.results = {str(f.entity_type): f.as_json() for f in folder_results}
                row.errors = errors or None

        logger.info(
            "Remote import %s finished %s: found=%s processed=%s skipped=%s failed=%s",
            scan.id,
            summary.status,
            summary.total_found,
            summary.total_processed,
            summary.total_skipped,
            summary.total_failed,
        )
        return summary

    async def _scan_folder(self, folder: RemoteFolder) -> FolderResult:
        result = FolderResult(entity_type=folder.entity_type)
        if not folder.folder_id:
            logger.warning("No remote folder configured for %s; skipping", folder.entity_type)
            result.errors.append("Folder error: folder id is not configured")
            return result
        if self._file_store is None:
            result.errors.append("Folder error: remote file store is not configured")
            return result

        try:
            files = await self._file_store.list_files(folder.folder_id)
        except Exception as exc:
            logger.warning("Listing %s folder %s failed: %s", folder.entity_type, folder.folder_id, exc)
            result.errors.append(f"Folder error: {exc}")
            return result

        candidates = [f for f in files if is_importable(f.name)]
        result.found = len(candidates)
        result.skipped += len(files) - len(candidates)
        candidates.sort(key=lambda f: _as_utc(f.modified_at))

        for remote_file in candidates:
            if not await self._has_changed(remote_file):
                logger.info("%s is up to date; skipping", remote_file.name)
                result.skipped += 1
                continue
            try:
                content = await self._file_store.download_file(remote_file.id)
                await self._pipeline.import_file(
                    content,
                    file_name=remote_file.name,
                    entity_type=folder.entity_type,
                    source_type=ImportSourceType.REMOTE,
                    imported_by=None,
                    source_file_id=remote_file.id,
                    source_file_modified_at=remote_file.modified_at,
                )
            except Exception as exc:
                logger.warning("Remote file %s failed: %s", remote_file.name, exc)
                result.failed += 1
                result.errors.append(f"{remote_file.name}: {exc}")
                continue
            result.processed += 1
        return result

    async def _has_changed(self, remote_file: RemoteFile) -> bool:
        async with self._session_factory() as session:
            last = await latest_completed_remote_import(session, remote_file.id)
        if last is None or last.source_file_modified_at is None:
            return True
        return _as_utc(remote_file.modified_at) > _as_utc(last.source_file_modified_at)
