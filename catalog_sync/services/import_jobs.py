from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from catalog_sync.core.enums import ImportJobStatus
from catalog_sync.models.base import utcnow


logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 3600

_TERMINAL = {ImportJobStatus.COMPLETED, ImportJobStatus.FAILED}


@dataclass
class JobProgress:
    current: int = 0
    total: int | None = None

    @property
    def percentage(self) -> int:
        if not self.total:
            return 0
        return min(100, round(self.current * 100 / self.total))


@dataclass
class ImportJob:
    job_id: str
    status: ImportJobStatus
    started_at: datetime
    progress: JobProgress = field(default_factory=JobProgress)
    completed_at: datetime | None = None
    error: str | None = None
    results: dict[str, Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL


class ImportJobTracker:
    """
    In-process live progress for running imports, keyed by import run id.

    Polling clients read this instead of the database while a run is in flight.
    Terminal entries are dropped after the retention window; the ImportRun row
    stays the source of truth.
    """

    def __init__(
        self,
        *,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._jobs: dict[str, ImportJob] = {}
        self._retention = timedelta(seconds=max(0, int(retention_seconds)))
        self._clock = clock

    def create(self, job_id: str, *, total: int | None = None) -> ImportJob:
        self.evict_expired()
        job = ImportJob(
            job_id=job_id,
            status=ImportJobStatus.PENDING,
            started_at=self._clock(),
            progress=JobProgress(current=0, total=total),
        )
        self._jobs[job_id] = job
        return job

    def get(self, job_id: str) -> ImportJob | None:
        self.evict_expired()
        return self._jobs.get(job_id)

    def _active(self, job_id: str) -> ImportJob | None:
        job = self._jobs.get(job_id)
        if job is None:
            logger.debug("Ignoring update for unknown import job %s", job_id)
            return None
        if job.is_terminal:
            logger.debug("Ignoring update for finished import job %s", job_id)
            return None
        return job

    def start(self, job_id: str) -> None:
        job = self._active(job_id)
        if job is not None:
            job.status = ImportJobStatus.PROCESSING

    def set_total(self, job_id: str, total: int) -> None:
        job = self._active(job_id)
        if job is None:
            return
        job.progress.total = max(0, int(total))
        job.progress.current = min(job.progress.current, job.progress.total)

    def update(self, job_id: str, current: int) -> None:
        job = self._active(job_id)
        if job is None:
            return
        job.status = ImportJobStatus.PROCESSING
        value = max(job.progress.current, int(current))
        if job.progress.total is not None:
            value = min(value, job.progress.total)
        job.progress.current = value

    def complete(self, job_id: str, results: dict[str, Any]) -> None:
        job = self._active(job_id)
        if job is None:
            return
        if job.progress.total is None:
            job.progress.total = job.progress.current
        job.progress.current = job.progress.total
        job.status = ImportJobStatus.COMPLETED
        job.results = dict(results)
        job.completed_at = self._clock()

    def fail(self, job_id: str, message: str) -> None:
        job = self._active(job_id)
        if job is None:
            return
        job.status = ImportJobStatus.FAILED
        job.error = message
        job.completed_at = self._clock()

    def evict_expired(self, now: datetime | None = None) -> int:
        cutoff = (now or self._clock()) - self._retention
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.is_terminal and job.completed_at is not None and job.completed_at <= cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        return len(expired)
