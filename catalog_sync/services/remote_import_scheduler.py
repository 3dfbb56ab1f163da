from __future__ import annotations

import asyncio
import logging
import os
import random
import socket
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, text

from catalog_sync.core.config import Settings
from catalog_sync.core.enums import RemoteScanTrigger
from catalog_sync.models.base import utcnow
from catalog_sync.models.remote_scan_run import RemoteScanRun
from catalog_sync.services.remote_import import RemoteImportAlreadyRunningError, RemoteImportOrchestrator


logger = logging.getLogger(__name__)
SessionLocal = None

LOCK_NAME = "remote_import_scheduler"


def _lock_holder_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def _get_session_local():
    global SessionLocal
    if SessionLocal is None:
        from catalog_sync.core.db import SessionLocal as _SessionLocal

        SessionLocal = _SessionLocal
    return SessionLocal


async def _try_acquire_or_renew_lock(*, name: str, holder: str, ttl_seconds: int) -> bool:
    now = utcnow()
    expires = now + timedelta(seconds=max(30, int(ttl_seconds)))

    stmt = text(
        "INSERT INTO job_locks (name, locked_at, locked_by, expires_at) "
        "VALUES (:name, :locked_at, :locked_by, :expires_at) "
        "ON CONFLICT (name) DO UPDATE SET "
        "locked_at = excluded.locked_at, "
        "locked_by = excluded.locked_by, "
        "expires_at = excluded.expires_at "
        "WHERE job_locks.expires_at <= :locked_at OR job_locks.locked_by = :locked_by"
    )

    async with _get_session_local()() as session:
        async with session.begin():
            res = await session.execute(
                stmt,
                {
                    "name": name,
                    "locked_at": now,
                    "locked_by": holder,
                    "expires_at": expires,
                },
            )
            return bool(res.rowcount == 1)


def scheduled_slot(now: datetime, *, hour: int, minute: int) -> datetime:
    return now.astimezone(UTC).replace(hour=hour, minute=minute, second=0, microsecond=0)


def is_scan_due(now: datetime, last_started_at: datetime | None, *, hour: int, minute: int) -> bool:
    """Due once today's slot has passed and no timed scan has started since."""
    slot = scheduled_slot(now, hour=hour, minute=minute)
    if now < slot:
        return False
    if last_started_at is None:
        return True
    if last_started_at.tzinfo is None:
        last_started_at = last_started_at.replace(tzinfo=UTC)
    return last_started_at < slot


async def _last_cron_started_at() -> datetime | None:
    async with _get_session_local()() as session:
        return (
            await session.execute(
                select(RemoteScanRun.started_at)
                .where(RemoteScanRun.triggered_by == RemoteScanTrigger.CRON)
                .order_by(RemoteScanRun.started_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()


async def run_scheduler_tick(*, settings: Settings, orchestrator: RemoteImportOrchestrator, holder: str) -> bool:
    """One scheduler pass; returns True when a timed scan ran."""
    now = utcnow()
    if not is_scan_due(
        now,
        await _last_cron_started_at(),
        hour=settings.remote_import_hour_utc,
        minute=settings.remote_import_minute_utc,
    ):
        return False

    acquired = await _try_acquire_or_renew_lock(
        name=LOCK_NAME,
        holder=holder,
        ttl_seconds=settings.remote_import_lock_ttl_seconds,
    )
    if not acquired:
        return False

    # Another process may have finished today's scan between the check and the lock.
    if not is_scan_due(
        utcnow(),
        await _last_cron_started_at(),
        hour=settings.remote_import_hour_utc,
        minute=settings.remote_import_minute_utc,
    ):
        return False

    try:
        summary = await orchestrator.run(RemoteScanTrigger.CRON)
    except RemoteImportAlreadyRunningError:
        logger.info("Timed remote import skipped; a scan is already running")
        return False
    logger.info("Timed remote import %s finished with status %s", summary.run_id, summary.status)
    return True


async def remote_import_scheduler_loop(settings: Settings, orchestrator: RemoteImportOrchestrator) -> None:
    if not settings.remote_import_enabled:
        return

    holder = _lock_holder_id()
    tick = max(10, int(settings.remote_import_loop_tick_seconds))

    while True:
        try:
            await run_scheduler_tick(settings=settings, orchestrator=orchestrator, holder=holder)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Remote import scheduler tick failed")

        await asyncio.sleep(tick + random.uniform(0, 3))
