from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.core.enums import RemoteScanStatus, RemoteScanTrigger
from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from catalog_sync.models.sql_enums import remote_scan_status_enum, remote_scan_trigger_enum


class RemoteScanRun(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "remote_scan_runs"

    triggered_by: Mapped[RemoteScanTrigger] = mapped_column(remote_scan_trigger_enum, nullable=False)
    # Stays NULL while the scan is in flight.
    status: Mapped[RemoteScanStatus | None] = mapped_column(remote_scan_status_enum, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    total_files_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_files_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_files_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_files_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    results: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    errors: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
