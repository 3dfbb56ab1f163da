from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.core.enums import ImportEntityType, ImportRunStatus, ImportSourceType
from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from catalog_sync.models.sql_enums import (
    import_entity_type_enum,
    import_run_status_enum,
    import_source_type_enum,
)


class ImportRun(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "import_runs"
    __table_args__ = (
        Index("ix_import_runs_entity_created", "entity_type", "created_at"),
        Index("ix_import_runs_source_file", "source_file_id"),
    )

    entity_type: Mapped[ImportEntityType] = mapped_column(import_entity_type_enum, nullable=False)
    source_type: Mapped[ImportSourceType] = mapped_column(
        import_source_type_enum, nullable=False, default=ImportSourceType.MANUAL
    )
    status: Mapped[ImportRunStatus] = mapped_column(
        import_run_status_enum, nullable=False, default=ImportRunStatus.PENDING
    )

    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    imported_by: Mapped[str | None] = mapped_column(String(200), nullable=True)

    total_rows: Mapped[int | None] = mapped_column(Integer, nullable=True)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    source_file_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    source_file_modified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ImportRowError(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "import_row_errors"
    __table_args__ = (Index("ix_import_row_errors_run_row", "import_run_id", "row_number"),)

    import_run_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("import_runs.id", ondelete="CASCADE"), nullable=False)
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    row_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    errors: Mapped[list[str]] = mapped_column(JSONB, nullable=False)
