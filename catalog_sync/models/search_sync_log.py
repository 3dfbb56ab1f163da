from __future__ import annotations

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.core.enums import SearchSyncStatus, SearchSyncType
from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from catalog_sync.models.sql_enums import search_sync_status_enum, search_sync_type_enum


class SearchSyncLog(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "search_sync_logs"

    sync_type: Mapped[SearchSyncType] = mapped_column(search_sync_type_enum, nullable=False)
    status: Mapped[SearchSyncStatus] = mapped_column(search_sync_status_enum, nullable=False)
    collection_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    total_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
