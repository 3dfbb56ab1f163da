from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(..., alias="DATABASE_URL")

    basic_auth_username: str = Field(..., alias="BASIC_AUTH_USERNAME")
    basic_auth_password: str = Field(..., alias="BASIC_AUTH_PASSWORD")

    cors_origins: str | None = Field(None, alias="CORS_ORIGINS")

    # --- Tabular imports ---
    import_chunk_size: int = Field(10_000, alias="IMPORT_CHUNK_SIZE")
    import_job_retention_seconds: int = Field(3600, alias="IMPORT_JOB_RETENTION_SECONDS")
    import_error_preview_limit: int = Field(100, alias="IMPORT_ERROR_PREVIEW_LIMIT")

    # --- Remote file store (SharePoint via Microsoft Graph) ---
    sharepoint_tenant_id: str | None = Field(None, alias="SHAREPOINT_TENANT_ID")
    sharepoint_client_id: str | None = Field(None, alias="SHAREPOINT_CLIENT_ID")
    sharepoint_client_secret: str | None = Field(None, alias="SHAREPOINT_CLIENT_SECRET")
    sharepoint_site_id: str | None = Field(None, alias="SHAREPOINT_SITE_ID")
    graph_base_url: str = Field("https://graph.microsoft.com/v1.0", alias="GRAPH_BASE_URL")
    graph_auth_base_url: str = Field("https://login.microsoftonline.com", alias="GRAPH_AUTH_BASE_URL")
    remote_http_timeout_seconds: float = Field(30.0, alias="REMOTE_HTTP_TIMEOUT_SECONDS")
    remote_http_max_retries: int = Field(3, alias="REMOTE_HTTP_MAX_RETRIES")

    sharepoint_products_folder_id: str | None = Field(None, alias="SHAREPOINT_IMPORT_PRODUCTS_FOLDER_ID")
    sharepoint_superseded_folder_id: str | None = Field(
        None,
        validation_alias=AliasChoices(
            "SHAREPOINT_IMPORT_SUPERSEDED_FOLDER_ID", "SHAREPOINT_IMPORT_SUPERSEDED_MAPPING_FOLDER_ID"
        ),
    )
    sharepoint_order_status_folder_id: str | None = Field(None, alias="SHAREPOINT_IMPORT_ORDER_STATUS_FOLDER_ID")
    sharepoint_backorder_folder_id: str | None = Field(
        None,
        validation_alias=AliasChoices("SHAREPOINT_IMPORT_BACKORDER_FOLDER_ID", "SHAREPOINT_IMPORT_BACKORDERS_FOLDER_ID"),
    )
    sharepoint_dealers_folder_id: str | None = Field(None, alias="SHAREPOINT_IMPORT_DEALERS_FOLDER_ID")

    # --- Timed remote scan ---
    remote_import_enabled: bool = Field(False, alias="REMOTE_IMPORT_ENABLED")
    remote_import_hour_utc: int = Field(2, ge=0, le=23, alias="REMOTE_IMPORT_HOUR_UTC")
    remote_import_minute_utc: int = Field(0, ge=0, le=59, alias="REMOTE_IMPORT_MINUTE_UTC")
    remote_import_loop_tick_seconds: int = Field(60, alias="REMOTE_IMPORT_LOOP_TICK_SECONDS")
    remote_import_lock_ttl_seconds: int = Field(3 * 3600, alias="REMOTE_IMPORT_LOCK_TTL_SECONDS")

    # --- Search index (Typesense) ---
    search_sync_enabled: bool = Field(True, alias="SEARCH_SYNC_ENABLED")
    typesense_url: str = Field("http://localhost:8108", alias="TYPESENSE_URL")
    typesense_api_key: str | None = Field(None, alias="TYPESENSE_API_KEY")
    typesense_alias: str = Field("products", alias="TYPESENSE_ALIAS")
    typesense_timeout_seconds: float = Field(60.0, alias="TYPESENSE_TIMEOUT_SECONDS")
    typesense_max_retries: int = Field(3, alias="TYPESENSE_MAX_RETRIES")
    search_sync_batch_size: int = Field(10_000, alias="SEARCH_SYNC_BATCH_SIZE")

    @field_validator(
        "sharepoint_products_folder_id",
        "sharepoint_superseded_folder_id",
        "sharepoint_order_status_folder_id",
        "sharepoint_backorder_folder_id",
        "sharepoint_dealers_folder_id",
        "typesense_api_key",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v: object) -> object:
        if isinstance(v, str):
            stripped = v.strip()
            return stripped or None
        return v

    @field_validator("import_chunk_size", "search_sync_batch_size")
    @classmethod
    def _positive_batch(cls, v: int) -> int:
        return max(1, int(v))

    @property
    def sharepoint_configured(self) -> bool:
        return bool(
            self.sharepoint_tenant_id
            and self.sharepoint_client_id
            and self.sharepoint_client_secret
            and self.sharepoint_site_id
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
