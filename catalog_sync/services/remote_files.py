from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from catalog_sync.core.config import Settings
from catalog_sync.services.http_retry import request_with_retry


logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
DOWNLOAD_URL_KEY = "@microsoft.graph.downloadUrl"
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class RemoteFileStoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class RemoteFile:
    id: str
    name: str
    size: int
    modified_at: datetime


class RemoteFileStore(Protocol):
    async def list_files(self, folder_id: str) -> list[RemoteFile]: ...

    async def download_file(self, file_id: str) -> bytes: ...


def parse_graph_datetime(value: str | None) -> datetime:
    if not value:
        raise RemoteFileStoreError("Drive item is missing lastModifiedDateTime")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise RemoteFileStoreError(f"Invalid lastModifiedDateTime: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class GraphRemoteFileStore:
    """SharePoint document library access through Microsoft Graph (app-only token)."""

    def __init__(
        self,
        *,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        site_id: str,
        graph_base_url: str = "https://graph.microsoft.com/v1.0",
        auth_base_url: str = "https://login.microsoftonline.com",
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._site_id = site_id
        self._graph_base_url = graph_base_url.rstrip("/")
        self._auth_base_url = auth_base_url.rstrip("/")
        self._max_retries = max_retries
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout=timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )
        self._token: str | None = None
        self._token_expires_at = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> GraphRemoteFileStore:
        return cls(
            tenant_id=settings.sharepoint_tenant_id or "",
            client_id=settings.sharepoint_client_id or "",
            client_secret=settings.sharepoint_client_secret or "",
            site_id=settings.sharepoint_site_id or "",
            graph_base_url=settings.graph_base_url,
            auth_base_url=settings.graph_auth_base_url,
            timeout_seconds=settings.remote_http_timeout_seconds,
            max_retries=settings.remote_http_max_retries,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            r = await request_with_retry(self._client, method, url, max_retries=self._max_retries, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteFileStoreError(f"{method} {url} failed: {exc}") from exc
        try:
            r.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteFileStoreError(
                f"Graph request failed ({exc.response.status_code}): {exc.response.text[:500]}"
            ) from exc
        return r

    async def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        r = await self._send(
            "POST",
            f"{self._auth_base_url}/{self._tenant_id}/oauth2/v2.0/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "scope": GRAPH_SCOPE,
            },
        )
        payload = r.json()
        token = payload.get("access_token")
        if not token:
            raise RemoteFileStoreError("Token response missing 'access_token'")
        expires_in = int(payload.get("expires_in") or 3600)
        self._token = str(token)
        self._token_expires_at = time.monotonic() + max(0, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
        return self._token

    async def _graph_get(self, url: str) -> dict[str, Any]:
        token = await self._access_token()
        r = await self._send("GET", url, headers={"Authorization": f"Bearer {token}"})
        return r.json()

    async def list_files(self, folder_id: str) -> list[RemoteFile]:
        files: list[RemoteFile] = []
        next_url: str | None = f"{self._graph_base_url}/sites/{self._site_id}/drive/items/{folder_id}/children"
        while next_url:
            payload = await self._graph_get(next_url)
            for item in payload.get("value") or []:
                # Folders have no "file" facet.
                if not isinstance(item, dict) or "file" not in item:
                    continue
                files.append(
                    RemoteFile(
                        id=str(item["id"]),
                        name=str(item.get("name") or ""),
                        size=int(item.get("size") or 0),
                        modified_at=parse_graph_datetime(item.get("lastModifiedDateTime")),
                    )
                )
            next_url = payload.get("@odata.nextLink")
        return files

    async def download_file(self, file_id: str) -> bytes:
        item = await self._graph_get(f"{self._graph_base_url}/sites/{self._site_id}/drive/items/{file_id}")
        download_url = item.get(DOWNLOAD_URL_KEY)
        if not download_url:
            raise RemoteFileStoreError(f"Could not get download URL for file {file_id}")
        # Pre-authenticated URL; no bearer token.
        r = await self._send("GET", str(download_url))
        return r.content
