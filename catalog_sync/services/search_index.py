from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from catalog_sync.core.config import Settings
from catalog_sync.services.http_retry import request_with_retry


logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-TYPESENSE-API-KEY"
IMPORT_ERROR_SAMPLE_SIZE = 5


class SearchEngineError(RuntimeError):
    pass


@dataclass
class DocumentImportResult:
    success_count: int = 0
    failed_count: int = 0
    errors: list[str] = field(default_factory=list)


def product_collection_schema(name: str) -> dict[str, Any]:
    return {
        "name": name,
        "fields": [
            {"name": "code", "type": "string", "facet": True, "infix": True},
            {"name": "name", "type": "string", "infix": True},
            {"name": "type", "type": "string", "facet": True},
            {"name": "supplierCode", "type": "string", "facet": True, "optional": True},
            {"name": "stock", "type": "int32"},
            {"name": "currency", "type": "string", "facet": True},
            *({"name": f"net{i}", "type": "float"} for i in range(1, 8)),
            {"name": "height", "type": "float", "optional": True},
            {"name": "length", "type": "float", "optional": True},
            {"name": "width", "type": "float", "optional": True},
            {"name": "weight", "type": "float", "optional": True},
            {"name": "createdAt", "type": "int64"},
            {"name": "updatedAt", "type": "int64"},
            {"name": "image", "type": "string", "optional": True},
            {"name": "supersededBy", "type": "string", "optional": True},
        ],
    }


class SearchEngine(Protocol):
    async def create_collection(self, schema: dict[str, Any]) -> None: ...

    async def import_documents(
        self, collection: str, documents: list[dict[str, Any]], *, action: str
    ) -> DocumentImportResult: ...

    async def get_alias_target(self, alias: str) -> str | None: ...

    async def upsert_alias(self, alias: str, collection: str) -> None: ...

    async def delete_collection(self, name: str) -> None: ...


def _raise_for_status(response: httpx.Response, what: str) -> None:
    if response.is_success:
        return
    raise SearchEngineError(f"Typesense {what} failed ({response.status_code}): {response.text[:500]}")


class TypesenseClient:
    """Typesense REST API over httpx; implements `SearchEngine`."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 60.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={API_KEY_HEADER: api_key},
            timeout=httpx.Timeout(timeout=timeout_seconds),
            transport=transport,
        )
        self._max_retries = max_retries

    @classmethod
    def from_settings(cls, settings: Settings) -> TypesenseClient:
        return cls(
            base_url=settings.typesense_url,
            api_key=settings.typesense_api_key or "",
            timeout_seconds=settings.typesense_timeout_seconds,
            max_retries=settings.typesense_max_retries,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await request_with_retry(self._client, method, path, max_retries=self._max_retries, **kwargs)
        except httpx.HTTPError as exc:
            raise SearchEngineError(f"Typesense {method} {path} failed: {exc}") from exc

    async def create_collection(self, schema: dict[str, Any]) -> None:
        r = await self._request("POST", "/collections", json=schema)
        _raise_for_status(r, f"create collection {schema.get('name')}")

    async def import_documents(
        self, collection: str, documents: list[dict[str, Any]], *, action: str
    ) -> DocumentImportResult:
        result = DocumentImportResult()
        if not documents:
            return result

        body = "\n".join(json.dumps(doc, ensure_ascii=False) for doc in documents)
        r = await self._request(
            "POST",
            f"/collections/{collection}/documents/import",
            params={"action": action},
            content=body.encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        )
        _raise_for_status(r, f"import into {collection}")

        for line in r.text.splitlines():
            if not line.strip():
                continue
            try:
                item = json.loads(line)
            except ValueError:
                item = {"success": False, "error": line}
            if item.get("success"):
                result.success_count += 1
                continue
            result.failed_count += 1
            if len(result.errors) < IMPORT_ERROR_SAMPLE_SIZE:
                result.errors.append(str(item.get("error") or "unknown error"))
        return result

    async def get_alias_target(self, alias: str) -> str | None:
        r = await self._request("GET", f"/aliases/{alias}")
        if r.status_code == 404:
            return None
        _raise_for_status(r, f"get alias {alias}")
        target = r.json().get("collection_name")
        return str(target) if target else None

    async def upsert_alias(self, alias: str, collection: str) -> None:
        r = await self._request("PUT", f"/aliases/{alias}", json={"collection_name": collection})
        _raise_for_status(r, f"upsert alias {alias}")

    async def delete_collection(self, name: str) -> None:
        r = await self._request("DELETE", f"/collections/{name}")
        _raise_for_status(r, f"delete collection {name}")
