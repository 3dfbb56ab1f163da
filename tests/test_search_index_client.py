from __future__ import annotations

import json

import httpx
import pytest

from catalog_sync.services.search_index import (
    API_KEY_HEADER,
    SearchEngineError,
    TypesenseClient,
    product_collection_schema,
)


def _client(handler) -> TypesenseClient:
    return TypesenseClient(
        base_url="http://typesense.test:8108/",
        api_key="secret",
        max_retries=0,
        transport=httpx.MockTransport(handler),
    )


def test_collection_schema_has_price_tiers_and_optional_dimensions() -> None:
    schema = product_collection_schema("products_1")
    fields = {f["name"]: f for f in schema["fields"]}

    assert schema["name"] == "products_1"
    assert [f"net{i}" for i in range(1, 8)] == [n for n in fields if n.startswith("net")]
    assert fields["stock"]["type"] == "int32"
    assert fields["weight"]["optional"] is True
    assert fields["supersededBy"]["optional"] is True
    assert fields["createdAt"]["type"] == "int64"


@pytest.mark.asyncio
async def test_import_documents_sends_jsonl_and_counts_failures() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["action"] = request.url.params.get("action")
        seen["key"] = request.headers.get(API_KEY_HEADER)
        seen["lines"] = [json.loads(line) for line in request.content.decode().splitlines()]
        return httpx.Response(
            200,
            text='{"success": true}\n{"success": false, "error": "Field `stock` must be an int32."}\n',
        )

    client = _client(handler)
    try:
        result = await client.import_documents(
            "products_1", [{"id": "A", "stock": 1}, {"id": "B", "stock": "x"}], action="create"
        )
    finally:
        await client.aclose()

    assert seen["path"] == "/collections/products_1/documents/import"
    assert seen["action"] == "create"
    assert seen["key"] == "secret"
    assert seen["lines"] == [{"id": "A", "stock": 1}, {"id": "B", "stock": "x"}]
    assert result.success_count == 1
    assert result.failed_count == 1
    assert result.errors == ["Field `stock` must be an int32."]


@pytest.mark.asyncio
async def test_alias_lookup_and_upsert() -> None:
    requests: list[tuple[str, str, bytes]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.method, request.url.path, request.content))
        if request.method == "GET" and request.url.path == "/aliases/missing":
            return httpx.Response(404, json={"message": "Not Found"})
        if request.method == "GET":
            return httpx.Response(200, json={"name": "products", "collection_name": "products_1"})
        return httpx.Response(200, json={"name": "products", "collection_name": "products_2"})

    client = _client(handler)
    try:
        assert await client.get_alias_target("missing") is None
        assert await client.get_alias_target("products") == "products_1"
        await client.upsert_alias("products", "products_2")
    finally:
        await client.aclose()

    method, path, body = requests[-1]
    assert (method, path) == ("PUT", "/aliases/products")
    assert json.loads(body) == {"collection_name": "products_2"}


@pytest.mark.asyncio
async def test_error_status_raises_search_engine_error() -> None:
    client = _client(lambda request: httpx.Response(409, text="collection already exists"))
    try:
        with pytest.raises(SearchEngineError, match="409"):
            await client.create_collection(product_collection_schema("products_1"))
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_transport_errors_become_search_engine_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    try:
        with pytest.raises(SearchEngineError):
            await client.delete_collection("products_1")
    finally:
        await client.aclose()
