import httpx
import pytest

from airtable_sync.integrations.airtable import AirtableClient
from shopify_api.core.errors import ErrorType

TABLE = "VIVANTI LONDON ORDER TRACKING"


def _client(handler) -> AirtableClient:
    return AirtableClient(base_id="appTEST", api_key="patTEST", transport=httpx.MockTransport(handler))


def _records(count: int):
    return [{"fields": {"Order Number": f"#{n}-{n}"}} for n in range(count)]


@pytest.mark.asyncio
async def test_create_batch_posts_records(airtable_stub_factory) -> None:
    stub = airtable_stub_factory()
    client = _client(stub)

    result = await client.create_batch(TABLE, _records(3))
    await client.close()

    assert result.success is True
    assert [r["id"] for r in result.data["records"]] == ["rec00001", "rec00002", "rec00003"]
    request = stub.requests[0]
    assert request["method"] == "POST"
    assert request["url"] == "https://api.airtable.com/v0/appTEST/VIVANTI%20LONDON%20ORDER%20TRACKING"
    assert len(request["body"]["records"]) == 3


@pytest.mark.asyncio
async def test_upsert_batch_patches_by_id(airtable_stub_factory) -> None:
    stub = airtable_stub_factory()
    client = _client(stub)

    result = await client.upsert_batch(TABLE, [{"id": "recA", "fields": {"Phone": "1"}}])
    await client.close()

    assert result.success is True
    assert stub.requests[0]["method"] == "PATCH"
    assert result.data["records"][0]["id"] == "recA"


@pytest.mark.asyncio
async def test_more_than_ten_records_is_rejected(airtable_stub_factory) -> None:
    stub = airtable_stub_factory()
    client = _client(stub)

    with pytest.raises(ValueError):
        await client.create_batch(TABLE, _records(11))
    with pytest.raises(ValueError):
        await client.upsert_batch(TABLE, [{"id": f"rec{n}", "fields": {}} for n in range(11)])
    await client.close()

    assert stub.requests == []


@pytest.mark.asyncio
async def test_rate_limit_is_distinct_type(airtable_stub_factory) -> None:
    client = _client(airtable_stub_factory(fail_statuses=[429]))

    result = await client.create_batch(TABLE, _records(1))
    await client.close()

    assert result.success is False
    assert result.error.type == ErrorType.RATE_LIMIT_EXCEEDED
    assert result.error.status == 429


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, expected",
    [
        (401, ErrorType.UNAUTHORIZED),
        (403, ErrorType.FORBIDDEN),
        (404, ErrorType.NOT_FOUND),
        (413, ErrorType.REQUEST_ENTITY_TOO_LARGE),
        (422, ErrorType.INVALID_REQUEST),
        (502, ErrorType.BAD_GATEWAY),
    ],
)
async def test_status_codes_are_mapped(airtable_stub_factory, status, expected) -> None:
    client = _client(airtable_stub_factory(fail_statuses=[status]))

    result = await client.create_batch(TABLE, _records(1))
    await client.close()

    assert result.error.type == expected
    assert result.error.message == f"status {status}"


@pytest.mark.asyncio
async def test_string_error_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "NOT_FOUND"})

    client = _client(handler)
    result = await client.list_records(TABLE, pageSize=5)
    await client.close()

    assert result.error.type == ErrorType.NOT_FOUND
    assert result.error.message == "Route or resource is not found."


@pytest.mark.asyncio
async def test_list_records_passes_params() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"records": [], "offset": None})

    client = _client(handler)
    result = await client.list_records(TABLE, pageSize=5, view="Grid view")
    await client.close()

    assert result.success is True
    assert seen["params"] == {"pageSize": "5", "view": "Grid view"}


@pytest.mark.asyncio
async def test_network_error_is_returned() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    client = _client(handler)
    result = await client.create_batch(TABLE, _records(1))
    await client.close()

    assert result.success is False
    assert result.error.type == ErrorType.NETWORK_ERROR
