import json
from datetime import UTC
from datetime import datetime

import httpx
import pytest

from contact_stats.clients.base import QueryFailure
from contact_stats.clients.firestore_client import FirestoreCountSource
from contact_stats.clients.firestore_client import parse_aggregate_count
from contact_stats.clients.firestore_client import parse_week_documents


def make_source(handler, **kwargs) -> FirestoreCountSource:
    return FirestoreCountSource(
        project_id="demo-project",
        stats_collection="LogBookContactStats",
        contacts_collection="LogBookContact",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def stats_document(day: str, count: int, week: int) -> dict[str, object]:
    return {
        "document": {
            "name": f"projects/demo-project/databases/(default)/documents/x/{day}",
            "fields": {
                "date": {"stringValue": day},
                "LogCount": {"integerValue": str(count)},
                "week": {"integerValue": str(week)},
            },
        },
        "readTime": "2024-02-01T00:00:00Z",
    }


def test_parse_week_documents_skips_malformed_entries() -> None:
    payload = [
        stats_document("2024-01-02", 5, 1),
        {"readTime": "2024-02-01T00:00:00Z"},
        {"document": {"name": "broken", "fields": {"date": {"stringValue": "x"}}}},
        stats_document("2024-01-04", 0, 1),
    ]

    assert parse_week_documents(payload) == {"2024-01-02": 5, "2024-01-04": 0}


def test_parse_week_documents_rejects_non_list_payload() -> None:
    with pytest.raises(ValueError):
        parse_week_documents({"error": "nope"})


def test_parse_aggregate_count_defaults_to_zero() -> None:
    assert parse_aggregate_count([{"readTime": "2024-02-01T00:00:00Z"}]) == 0
    assert (
        parse_aggregate_count(
            [{"result": {"aggregateFields": {"count": {"integerValue": "12"}}}}]
        )
        == 12
    )


@pytest.mark.asyncio
async def test_fetch_by_week_tag_sends_week_filter() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[stats_document("2024-01-09", 3, 2)])

    source = make_source(handler, api_key="test-key")
    counts = await source.fetch_by_week_tag(2)
    await source.aclose()

    assert counts == {"2024-01-09": 3}
    request = requests[0]
    assert request.url.path == (
        "/v1/projects/demo-project/databases/(default)/documents:runQuery"
    )
    assert request.url.params["key"] == "test-key"
    body = json.loads(request.content)
    assert body["structuredQuery"]["from"] == [
        {"collectionId": "LogBookContactStats"}
    ]
    assert body["structuredQuery"]["where"] == {
        "fieldFilter": {
            "field": {"fieldPath": "week"},
            "op": "EQUAL",
            "value": {"integerValue": "2"},
        }
    }


@pytest.mark.asyncio
async def test_fetch_count_in_range_sends_timestamp_bounds() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json=[{"result": {"aggregateFields": {"count": {"integerValue": "7"}}}}],
        )

    source = make_source(handler, bearer_token="secret")
    count = await source.fetch_count_in_range(
        datetime(2024, 1, 2, tzinfo=UTC),
        datetime(2024, 1, 2, 23, 59, 59, 999000, tzinfo=UTC),
    )
    await source.aclose()

    assert count == 7
    request = requests[0]
    assert request.url.path.endswith("documents:runAggregationQuery")
    assert request.headers["Authorization"] == "Bearer secret"
    body = json.loads(request.content)["structuredAggregationQuery"]
    assert body["aggregations"] == [{"alias": "count", "count": {}}]
    filters = body["structuredQuery"]["where"]["compositeFilter"]["filters"]
    assert [item["fieldFilter"]["op"] for item in filters] == [
        "GREATER_THAN_OR_EQUAL",
        "LESS_THAN_OR_EQUAL",
    ]
    assert [item["fieldFilter"]["value"]["timestampValue"] for item in filters] == [
        "2024-01-02T00:00:00.000Z",
        "2024-01-02T23:59:59.999Z",
    ]


@pytest.mark.asyncio
async def test_http_error_raises_query_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"status": "PERMISSION_DENIED"}})

    source = make_source(handler)

    with pytest.raises(QueryFailure):
        await source.fetch_by_week_tag(1)
    await source.aclose()


@pytest.mark.asyncio
async def test_transport_error_raises_query_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    source = make_source(handler)

    with pytest.raises(QueryFailure):
        await source.fetch_count_in_range(
            datetime(2024, 1, 2, tzinfo=UTC),
            datetime(2024, 1, 2, 23, 59, 59, tzinfo=UTC),
        )
    await source.aclose()


@pytest.mark.asyncio
async def test_naive_datetimes_are_rejected() -> None:
    source = make_source(lambda request: httpx.Response(200, json=[]))

    with pytest.raises(QueryFailure):
        await source.fetch_count_in_range(
            datetime(2024, 1, 2), datetime(2024, 1, 2, 23, 59, 59)
        )
    await source.aclose()


def test_project_id_is_required() -> None:
    with pytest.raises(ValueError):
        FirestoreCountSource(
            project_id="",
            stats_collection="LogBookContactStats",
            contacts_collection="LogBookContact",
        )
