import logging
from collections.abc import Mapping
from datetime import UTC
from datetime import datetime
from typing import Any

import httpx

from contact_stats.clients.base import QueryFailure


logger = logging.getLogger(__name__)


def _integer_value(value: Any) -> int | None:
    """Decode a Firestore REST integer or double value into an int."""

    if not isinstance(value, Mapping):
        return None
    if "integerValue" in value:
        try:
            return int(value["integerValue"])
        except (TypeError, ValueError):
            return None
    if "doubleValue" in value and isinstance(value["doubleValue"], (int, float)):
        return int(value["doubleValue"])
    return None


def _timestamp_value(moment: datetime) -> dict[str, str]:
    if moment.tzinfo is None:
        raise ValueError("Firestore timestamps must be timezone-aware")
    raw = moment.astimezone(UTC).isoformat(timespec="milliseconds")
    return {"timestampValue": raw.replace("+00:00", "Z")}


def _field_filter(field: str, op: str, value: dict[str, Any]) -> dict[str, Any]:
    return {
        "fieldFilter": {
            "field": {"fieldPath": field},
            "op": op,
            "value": value,
        }
    }


def parse_week_documents(payload: Any) -> dict[str, int]:
    """Build a date -> count mapping from a `runQuery` response body."""

    if not isinstance(payload, list):
        raise ValueError("Firestore runQuery response is invalid")

    counts: dict[str, int] = {}
    for item in payload:
        if not isinstance(item, Mapping):
            continue
        document = item.get("document")
        if not isinstance(document, Mapping):
            continue
        fields = document.get("fields")
        if not isinstance(fields, Mapping):
            continue

        raw_date = fields.get("date")
        day = raw_date.get("stringValue") if isinstance(raw_date, Mapping) else None
        count = _integer_value(fields.get("LogCount"))
        if not isinstance(day, str) or count is None:
            logger.debug("Skipping malformed stats document %s", document.get("name"))
            continue
        counts[day] = count

    return counts


def parse_aggregate_count(payload: Any, alias: str = "count") -> int:
    """Extract the count aggregate from a `runAggregationQuery` response body."""

    if not isinstance(payload, list):
        raise ValueError("Firestore runAggregationQuery response is invalid")

    for item in payload:
        if not isinstance(item, Mapping):
            continue
        result = item.get("result")
        if not isinstance(result, Mapping):
            continue
        fields = result.get("aggregateFields")
        if not isinstance(fields, Mapping):
            continue
        count = _integer_value(fields.get(alias))
        return count or 0

    return 0


class FirestoreCountSource:
    """Count source backed by the Firestore REST API."""

    def __init__(
        self,
        project_id: str,
        stats_collection: str,
        contacts_collection: str,
        base_url: str = "https://firestore.googleapis.com/v1",
        database: str = "(default)",
        api_key: str | None = None,
        bearer_token: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not project_id:
            raise ValueError("Firestore project id is required")

        self.stats_collection = stats_collection
        self.contacts_collection = contacts_collection
        self.documents_url = (
            f"{base_url.rstrip('/')}/projects/{project_id}"
            f"/databases/{database}/documents"
        )

        headers = {
            "Content-Type": "application/json",
            "User-Agent": "contact-stats",
        }
        if bearer_token:
            headers["Authorization"] = f"Bearer {bearer_token}"
        params = {"key": api_key} if api_key else None

        self.client = httpx.AsyncClient(
            headers=headers,
            params=params,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _post(self, action: str, body: dict[str, Any]) -> Any:
        url = f"{self.documents_url}:{action}"
        try:
            response = await self.client.post(url, json=body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise QueryFailure(
                f"Firestore {action} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise QueryFailure(f"Firestore {action} request failed") from exc
        except ValueError as exc:
            raise QueryFailure(f"Firestore {action} returned invalid JSON") from exc

    async def fetch_by_week_tag(self, week_index: int) -> dict[str, int]:
        """Fetch stats documents whose `week` field equals the week index."""

        body = {
            "structuredQuery": {
                "from": [{"collectionId": self.stats_collection}],
                "where": _field_filter(
                    "week", "EQUAL", {"integerValue": str(week_index)}
                ),
            }
        }
        payload = await self._post("runQuery", body)

        try:
            counts = parse_week_documents(payload)
        except ValueError as exc:
            raise QueryFailure(str(exc)) from exc

        logger.debug("Week %s returned %s stats documents", week_index, len(counts))
        return counts

    async def fetch_count_in_range(self, start: datetime, end: datetime) -> int:
        """Count contact documents with `timestamp` inside [start, end]."""

        try:
            start_value = _timestamp_value(start)
            end_value = _timestamp_value(end)
        except ValueError as exc:
            raise QueryFailure(str(exc)) from exc

        body = {
            "structuredAggregationQuery": {
                "structuredQuery": {
                    "from": [{"collectionId": self.contacts_collection}],
                    "where": {
                        "compositeFilter": {
                            "op": "AND",
                            "filters": [
                                _field_filter(
                                    "timestamp", "GREATER_THAN_OR_EQUAL", start_value
                                ),
                                _field_filter(
                                    "timestamp", "LESS_THAN_OR_EQUAL", end_value
                                ),
                            ],
                        }
                    },
                },
                "aggregations": [{"alias": "count", "count": {}}],
            }
        }
        payload = await self._post("runAggregationQuery", body)

        try:
            return parse_aggregate_count(payload)
        except ValueError as exc:
            raise QueryFailure(str(exc)) from exc
