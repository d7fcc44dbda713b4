"""Airtable REST API client."""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from shopify_api.config.constants import (
    AIRTABLE_API_URL,
    AIRTABLE_MAX_RECORDS_PER_REQUEST,
    HTTP_TIMEOUT_SECONDS,
)
from shopify_api.core.errors import ApiResult, ErrorCodeMap, ErrorType, parse_http_error
from shopify_api.core.logger import setup_logger

logger = setup_logger(__name__)

AIRTABLE_ERROR_CODES: ErrorCodeMap = {
    400: (
        ErrorType.BAD_REQUEST,
        "The request encoding is invalid; the request cannot be parsed as valid JSON.",
        "Invalid request format. Please check your data and try again.",
    ),
    401: (
        ErrorType.UNAUTHORIZED,
        "Accessing a protected resource without authorization or with invalid credentials.",
        "Authentication failed. Please check your API key.",
    ),
    402: (
        ErrorType.PAYMENT_REQUIRED,
        "The account associated with the API key has hit a quota limit.",
        "API quota exceeded. Please upgrade your Airtable plan.",
    ),
    403: (
        ErrorType.FORBIDDEN,
        "Accessing a protected resource with API credentials that do not have access.",
        "Access denied. Check your API key permissions.",
    ),
    404: (
        ErrorType.NOT_FOUND,
        "Route or resource is not found.",
        "The requested resource was not found.",
    ),
    413: (
        ErrorType.REQUEST_ENTITY_TOO_LARGE,
        "The request exceeded the maximum allowed payload size.",
        "Request data is too large. Please reduce the payload size.",
    ),
    422: (
        ErrorType.INVALID_REQUEST,
        "The request data is invalid.",
        "Invalid request data. Please check your input.",
    ),
    429: (
        ErrorType.RATE_LIMIT_EXCEEDED,
        "Rate limit exceeded. Please try again later.",
        "Too many requests. Please wait 30 seconds and try again.",
    ),
    500: (
        ErrorType.INTERNAL_SERVER_ERROR,
        "The server encountered an unexpected condition.",
        "Server error occurred. Please try again later.",
    ),
    502: (
        ErrorType.BAD_GATEWAY,
        "Airtable servers are restarting or an unexpected outage is in progress.",
        "Service temporarily unavailable. Please try again.",
    ),
    503: (
        ErrorType.SERVICE_UNAVAILABLE,
        "The server could not process your request in time.",
        "Service is temporarily unavailable. Please try again.",
    ),
}


def _airtable_error_body(response: httpx.Response):
    """Airtable errors look like ``{"error": {"type", "message"}}`` or ``{"error": "TYPE"}``."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("type"), error.get("message")
    if isinstance(error, str):
        return error, None
    return None


class AirtableClient:
    """Async HTTP client for one Airtable base."""

    def __init__(
        self,
        base_id: str,
        api_key: str,
        api_url: str = AIRTABLE_API_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client with credentials.

        Args:
            base_id: Airtable base id (``app...``)
            api_key: Personal access token
            api_url: API root
            timeout: Request-level timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_id = base_id
        self.base_url = f"{api_url.rstrip('/')}/{base_id}"
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/{quote(table, safe='')}"

    async def _make_request(
        self,
        method: str,
        table: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> ApiResult:
        try:
            response = await self.client.request(
                method, self._table_url(table), json=json, params=params
            )
            response.raise_for_status()
            return ApiResult.ok(response.json(), status=response.status_code)

        except httpx.HTTPStatusError as e:
            error = parse_http_error(
                e, "Airtable", AIRTABLE_ERROR_CODES, _airtable_error_body(e.response)
            )
            logger.error(
                f"Airtable {method} {table} failed: {error.type.value} ({error.status}) - {error.message}"
            )
            return ApiResult.fail(error)
        except Exception as e:
            error = parse_http_error(e, "Airtable", AIRTABLE_ERROR_CODES)
            logger.error(f"Airtable {method} {table} failed: {error.type.value} - {error.message}")
            return ApiResult.fail(error)

    @staticmethod
    def _check_batch(records: List[Dict[str, Any]]) -> None:
        if len(records) > AIRTABLE_MAX_RECORDS_PER_REQUEST:
            raise ValueError(
                f"Airtable accepts at most {AIRTABLE_MAX_RECORDS_PER_REQUEST} records "
                f"per request, got {len(records)}"
            )

    async def create_batch(self, table: str, records: List[Dict[str, Any]]) -> ApiResult:
        """
        Create up to 10 records.

        Args:
            table: Table name or id
            records: ``[{"fields": {...}}]``

        Returns:
            ApiResult with ``{"records": [{"id", "fields", "createdTime"}]}``

        Raises:
            ValueError: More than 10 records were given
        """
        self._check_batch(records)
        return await self._make_request("POST", table, json={"records": records})

    async def upsert_batch(self, table: str, records: List[Dict[str, Any]]) -> ApiResult:
        """
        Update up to 10 existing records by id (PATCH).

        Args:
            table: Table name or id
            records: ``[{"id": "rec...", "fields": {...}}]``

        Raises:
            ValueError: More than 10 records were given
        """
        self._check_batch(records)
        return await self._make_request("PATCH", table, json={"records": records})

    async def list_records(self, table: str, **params) -> ApiResult:
        """One page of records (``pageSize``, ``offset``, ``view``, ``filterByFormula``...)."""
        return await self._make_request("GET", table, params=params or None)

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()
