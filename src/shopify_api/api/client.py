"""Shopify Admin GraphQL API client."""

import asyncio
import math
from typing import Any, Dict, List, Optional

import httpx

from shopify_api.config.constants import (
    HTTP_TIMEOUT_SECONDS,
    ORDER_PAGE_SIZE,
    SHOPIFY_PAGE_DELAY_SECONDS,
)
from shopify_api.core.errors import (
    ApiError,
    ApiResult,
    ErrorCodeMap,
    ErrorType,
    parse_http_error,
)
from shopify_api.core.logger import setup_logger
from .queries import ORDER_BY_ID_QUERY, ORDERS_QUERY

logger = setup_logger(__name__)

SHOPIFY_ERROR_CODES: ErrorCodeMap = {
    400: (
        ErrorType.BAD_REQUEST,
        "The request is malformed or invalid.",
        "Invalid request. Please check your parameters.",
    ),
    401: (
        ErrorType.UNAUTHORIZED,
        "Authentication failed.",
        "Authentication failed. Please check your access token.",
    ),
    402: (
        ErrorType.PAYMENT_REQUIRED,
        "The shop is frozen or its plan does not allow this request.",
        "The Shopify store is unavailable. Please check the store's billing.",
    ),
    403: (
        ErrorType.FORBIDDEN,
        "Access denied.",
        "Access denied. Check your permissions.",
    ),
    404: (
        ErrorType.NOT_FOUND,
        "Resource not found.",
        "The requested resource was not found.",
    ),
    413: (
        ErrorType.REQUEST_ENTITY_TOO_LARGE,
        "The request payload is too large.",
        "Request data is too large. Please reduce the page size.",
    ),
    422: (
        ErrorType.INVALID_REQUEST,
        "The request cannot be processed.",
        "The request cannot be processed. Please check your data.",
    ),
    429: (
        ErrorType.RATE_LIMIT_EXCEEDED,
        "Rate limit exceeded.",
        "Too many requests. Please wait and try again.",
    ),
    500: (
        ErrorType.INTERNAL_SERVER_ERROR,
        "Shopify server error.",
        "Shopify server error. Please try again later.",
    ),
    502: (
        ErrorType.BAD_GATEWAY,
        "Shopify gateway error.",
        "Shopify service temporarily unavailable.",
    ),
    503: (
        ErrorType.SERVICE_UNAVAILABLE,
        "Shopify service unavailable.",
        "Shopify service is temporarily unavailable.",
    ),
}


def parse_graphql_errors(errors: List[Dict[str, Any]], status: int = 200) -> ApiError:
    """Classify GraphQL-level errors returned inside a 200 response."""
    first = errors[0] if errors else {}
    code = (first.get("extensions") or {}).get("code")
    message = first.get("message") or "GraphQL error occurred"

    if code == "THROTTLED":
        return ApiError(
            type=ErrorType.RATE_LIMIT_EXCEEDED,
            message=message,
            user_message="Shopify query cost limit reached. Please wait and try again.",
            status=status,
            original_error=first,
        )

    return ApiError(
        type=ErrorType.GRAPHQL_ERROR,
        message=message,
        user_message=message,
        status=status,
        original_error=first,
    )


def _shopify_error_body(response: httpx.Response):
    """Extract (type, message) from a Shopify error body, if it has one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    errors = body.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0] if isinstance(errors[0], dict) else {"message": str(errors[0])}
        return (first.get("extensions") or {}).get("code"), first.get("message")
    if isinstance(errors, str):
        return None, errors
    return None


class ShopifyAPIClient:
    """Async HTTP client for the Shopify Admin GraphQL API."""

    def __init__(
        self,
        shop_name: str,
        access_token: str,
        api_version: str = "2024-10",
        timeout: float = HTTP_TIMEOUT_SECONDS,
        page_delay: float = SHOPIFY_PAGE_DELAY_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client with credentials.

        Args:
            shop_name: Shop domain (e.g. ``my-store.myshopify.com``)
            access_token: Admin API access token
            api_version: Admin API version segment
            timeout: Request-level timeout in seconds
            page_delay: Pause between order pages in seconds
            transport: Optional httpx transport (tests)
        """
        self.shop_name = shop_name
        self.api_version = api_version
        self.page_delay = page_delay
        self.graphql_url = f"https://{shop_name}/admin/api/{api_version}/graphql.json"
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def query(self, query: str, variables: Optional[dict] = None) -> ApiResult:
        """
        Execute a GraphQL document.

        Args:
            query: GraphQL query text
            variables: Query variables

        Returns:
            ApiResult with the ``data`` member of the GraphQL response
        """
        try:
            response = await self.client.post(
                self.graphql_url,
                json={"query": query, "variables": variables or {}},
            )
            response.raise_for_status()
            body = response.json()

            if body.get("errors"):
                error = parse_graphql_errors(body["errors"], status=response.status_code)
                logger.error(f"GraphQL error from Shopify: {error.message}")
                return ApiResult.fail(error)

            return ApiResult.ok(body.get("data"), status=response.status_code)

        except httpx.HTTPStatusError as e:
            error = parse_http_error(
                e, "Shopify", SHOPIFY_ERROR_CODES, _shopify_error_body(e.response)
            )
            logger.error(f"HTTP error calling Shopify: {error.type.value} ({error.status})")
            return ApiResult.fail(error)
        except Exception as e:
            error = parse_http_error(e, "Shopify", SHOPIFY_ERROR_CODES)
            logger.error(f"Error calling Shopify: {error.type.value} - {error.message}")
            return ApiResult.fail(error)

    async def fetch_all_orders(self, batch_size: int = ORDER_PAGE_SIZE) -> ApiResult:
        """
        Fetch every order using cursor pagination.

        Pages are requested sequentially with ``page_delay`` between them.
        The first failing page aborts the whole fetch; orders gathered so far
        are discarded.

        Args:
            batch_size: Orders per page

        Returns:
            ApiResult with data ``{orders, total_count, batch_size, total_batches}``
        """
        all_orders: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        has_next_page = True
        pages = 0

        logger.info(f"Starting to fetch all orders with batch size: {batch_size}")

        while has_next_page:
            result = await self.query(ORDERS_QUERY, {"first": batch_size, "after": cursor})

            if not result.success:
                logger.error(
                    f"Error fetching orders page {pages + 1}, "
                    f"discarding {len(all_orders)} fetched orders"
                )
                return result

            connection = (result.data or {}).get("orders")
            if not connection:
                break

            orders = connection.get("nodes") or []
            page_info = connection.get("pageInfo") or {}
            all_orders.extend(orders)
            pages += 1

            logger.info(f"Fetched {len(orders)} orders (Total: {len(all_orders)})")

            has_next_page = bool(page_info.get("hasNextPage"))
            cursor = page_info.get("endCursor")

            if has_next_page:
                await asyncio.sleep(self.page_delay)

        logger.info(f"Successfully fetched all {len(all_orders)} orders in {pages} page(s)")

        return ApiResult.ok({
            "orders": all_orders,
            "total_count": len(all_orders),
            "batch_size": batch_size,
            "total_batches": math.ceil(len(all_orders) / batch_size) if batch_size else 0,
        })

    async def fetch_order_by_id(self, order_id: str) -> ApiResult:
        """
        Fetch a single order.

        Args:
            order_id: Order GID (``gid://shopify/Order/...``) or numeric legacy id

        Returns:
            ApiResult with the order node, or a NOT_FOUND error
        """
        if str(order_id).isdigit():
            order_id = f"gid://shopify/Order/{order_id}"

        logger.info(f"Fetching order by ID: {order_id}")
        result = await self.query(ORDER_BY_ID_QUERY, {"id": order_id})

        if not result.success:
            return result

        order = (result.data or {}).get("order")
        if not order:
            return ApiResult.fail(ApiError(
                type=ErrorType.NOT_FOUND,
                message="Order not found",
                user_message="The specified order was not found.",
                status=404,
                original_error=order_id,
            ))

        logger.info(f"Successfully fetched order: {order.get('name')}")
        return ApiResult.ok(order, status=result.status)

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()
