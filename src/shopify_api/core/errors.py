"""Typed error envelope shared by the Shopify and Airtable clients.

Clients never let transport or protocol exceptions escape. Every call returns
an ``ApiResult``; on failure ``errors`` carries one ``ApiError`` whose ``type``
is the only thing callers branch on.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx


class ErrorType(str, Enum):
    """Machine-readable error categories."""

    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    REQUEST_ENTITY_TOO_LARGE = "REQUEST_ENTITY_TOO_LARGE"
    INVALID_REQUEST = "INVALID_REQUEST"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_GATEWAY = "BAD_GATEWAY"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    GRAPHQL_ERROR = "GRAPHQL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# (type, technical message, user-facing message)
ErrorCodeMap = Dict[int, Tuple[ErrorType, str, str]]


@dataclass
class ApiError:
    """A single classified failure."""

    type: ErrorType
    message: str
    user_message: str
    status: int = 0
    original_error: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        if self.original_error is not None and not isinstance(
            self.original_error, (str, int, float, bool, dict, list)
        ):
            data["original_error"] = repr(self.original_error)
        return data


@dataclass
class ApiResult:
    """Envelope returned by every external client call."""

    success: bool
    data: Any = None
    errors: List[ApiError] = field(default_factory=list)
    status: int = 0

    @classmethod
    def ok(cls, data: Any, status: int = 200) -> "ApiResult":
        return cls(success=True, data=data, errors=[], status=status)

    @classmethod
    def fail(cls, error: ApiError) -> "ApiResult":
        return cls(success=False, data=None, errors=[error], status=error.status)

    @property
    def error(self) -> Optional[ApiError]:
        """First error, if any."""
        return self.errors[0] if self.errors else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "errors": [e.to_dict() for e in self.errors],
            "status": self.status,
        }


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def parse_http_error(
    exc: Exception,
    service_name: str,
    code_map: ErrorCodeMap,
    service_error: Optional[Tuple[Optional[str], Optional[str]]] = None,
) -> ApiError:
    """
    Classify an exception raised while talking to an external service.

    Args:
        exc: Exception raised by httpx (or anything else)
        service_name: Human name of the service for user messages
        code_map: HTTP status -> (type, message, user message)
        service_error: Optional (type, message) extracted from the service's
            own error body; its message replaces the generic one

    Returns:
        Classified ApiError
    """
    if isinstance(exc, httpx.TimeoutException):
        return ApiError(
            type=ErrorType.TIMEOUT,
            message="Request timeout",
            user_message="Request timed out. Please try again.",
            status=0,
            original_error=str(exc),
        )

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        body = _response_body(exc.response)
        body_type, body_message = service_error or (None, None)

        if status in code_map:
            error_type, message, user_message = code_map[status]
            return ApiError(
                type=error_type,
                message=body_message or message,
                user_message=user_message,
                status=status,
                original_error=body,
            )

        return ApiError(
            type=ErrorType.UNKNOWN_ERROR,
            message=body_message or body_type or f"Unexpected HTTP status {status}",
            user_message=body_message or "An error occurred while processing your request.",
            status=status,
            original_error=body,
        )

    if isinstance(exc, httpx.TransportError):
        return ApiError(
            type=ErrorType.NETWORK_ERROR,
            message="Network connection error",
            user_message=(
                f"Unable to connect to {service_name}. "
                "Please check your internet connection."
            ),
            status=0,
            original_error=str(exc),
        )

    return ApiError(
        type=ErrorType.UNKNOWN_ERROR,
        message=str(exc) or "Unknown error occurred",
        user_message="An unexpected error occurred. Please try again.",
        status=0,
        original_error=repr(exc),
    )
