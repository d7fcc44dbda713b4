"""Core module - Logging, error envelope and error monitoring."""

from shopify_api.core.errors import ApiError, ApiResult, ErrorType
from shopify_api.core.logger import setup_logger

__all__ = ["setup_logger", "ApiError", "ApiResult", "ErrorType"]
