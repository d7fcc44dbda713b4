"""
GlitchTip Error Monitoring Utilities

Helper functions for error tracking and context management.
"""

from typing import Any, Dict, Optional

import sentry_sdk

from shopify_api.core.logger import setup_logger

logger = setup_logger(__name__)


def set_sync_context(
    job_id: str,
    triggered_by: Optional[str] = None,
    stage: Optional[str] = None,
    **extra_tags
) -> None:
    """
    Set sync-job context for error tracking.

    Args:
        job_id: Sync job identifier
        triggered_by: Trigger origin (manual, scheduled, webhook)
        stage: Stage currently executing
        **extra_tags: Additional tags to add
    """
    try:
        sentry_sdk.set_tag("sync.job_id", job_id)
        if triggered_by:
            sentry_sdk.set_tag("sync.triggered_by", triggered_by)
        if stage:
            sentry_sdk.set_tag("sync.stage", stage)

        for key, value in extra_tags.items():
            sentry_sdk.set_tag(key, value)

        context_data = {
            "job_id": job_id,
            "triggered_by": triggered_by,
            "stage": stage,
        }
        context_data.update(extra_tags)
        sentry_sdk.set_context("sync", context_data)

    except Exception as e:
        logger.warning(f"Failed to set sync context: {e}")


def capture_exception(
    error: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error"
) -> None:
    """
    Capture an exception and send to GlitchTip.

    Args:
        error: The exception to capture
        context: Additional context data
        level: Error level (error, warning, info)
    """
    try:
        if context:
            with sentry_sdk.new_scope() as scope:
                scope.set_context("custom", context)
                scope.set_level(level)
                sentry_sdk.capture_exception(error)
        else:
            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception in GlitchTip: {e}")


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Capture a message and send to GlitchTip.

    Args:
        message: Message to capture
        level: Message level (info, warning, error)
        context: Additional context data
    """
    try:
        if context:
            with sentry_sdk.new_scope() as scope:
                scope.set_context("custom", context)
                scope.set_level(level)
                sentry_sdk.capture_message(message)
        else:
            sentry_sdk.capture_message(message, level=level)

    except Exception as e:
        logger.warning(f"Failed to capture message in GlitchTip: {e}")
