"""
Sentry monitoring for calls to the inference server.
Provides a decorator that times each call, tags slow ones and reports failures.
"""

import functools
import logging
import time
from typing import Callable, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Performance thresholds (in seconds)
SLOW_OPERATION_THRESHOLD = 10.0
CRITICAL_OPERATION_THRESHOLD = 30.0


class InferenceSentryMonitor:
    """Sentry helpers for inference operations."""

    MODULE = "chat.inference"

    @staticmethod
    def add_breadcrumb(message: str, level: str = "info", data: Optional[dict] = None):
        sentry_sdk.add_breadcrumb(category=InferenceSentryMonitor.MODULE, message=message, level=level, data=data or {})

    @staticmethod
    def _level_for(execution_time: float) -> str:
        if execution_time > CRITICAL_OPERATION_THRESHOLD:
            return "error"
        elif execution_time > SLOW_OPERATION_THRESHOLD:
            return "warning"
        return "info"

    @staticmethod
    def log_result(operation: str, model: str, success: bool, execution_time: float, error: Optional[BaseException] = None):
        if success:
            level = InferenceSentryMonitor._level_for(execution_time)
            if level == "error":
                logger.error("CRITICAL: %s on %s took %.3fs", operation, model, execution_time)
            elif level == "warning":
                logger.warning("SLOW: %s on %s took %.3fs", operation, model, execution_time)
            else:
                logger.info("%s on %s completed in %.3fs", operation, model, execution_time)
        else:
            logger.warning("%s on %s failed after %.3fs: %s", operation, model, execution_time,
                           type(error).__name__ if error else "unknown")


def track_inference(operation: str) -> Callable:
    """
    Wrap a client method so every call runs inside a Sentry span.
    The wrapped method's instance must expose ``model``.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            model = kwargs.get("model") or getattr(self, "model", "")
            start = time.monotonic()
            with sentry_sdk.start_span(op="inference", name=f"{operation} {model}") as span:
                span.set_data("model", model)
                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    elapsed = time.monotonic() - start
                    span.set_data("error_type", type(e).__name__)
                    InferenceSentryMonitor.add_breadcrumb(f"{operation} failed", level="error",
                                                          data={"model": model, "elapsed": elapsed})
                    InferenceSentryMonitor.log_result(operation, model, False, elapsed, e)
                    sentry_sdk.capture_exception(e)
                    raise
                elapsed = time.monotonic() - start
                span.set_data("execution_time", elapsed)
                InferenceSentryMonitor.log_result(operation, model, True, elapsed)
                return result
        return wrapper
    return decorator
