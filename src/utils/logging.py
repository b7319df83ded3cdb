"""
Logging utilities for Lambda functions.

Provides structured JSON logging with correlation IDs for tracing requests.
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Read by every module logger, including on the deadline guard's worker thread
_request_correlation_id: Optional[str] = None


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Set the correlation ID used by all loggers created without an explicit one."""
    global _request_correlation_id
    _request_correlation_id = correlation_id


class StructuredLogger:
    """
    JSON logger for Lambda functions with correlation ID support.

    Example:
        logger = StructuredLogger(__name__)
        logger.info("Uploading build output", bucket="my-spa-bucket", files=42)
    """

    def __init__(self, name: str, correlation_id: Optional[str] = None) -> None:
        self.logger = logging.getLogger(name)
        self.logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))
        self._correlation_id = correlation_id
        self._fallback_id = str(uuid.uuid4())

    @property
    def correlation_id(self) -> str:
        return self._correlation_id or _request_correlation_id or self._fallback_id

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        """Internal method to emit structured JSON logs."""
        if not self.logger.isEnabledFor(getattr(logging, level)):
            return

        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
            "correlationId": self.correlation_id,
            **kwargs,
        }

        # Remove None values
        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        print(json.dumps(log_entry, default=str), flush=True)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info level message."""
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning level message."""
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error level message."""
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug level message."""
        self._log("DEBUG", message, **kwargs)


def get_logger(name: str, correlation_id: Optional[str] = None) -> StructuredLogger:
    """Create a StructuredLogger for a module."""
    return StructuredLogger(name, correlation_id)


def get_correlation_id(event: Dict[str, Any]) -> str:
    """Use the CloudFormation RequestId as correlation ID, generating one if absent."""
    if event.get("RequestId"):
        return str(event["RequestId"])
    return str(uuid.uuid4())
