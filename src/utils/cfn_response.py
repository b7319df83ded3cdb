"""
CloudFormation custom resource response delivery.

Sends the SUCCESS/FAILED result to the pre-signed ResponseURL from the event.
CloudFormation waits (up to an hour) for this call, so it must happen exactly
once per invocation whatever the outcome.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

try:  # pragma: no cover
    from utils.logging import get_logger
except ModuleNotFoundError:  # pragma: no cover
    from .logging import get_logger

logger = get_logger(__name__)

SUCCESS = "SUCCESS"
FAILED = "FAILED"

MAX_RESPONSE_BYTES = 4096
MAX_ATTEMPTS = 3
BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 10.0


@dataclass
class CfnResult:
    """Outcome of one custom resource invocation."""

    status: str = SUCCESS
    physical_resource_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    no_echo: bool = False


def build_response_body(event: Dict[str, Any], context: Any, result: CfnResult) -> Dict[str, Any]:
    """Assemble the JSON document CloudFormation expects at the ResponseURL."""
    log_stream = getattr(context, "log_stream_name", None) or "unknown"
    body: Dict[str, Any] = {
        "Status": result.status,
        "Reason": result.reason or f"See the details in CloudWatch Log Stream: {log_stream}",
        "PhysicalResourceId": (
            result.physical_resource_id or event.get("PhysicalResourceId") or log_stream
        ),
        "StackId": event["StackId"],
        "RequestId": event["RequestId"],
        "LogicalResourceId": event["LogicalResourceId"],
        "NoEcho": result.no_echo,
    }
    if result.data is not None:
        body["Data"] = result.data
    return _fit_reason(body)


def _fit_reason(body: Dict[str, Any]) -> Dict[str, Any]:
    # CloudFormation rejects response bodies over 4096 bytes
    overflow = len(json.dumps(body).encode("utf-8")) - MAX_RESPONSE_BYTES
    if overflow <= 0:
        return body
    reason = body["Reason"].encode("utf-8")
    keep = max(len(reason) - overflow - len(" ...[truncated]"), 0)
    body["Reason"] = reason[:keep].decode("utf-8", errors="ignore") + " ...[truncated]"
    return body


def send_response(
    event: Dict[str, Any],
    context: Any,
    result: CfnResult,
    *,
    client: Optional[httpx.Client] = None,
) -> None:
    """
    PUT the result to the event's ResponseURL.

    Retries transport errors and non-2xx responses with exponential backoff.

    Raises:
        httpx.HTTPError: If every attempt fails
    """
    body = json.dumps(build_response_body(event, context, result))
    headers = {"Content-Type": "", "Content-Length": str(len(body.encode("utf-8")))}
    http = client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    logger.info(
        "Sending CloudFormation response",
        status=result.status,
        physicalResourceId=result.physical_resource_id,
        reason=result.reason,
    )
    try:
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = http.put(event["ResponseURL"], content=body, headers=headers)
                response.raise_for_status()
                logger.info("CloudFormation response delivered", statusCode=response.status_code)
                return
            except httpx.HTTPError as e:
                if attempt == MAX_ATTEMPTS:
                    logger.error("Failed to deliver CloudFormation response", error=str(e), attempts=attempt)
                    raise
                logger.warning("Retrying CloudFormation response", error=str(e), attempt=attempt)
                time.sleep(BACKOFF_SECONDS * 2 ** (attempt - 1))
    finally:
        if client is None:
            http.close()
