"""Tests for CloudFormation response delivery."""

import json
from typing import Any, Dict
from unittest.mock import MagicMock, patch

import httpx
import pytest

from src.utils import cfn_response
from src.utils.cfn_response import FAILED, SUCCESS, CfnResult, build_response_body, send_response


def _ok_client() -> MagicMock:
    client = MagicMock()
    client.put.return_value = httpx.Response(200, request=httpx.Request("PUT", "https://example.com"))
    return client


class TestBuildResponseBody:
    """Tests for the response document."""

    def test_success_body(self, create_event: Dict[str, Any], lambda_context: Any) -> None:
        body = build_response_body(
            create_event, lambda_context, CfnResult(SUCCESS, physical_resource_id="ReactApp")
        )

        assert body == {
            "Status": "SUCCESS",
            "Reason": "See the details in CloudWatch Log Stream: 2026/10/19/[$LATEST]abcdef",
            "PhysicalResourceId": "ReactApp",
            "StackId": create_event["StackId"],
            "RequestId": create_event["RequestId"],
            "LogicalResourceId": "ReactApp",
            "NoEcho": False,
        }

    def test_includes_data_when_present(self, create_event: Dict[str, Any], lambda_context: Any) -> None:
        body = build_response_body(create_event, lambda_context, CfnResult(data={"Url": "x"}))

        assert body["Data"] == {"Url": "x"}

    def test_failed_falls_back_to_event_physical_id(
        self, update_event: Dict[str, Any], lambda_context: Any
    ) -> None:
        body = build_response_body(update_event, lambda_context, CfnResult(FAILED, reason="BuildError: boom"))

        assert body["Status"] == "FAILED"
        assert body["Reason"] == "BuildError: boom"
        assert body["PhysicalResourceId"] == "ExistingReactApp"

    def test_failed_create_falls_back_to_log_stream(
        self, create_event: Dict[str, Any], lambda_context: Any
    ) -> None:
        body = build_response_body(create_event, lambda_context, CfnResult(FAILED, reason="x"))

        assert body["PhysicalResourceId"] == lambda_context.log_stream_name

    def test_long_reason_is_truncated(self, create_event: Dict[str, Any], lambda_context: Any) -> None:
        body = build_response_body(create_event, lambda_context, CfnResult(FAILED, reason="e" * 10_000))

        assert len(json.dumps(body).encode("utf-8")) <= cfn_response.MAX_RESPONSE_BYTES
        assert body["Reason"].endswith("...[truncated]")


class TestSendResponse:
    """Tests for delivering the response."""

    def test_puts_json_to_response_url(self, create_event: Dict[str, Any], lambda_context: Any) -> None:
        client = _ok_client()

        send_response(create_event, lambda_context, CfnResult(SUCCESS, "ReactApp"), client=client)

        client.put.assert_called_once()
        args, kwargs = client.put.call_args
        assert args[0] == create_event["ResponseURL"]
        assert kwargs["headers"]["Content-Type"] == ""
        assert kwargs["headers"]["Content-Length"] == str(len(kwargs["content"].encode("utf-8")))
        assert json.loads(kwargs["content"])["PhysicalResourceId"] == "ReactApp"

    def test_retries_then_succeeds(self, create_event: Dict[str, Any], lambda_context: Any) -> None:
        client = _ok_client()
        ok = client.put.return_value
        client.put.side_effect = [httpx.ConnectError("reset"), ok]

        with patch.object(cfn_response.time, "sleep") as mock_sleep:
            send_response(create_event, lambda_context, CfnResult(), client=client)

        assert client.put.call_count == 2
        mock_sleep.assert_called_once_with(cfn_response.BACKOFF_SECONDS)

    def test_non_2xx_is_retried_and_raised(self, create_event: Dict[str, Any], lambda_context: Any) -> None:
        client = MagicMock()
        client.put.return_value = httpx.Response(403, request=httpx.Request("PUT", "https://example.com"))

        with patch.object(cfn_response.time, "sleep"):
            with pytest.raises(httpx.HTTPStatusError):
                send_response(create_event, lambda_context, CfnResult(), client=client)

        assert client.put.call_count == cfn_response.MAX_ATTEMPTS

    def test_owned_client_is_closed(self, create_event: Dict[str, Any], lambda_context: Any) -> None:
        client = _ok_client()

        with patch.object(cfn_response.httpx, "Client", return_value=client):
            send_response(create_event, lambda_context, CfnResult())

        client.close.assert_called_once()
