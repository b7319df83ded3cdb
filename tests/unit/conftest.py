"""
Test fixtures for the SPA deployment custom resource.

Provides CloudFormation events, a fake Lambda context and mocked S3.
"""

import os
from pathlib import Path
from typing import Any, Dict, Generator
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

from src.utils.config import SpaConfiguration
from src.utils.logging import set_correlation_id

TEST_BUCKET = "react-app-bucket-test"
TEST_USER_POOL_ARN = "arn:aws:cognito-idp:us-east-1:123:userpool/us-east-1_ABC"


@pytest.fixture(autouse=True)
def reset_correlation_id() -> Generator[None, None, None]:
    """Clear the request correlation ID the handler sets."""
    yield
    set_correlation_id(None)


@pytest.fixture
def aws_credentials() -> None:
    """Set fake AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def s3_client(aws_credentials: None) -> Generator[Any, None, None]:
    """Mock S3 with an empty hosting bucket."""
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=TEST_BUCKET)
        yield client


@pytest.fixture
def resource_properties() -> Dict[str, str]:
    return {
        "ServiceToken": "arn:aws:lambda:us-east-1:123:function:react-app",
        "BucketName": TEST_BUCKET,
        "ClientId": "client-abc123",
        "CognitoAuthDomain": "auth.example.com",
        "RedirectPathSignIn": "/parseauth",
        "RedirectPathSignOut": "/",
        "UserPoolArn": TEST_USER_POOL_ARN,
        "OAuthScopes": "phone,email,profile,openid,aws.cognito.signin.user.admin",
        "SignOutUrl": "/signout",
    }


@pytest.fixture
def spa_config(resource_properties: Dict[str, str]) -> SpaConfiguration:
    return SpaConfiguration.from_resource_properties(resource_properties)


@pytest.fixture
def lambda_context() -> MagicMock:
    """Lambda context with five minutes remaining."""
    context = MagicMock()
    context.get_remaining_time_in_millis.return_value = 300_000
    context.log_stream_name = "2026/10/19/[$LATEST]abcdef"
    return context


def _cfn_event(request_type: str, properties: Dict[str, str], **extra: Any) -> Dict[str, Any]:
    return {
        "RequestType": request_type,
        "ResponseURL": "https://cloudformation-custom-resource-response.s3.amazonaws.com/presigned",
        "StackId": "arn:aws:cloudformation:us-east-1:123:stack/spa-stack/guid",
        "RequestId": "11111111-2222-3333-4444-555555555555",
        "LogicalResourceId": "ReactApp",
        "ResourceType": "Custom::ReactApp",
        "ResourceProperties": properties,
        **extra,
    }


@pytest.fixture
def create_event(resource_properties: Dict[str, str]) -> Dict[str, Any]:
    return _cfn_event("Create", resource_properties)


@pytest.fixture
def update_event(resource_properties: Dict[str, str]) -> Dict[str, Any]:
    return _cfn_event("Update", resource_properties, PhysicalResourceId="ExistingReactApp")


@pytest.fixture
def delete_event(resource_properties: Dict[str, str]) -> Dict[str, Any]:
    return _cfn_event("Delete", resource_properties, PhysicalResourceId="ExistingReactApp")


@pytest.fixture
def app_sources(tmp_path: Path) -> Path:
    """A minimal bundled React app source tree."""
    source = tmp_path / "react-app"
    (source / "src" / "components").mkdir(parents=True)
    (source / "public").mkdir()
    (source / "src" / "index.js").write_text("import App from './App';\n")
    (source / "src" / "components" / "App.js").write_text("export default () => null;\n")
    (source / "public" / "index.html").write_text("<div id='root'></div>\n")
    (source / "package.json").write_text('{"name": "react-app"}\n')
    (source / "package-lock.json").write_text('{"lockfileVersion": 2}\n')
    return source
