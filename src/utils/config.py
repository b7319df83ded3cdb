"""
Configuration for the SPA deployment custom resource.

Covers the resource properties CloudFormation passes in, the parsed Cognito
user pool ARN, and environment-driven runtime settings.
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

try:  # pragma: no cover
    from utils.errors import ConfigurationError
except ModuleNotFoundError:  # pragma: no cover
    from .errors import ConfigurationError

DEFAULT_PHYSICAL_RESOURCE_ID = "ReactApp"
DEFAULT_DEADLINE_MARGIN_MS = 500

# arn:<partition>:cognito-idp:<region>:<account>:userpool/<pool id>
_USER_POOL_ARN_PATTERN = re.compile(
    r"^arn:(?P<partition>[\w-]+):cognito-idp:(?P<region>[a-z0-9-]+):(?P<account>\d+)"
    r":userpool/(?P<pool_id>[\w-]+)$"
)

# ResourceProperties key -> SpaConfiguration field
_PROPERTY_FIELDS = {
    "BucketName": "bucket_name",
    "ClientId": "client_id",
    "CognitoAuthDomain": "cognito_auth_domain",
    "RedirectPathSignIn": "redirect_path_sign_in",
    "RedirectPathSignOut": "redirect_path_sign_out",
    "UserPoolArn": "user_pool_arn",
    "OAuthScopes": "oauth_scopes",
    "SignOutUrl": "sign_out_url",
}


@dataclass(frozen=True)
class UserPoolArn:
    """Named components of a Cognito user pool ARN."""

    partition: str
    region: str
    account_id: str
    user_pool_id: str

    @classmethod
    def parse(cls, arn: str) -> "UserPoolArn":
        """
        Parse a user pool ARN into its components.

        Raises:
            ConfigurationError: If the value is not a cognito-idp userpool ARN
        """
        match = _USER_POOL_ARN_PATTERN.match(arn or "")
        if not match:
            raise ConfigurationError(
                f"Malformed UserPoolArn {arn!r}: expected "
                "arn:<partition>:cognito-idp:<region>:<account>:userpool/<pool id>",
                {"userPoolArn": arn},
            )
        return cls(
            partition=match.group("partition"),
            region=match.group("region"),
            account_id=match.group("account"),
            user_pool_id=match.group("pool_id"),
        )


@dataclass(frozen=True)
class SpaConfiguration:
    """Values needed to build the React app and publish it."""

    bucket_name: str
    client_id: str
    cognito_auth_domain: str
    redirect_path_sign_in: str
    redirect_path_sign_out: str
    user_pool_arn: str
    oauth_scopes: str
    sign_out_url: str

    @classmethod
    def from_resource_properties(cls, properties: Dict[str, Any]) -> "SpaConfiguration":
        """
        Build configuration from a custom resource's ResourceProperties.

        ServiceToken and any unknown keys are ignored.

        Raises:
            ConfigurationError: If a required property is missing or not a string
        """
        missing = [key for key in _PROPERTY_FIELDS if not isinstance(properties.get(key), str)]
        if missing:
            raise ConfigurationError(
                f"Missing required resource properties: {', '.join(missing)}",
                {"missing": missing},
            )
        return cls(**{field: properties[key] for key, field in _PROPERTY_FIELDS.items()})

    @property
    def user_pool(self) -> UserPoolArn:
        return UserPoolArn.parse(self.user_pool_arn)


def get_source_dir() -> Path:
    """Directory holding the bundled React app sources."""
    configured = os.getenv("SPA_SOURCE_DIR")
    if configured:
        return Path(configured)
    return Path(__file__).resolve().parent.parent / "react-app"


def get_workspace_root() -> Path:
    return Path(os.getenv("SPA_WORKSPACE_ROOT", "/tmp"))


def get_deadline_margin_ms() -> int:
    raw = os.getenv("DEADLINE_MARGIN_MS")
    if raw is None:
        return DEFAULT_DEADLINE_MARGIN_MS
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"DEADLINE_MARGIN_MS must be an integer, got {raw!r}") from None


def get_npm_command() -> str:
    return os.getenv("NPM_COMMAND", "npm")


def scratch_suffix(request_id: Optional[str]) -> str:
    """Filesystem-safe suffix derived from a request ID ('' when absent)."""
    if not request_id:
        return ""
    return "-" + re.sub(r"[^A-Za-z0-9_-]", "_", request_id)
