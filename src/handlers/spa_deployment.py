"""
CloudFormation custom resource that builds and publishes the React SPA.

Create/Update: build the app with the stack's Cognito settings and upload the
output to the hosting bucket. Delete: empty the bucket so CloudFormation can
remove it. The outcome is always reported back to CloudFormation.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

# Handle both Lambda (absolute) and unit test (relative) imports
try:  # pragma: no cover
    from utils.cfn_response import FAILED, SUCCESS, CfnResult, send_response
    from utils.config import DEFAULT_PHYSICAL_RESOURCE_ID, SpaConfiguration
    from utils.deadline import DeadlineGuard
    from utils.errors import AppError, ErrorCode, format_failure_reason, handle_error
    from utils.logging import get_correlation_id, get_logger, set_correlation_id
    from utils.s3_sync import purge_bucket, sync_directory
    from utils.spa_build import Workspace, build_spa
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.cfn_response import FAILED, SUCCESS, CfnResult, send_response
    from ..utils.config import DEFAULT_PHYSICAL_RESOURCE_ID, SpaConfiguration
    from ..utils.deadline import DeadlineGuard
    from ..utils.errors import AppError, ErrorCode, format_failure_reason, handle_error
    from ..utils.logging import get_correlation_id, get_logger, set_correlation_id
    from ..utils.s3_sync import purge_bucket, sync_directory
    from ..utils.spa_build import Workspace, build_spa

if TYPE_CHECKING:  # pragma: no cover
    from pathlib import Path

logger = get_logger(__name__)

_PUBLISH_ACTIONS = {"create", "update"}
_PURGE_ACTIONS = {"delete"}


def deploy_spa(
    action: str,
    config: SpaConfiguration,
    physical_resource_id: Optional[str] = None,
    *,
    guard: Optional[DeadlineGuard] = None,
    workspace: Optional[Workspace] = None,
    source_dir: Optional["Path"] = None,
) -> str:
    """
    Build and upload the SPA, or empty its bucket, depending on the action.

    Args:
        action: CloudFormation RequestType (Create, Update or Delete)
        config: Resource configuration
        physical_resource_id: Existing physical ID on Update/Delete
        guard: Deadline guard used to cancel npm and S3 work on expiry
        workspace: Scratch directories for the build
        source_dir: Bundled app sources

    Returns:
        The physical resource ID to report (existing one, else "ReactApp")

    Raises:
        AppError: If the request type is unknown or any stage fails
    """
    normalized = (action or "").lower()

    if normalized in _PUBLISH_ACTIONS:
        build_dir = build_spa(config, source_dir=source_dir, workspace=workspace, guard=guard)
        if guard is not None:
            guard.check_cancelled()
        logger.info("Uploading build output", bucket=config.bucket_name, buildDir=str(build_dir))
        sync_directory(build_dir, config.bucket_name, guard=guard)
    elif normalized in _PURGE_ACTIONS:
        logger.info("Emptying bucket", bucket=config.bucket_name)
        purge_bucket(config.bucket_name, guard=guard)
    else:
        raise AppError(ErrorCode.INVALID_REQUEST_TYPE, f"Unsupported RequestType: {action!r}")

    return physical_resource_id or DEFAULT_PHYSICAL_RESOURCE_ID


def _loggable_event(event: Dict[str, Any]) -> Dict[str, Any]:
    # The pre-signed ResponseURL grants write access to the stack's response
    return {**event, "ResponseURL": "<redacted>"} if "ResponseURL" in event else event


def lambda_handler(event: Dict[str, Any], context: Any) -> None:
    """
    Entry point for the custom resource.

    Args:
        event: CloudFormation custom resource event. Contains:
            - RequestType: Create | Update | Delete
            - ResourceProperties: ServiceToken plus the SpaConfiguration fields
            - PhysicalResourceId: present on Update/Delete
            - ResponseURL, StackId, RequestId, LogicalResourceId
        context: Lambda context (remaining time drives the deadline)
    """
    set_correlation_id(get_correlation_id(event))
    logger.info("Received event", event=_loggable_event(event))

    request_type = event.get("RequestType", "")
    physical_resource_id = event.get("PhysicalResourceId")
    result = CfnResult(status=SUCCESS)
    workspace: Optional[Workspace] = None

    try:
        properties = {
            key: value
            for key, value in event.get("ResourceProperties", {}).items()
            if key != "ServiceToken"
        }
        config = SpaConfiguration.from_resource_properties(properties)
        guard = DeadlineGuard(context)
        workspace = Workspace.for_request(event.get("RequestId"))
        result.physical_resource_id = guard.run(
            deploy_spa,
            request_type,
            config,
            physical_resource_id,
            guard=guard,
            workspace=workspace,
        )
    except Exception as e:
        logger.error(
            "Custom resource operation failed",
            requestType=request_type,
            errorCode=handle_error(e)["errorCode"],
            error=str(e),
        )
        result.status = FAILED
        result.reason = format_failure_reason(e)

    try:
        send_response(event, context, result)
    finally:
        # Scratch removal runs only once the response is sent
        if workspace is not None:
            workspace.remove()
