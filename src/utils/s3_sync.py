"""
Mirror a local directory into an S3 bucket.

Used to publish the SPA build output (upload new and changed files) and to
empty the bucket on stack delete (sync an empty directory with delete=True).
"""

import hashlib
import mimetypes
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

try:  # pragma: no cover
    from utils.errors import PublishError
    from utils.logging import get_logger
except ModuleNotFoundError:  # pragma: no cover
    from .errors import PublishError
    from .logging import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_s3 import S3Client

    from .deadline import DeadlineGuard

logger = get_logger(__name__)

DELETE_BATCH_SIZE = 1000

NO_CACHE = "no-cache"
IMMUTABLE = "public, max-age=31536000, immutable"
REVALIDATE = "public, max-age=0, must-revalidate"
NO_CACHE_KEYS = {"index.html", "service-worker.js"}


@dataclass
class SyncResult:
    """Keys touched by a sync run."""

    uploaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)


def _get_s3_client() -> "S3Client":
    return boto3.client("s3")


def cache_control_for(key: str) -> str:
    """Cache policy per object: hashed static assets are immutable, entry points never cached."""
    if key in NO_CACHE_KEYS:
        return NO_CACHE
    if key.startswith("static/"):
        return IMMUTABLE
    return REVALIDATE


def content_type_for(key: str) -> str:
    content_type, _ = mimetypes.guess_type(key)
    return content_type or "application/octet-stream"


def _md5(path: Path) -> str:
    digest = hashlib.md5(usedforsecurity=False)
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def list_local_files(source_dir: Path) -> Dict[str, Path]:
    """Map object key (POSIX relative path) to local file for every file under source_dir."""
    return {
        path.relative_to(source_dir).as_posix(): path
        for path in sorted(source_dir.rglob("*"))
        if path.is_file()
    }


def list_remote_objects(s3_client: Any, bucket_name: str) -> Dict[str, str]:
    """Map object key to ETag (quotes stripped) for every object in the bucket."""
    objects: Dict[str, str] = {}
    paginator = s3_client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket_name):
        for obj in page.get("Contents", []):
            objects[obj["Key"]] = obj.get("ETag", "").strip('"')
    return objects


def _delete_keys(s3_client: Any, bucket_name: str, keys: List[str]) -> None:
    for i in range(0, len(keys), DELETE_BATCH_SIZE):
        batch = keys[i : i + DELETE_BATCH_SIZE]
        response = s3_client.delete_objects(
            Bucket=bucket_name,
            Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
        )
        errors = response.get("Errors", [])
        if errors:
            failed = [f"{e.get('Key')}: {e.get('Message', e.get('Code'))}" for e in errors]
            raise PublishError(
                f"Failed to delete {len(errors)} object(s) from {bucket_name}: {'; '.join(failed)}",
                {"bucket": bucket_name},
            )
        logger.info("Deleted batch of objects", bucket=bucket_name, count=len(batch))


def sync_directory(
    source_dir: Path,
    bucket_name: str,
    *,
    delete: bool = False,
    s3_client: Optional[Any] = None,
    guard: Optional["DeadlineGuard"] = None,
) -> SyncResult:
    """
    Make the bucket's object set match the files in source_dir.

    Args:
        source_dir: Local directory to mirror
        bucket_name: Target S3 bucket
        delete: Also delete remote objects with no local counterpart
        s3_client: Optional boto3 S3 client (one is created if omitted)
        guard: Deadline guard checked between objects

    Returns:
        SyncResult listing uploaded, skipped and deleted keys

    Raises:
        PublishError: If the directory is missing or any S3 call fails
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise PublishError(f"Source directory {source_dir} does not exist", {"bucket": bucket_name})

    client = s3_client or _get_s3_client()
    result = SyncResult()

    try:
        local_files = list_local_files(source_dir)
        remote_objects = list_remote_objects(client, bucket_name)
        logger.info(
            "Syncing directory to bucket",
            sourceDir=str(source_dir),
            bucket=bucket_name,
            localFiles=len(local_files),
            remoteObjects=len(remote_objects),
            delete=delete,
        )

        for key, path in local_files.items():
            if guard is not None:
                guard.check_cancelled()
            if remote_objects.get(key) == _md5(path):
                result.skipped.append(key)
                continue
            client.upload_file(
                str(path),
                bucket_name,
                key,
                ExtraArgs={
                    "ContentType": content_type_for(key),
                    "CacheControl": cache_control_for(key),
                },
            )
            result.uploaded.append(key)

        if delete:
            extraneous = sorted(set(remote_objects) - set(local_files))
            if guard is not None:
                guard.check_cancelled()
            _delete_keys(client, bucket_name, extraneous)
            result.deleted.extend(extraneous)
    except (ClientError, BotoCoreError, S3UploadFailedError) as e:
        raise PublishError(f"S3 sync to {bucket_name} failed: {e}", {"bucket": bucket_name}) from e
    except OSError as e:
        raise PublishError(f"Could not read {source_dir}: {e}", {"bucket": bucket_name}) from e

    logger.info(
        "Sync complete",
        bucket=bucket_name,
        uploaded=len(result.uploaded),
        skipped=len(result.skipped),
        deleted=len(result.deleted),
    )
    return result


def purge_bucket(
    bucket_name: str,
    *,
    s3_client: Optional[Any] = None,
    guard: Optional["DeadlineGuard"] = None,
) -> SyncResult:
    """Empty the bucket by syncing an empty directory with deletion enabled."""
    with tempfile.TemporaryDirectory(prefix="empty_directory") as empty_dir:
        return sync_directory(
            Path(empty_dir), bucket_name, delete=True, s3_client=s3_client, guard=guard
        )
