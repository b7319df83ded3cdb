"""
Build stage for the React single-page app.

Stages the bundled sources into a scratch workspace, writes the Cognito
settings into a .env file, then runs `npm ci` and `npm run build`.
"""

import os
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence

try:  # pragma: no cover
    from utils.config import (
        SpaConfiguration,
        get_npm_command,
        get_source_dir,
        get_workspace_root,
        scratch_suffix,
    )
    from utils.errors import BuildError
    from utils.logging import get_logger
except ModuleNotFoundError:  # pragma: no cover
    from .config import (
        SpaConfiguration,
        get_npm_command,
        get_source_dir,
        get_workspace_root,
        scratch_suffix,
    )
    from .errors import BuildError
    from .logging import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from .deadline import DeadlineGuard

logger = get_logger(__name__)

SOURCE_PATHS = ("src", "public", "package.json", "package-lock.json")
SCRATCH_PREFIXES = ("spa", "home")


@dataclass(frozen=True)
class Workspace:
    """Scratch directories for one build."""

    build_root: Path
    home_dir: Path

    @classmethod
    def for_request(cls, request_id: Optional[str] = None, root: Optional[Path] = None) -> "Workspace":
        root = root or get_workspace_root()
        suffix = scratch_suffix(request_id)
        return cls(build_root=root / f"spa{suffix}", home_dir=root / f"home{suffix}")

    @property
    def env_file(self) -> Path:
        return self.build_root / ".env"

    @property
    def output_dir(self) -> Path:
        return self.build_root / "build"

    def create(self) -> None:
        self.remove_stale()
        for directory in (self.build_root, self.home_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def remove(self) -> None:
        for directory in (self.build_root, self.home_dir):
            shutil.rmtree(directory, ignore_errors=True)

    def remove_stale(self) -> None:
        """Delete scratch directories left behind by earlier (abandoned) invocations."""
        root = self.build_root.parent
        if not root.is_dir():
            return
        current = {self.build_root, self.home_dir}
        for entry in root.iterdir():
            if entry in current or not entry.is_dir() or not _is_scratch_name(entry.name):
                continue
            logger.info("Removing stale scratch directory", path=str(entry))
            shutil.rmtree(entry, ignore_errors=True)


def _is_scratch_name(name: str) -> bool:
    return any(name == prefix or name.startswith(f"{prefix}-") for prefix in SCRATCH_PREFIXES)


def render_env_file(config: SpaConfiguration) -> str:
    """Render the .env consumed by create-react-app at build time."""
    user_pool = config.user_pool
    lines = [
        "SKIP_PREFLIGHT_CHECK=true",
        f"REACT_APP_USER_POOL_ID={user_pool.user_pool_id}",
        f"REACT_APP_USER_POOL_REGION={user_pool.region}",
        f"REACT_APP_USER_POOL_WEB_CLIENT_ID={config.client_id}",
        f"REACT_APP_USER_POOL_AUTH_DOMAIN={config.cognito_auth_domain}",
        f"REACT_APP_USER_POOL_REDIRECT_PATH_SIGN_IN={config.redirect_path_sign_in}",
        f"REACT_APP_USER_POOL_REDIRECT_PATH_SIGN_OUT={config.redirect_path_sign_out}",
        f"REACT_APP_SIGN_OUT_URL={config.sign_out_url}",
        f"REACT_APP_USER_POOL_SCOPES={config.oauth_scopes}",
        "INLINE_RUNTIME_CHUNK=false",
    ]
    return "\n".join(lines) + "\n"


def copy_sources(source_dir: Path, destination: Path, paths: Sequence[str] = SOURCE_PATHS) -> None:
    """
    Copy the app sources into the workspace concurrently.

    Raises:
        BuildError: If any path is missing or cannot be copied
    """

    def _copy(name: str) -> None:
        src = source_dir / name
        dst = destination / name
        if src.is_dir():
            shutil.copytree(src, dst, dirs_exist_ok=True)
        else:
            shutil.copy2(src, dst)

    with ThreadPoolExecutor(max_workers=len(paths) or 1) as executor:
        futures = {name: executor.submit(_copy, name) for name in paths}

    for name, future in futures.items():
        error = future.exception()
        if error is not None:
            raise BuildError(
                f"Failed to copy {source_dir / name} to {destination}: {error}",
                {"path": name},
            ) from error


def run_command(
    args: List[str],
    workspace: Workspace,
    guard: Optional["DeadlineGuard"] = None,
) -> None:
    """
    Run a command in the workspace with HOME pointed at the isolated home dir.

    Output is inherited so it streams straight into the Lambda log.

    Raises:
        BuildError: If the command cannot start or exits non-zero
    """
    env = {**os.environ, "HOME": str(workspace.home_dir)}
    command = " ".join(args)
    try:
        process = subprocess.Popen(args, cwd=workspace.build_root, env=env)
    except OSError as e:
        raise BuildError(f"Could not start '{command}': {e}", {"command": command}) from e

    if guard is not None:
        guard.register_process(process)
    try:
        returncode = process.wait()
    finally:
        if guard is not None:
            guard.unregister_process(process)

    if returncode != 0:
        raise BuildError(
            f"Command '{command}' failed with exit code {returncode}",
            {"command": command, "exitCode": returncode},
        )


def build_spa(
    config: SpaConfiguration,
    *,
    source_dir: Optional[Path] = None,
    workspace: Optional[Workspace] = None,
    guard: Optional["DeadlineGuard"] = None,
) -> Path:
    """
    Build the React app and return the directory holding the build output.

    Args:
        config: Resource configuration
        source_dir: Bundled app sources (defaults to SPA_SOURCE_DIR)
        workspace: Scratch directories (defaults to the fixed /tmp names)
        guard: Deadline guard that should be able to kill npm on expiry

    Raises:
        ConfigurationError: If the user pool ARN is malformed
        BuildError: If staging or any npm step fails
    """
    source_dir = source_dir or get_source_dir()
    workspace = workspace or Workspace.for_request()
    npm = get_npm_command()

    logger.info(
        "Copying SPA sources to workspace",
        sourceDir=str(source_dir),
        workspace=str(workspace.build_root),
    )
    try:
        workspace.create()
    except OSError as e:
        raise BuildError(f"Could not create workspace {workspace.build_root}: {e}") from e
    copy_sources(source_dir, workspace.build_root)

    env_contents = render_env_file(config)
    logger.info("Creating environment file", path=str(workspace.env_file))
    try:
        workspace.env_file.write_text(env_contents)
    except OSError as e:
        raise BuildError(f"Could not write {workspace.env_file}: {e}") from e

    logger.info("Installing dependencies", workspace=str(workspace.build_root))
    run_command([npm, "ci"], workspace, guard)
    if guard is not None:
        guard.check_cancelled()

    logger.info("Running build of React app", workspace=str(workspace.build_root))
    run_command([npm, "run", "build"], workspace, guard)
    logger.info("Build succeeded", outputDir=str(workspace.output_dir))

    return workspace.output_dir
