"""
Deployer - atomic rename-after-upload onto a remote device.

Steps:
    1. Connection probe
    2. Upload to a temporary path next to remote_path
    3. Verify the remote byte count equals the local size
    4. Cancellation check (abort here, never mid-rename)
    5. Optional backup: hard-link the live file to <remote_path>.prev
    6. Rename the temporary path onto remote_path

Until step 6 the live file is untouched. Steps 1-3 are retried with bounded
exponential backoff on RemoteConnectionError/TransferError; a failed rename
is surfaced immediately.
"""

import logging
import posixpath
import uuid
from typing import Optional

from crossdeploy.core.cancellation import CancelToken
from crossdeploy.core.protocols import Logger, TimeProvider
from crossdeploy.deploy.base import RemoteTransport
from crossdeploy.exceptions import (
    DeployError,
    RemoteConnectionError,
    RemoteWriteError,
    TransferError,
    TripleMismatch,
)
from crossdeploy.models import Artifact, DeployResult, HostProfile

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = '.prev'


def temp_path_for(remote_path: str) -> str:
    """Hidden sibling of remote_path, so the final rename stays on one filesystem."""
    directory, name = posixpath.split(remote_path)
    return posixpath.join(directory, f".{name}.crossdeploy-{uuid.uuid4().hex[:8]}.tmp")


def backup_path_for(remote_path: str) -> str:
    return remote_path + BACKUP_SUFFIX


class Deployer:
    """
    Deploys one artifact to one host.

    Args:
        transport: Remote file operations (SSHTransport in production)
        time_provider: Used for backoff sleeps
        logger: User-facing progress output
        retries: Extra upload attempts after the first (0 disables retrying)
        backoff_base: Delay before the first retry, doubled each retry
        backoff_max: Upper bound for a single delay
        keep_backup: Keep the previous deployment as <remote_path>.prev
    """

    def __init__(
        self,
        transport: RemoteTransport,
        time_provider: TimeProvider,
        logger: Logger,
        retries: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        keep_backup: bool = False
    ):
        self.transport = transport
        self.time = time_provider
        self.log = logger
        self.retries = retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.keep_backup = keep_backup

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))

    def deploy(
        self,
        artifact: Artifact,
        host: HostProfile,
        cancel_token: Optional[CancelToken] = None,
        expected_triple: Optional[str] = None
    ) -> DeployResult:
        """
        Upload and atomically install ``artifact`` at ``host.remote_path``.

        Raises:
            TripleMismatch: artifact.triple differs from expected_triple
            RemoteConnectionError / TransferError: after retries are exhausted
            RemoteWriteError: backup or final rename refused
            PipelineCancelled: cancellation observed before the rename
        """
        token = cancel_token or CancelToken()
        if expected_triple is not None and artifact.triple != expected_triple:
            raise TripleMismatch(
                f"Refusing to deploy {artifact.triple} artifact to a {expected_triple} target",
                expected=expected_triple,
                actual=artifact.triple
            )

        final_path = host.remote_path
        temp_path = temp_path_for(final_path)
        self.log.info(f"Deploying {artifact.local_path} to {host}...")

        attempt = 0
        while True:
            attempt += 1
            token.raise_if_cancelled("before upload")
            try:
                transferred = self._upload_and_verify(artifact, host, temp_path)
                break
            except (RemoteConnectionError, TransferError) as e:
                self._discard(host, temp_path)
                if attempt > self.retries:
                    self.log.error(f"Upload failed after {attempt} attempt(s): {e}")
                    raise
                delay = self.backoff_delay(attempt)
                self.log.warning(
                    f"Upload attempt {attempt}/{self.retries + 1} failed ({type(e).__name__}); "
                    f"retrying in {delay:.1f}s"
                )
                self.time.sleep(delay)

        if token.cancelled:
            self._discard(host, temp_path)
            token.raise_if_cancelled("between upload and rename")

        backup_path = None
        try:
            if self.keep_backup:
                if self.transport.link(host, final_path, backup_path_for(final_path)):
                    backup_path = backup_path_for(final_path)
                    logger.debug("Kept previous deployment as %s", backup_path)
            self.transport.rename(host, temp_path, final_path)
        except DeployError as e:
            self._discard(host, temp_path)
            if isinstance(e, RemoteWriteError):
                raise
            raise RemoteWriteError(f"Could not install {final_path}: {e}") from e

        self.log.info(f"✓ Deployed {transferred} bytes to {host}")
        return DeployResult(
            success=True,
            remote_path=final_path,
            bytes_transferred=transferred,
            attempts=attempt,
            backup_path=backup_path
        )

    def rollback(self, host: HostProfile) -> DeployResult:
        """
        Restore <remote_path>.prev over remote_path in one rename.

        Raises:
            RemoteWriteError: no backup exists, or the rename was refused
        """
        backup = backup_path_for(host.remote_path)
        size = self.transport.remote_size(host, backup)
        if size is None:
            raise RemoteWriteError(f"No previous deployment at {backup} on {host.destination}")
        self.transport.rename(host, backup, host.remote_path)
        self.log.info(f"✓ Restored previous deployment at {host}")
        return DeployResult(success=True, remote_path=host.remote_path, bytes_transferred=0)

    def _upload_and_verify(self, artifact: Artifact, host: HostProfile, temp_path: str) -> int:
        self.transport.check_connection(host)
        self.transport.upload(artifact.local_path, host, temp_path)
        remote = self.transport.remote_size(host, temp_path)
        if remote != artifact.size_bytes:
            raise TransferError(
                f"Size mismatch after upload: local {artifact.size_bytes} bytes, "
                f"remote {remote if remote is not None else 'missing'}",
                expected_bytes=artifact.size_bytes,
                transferred_bytes=remote or 0
            )
        return remote

    def _discard(self, host: HostProfile, temp_path: str) -> None:
        """Remove the temporary upload; failures are logged, the original error wins."""
        try:
            self.transport.remove(host, temp_path)
        except DeployError as e:
            self.log.warning(f"Could not remove temporary file {temp_path}: {e}")
