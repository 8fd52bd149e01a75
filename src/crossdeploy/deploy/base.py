"""
RemoteTransport Protocol - the file operations the Deployer needs on a device.

Any reliable channel qualifies as long as it is authenticated, can write to
a temporary path, and can rename atomically on the remote filesystem.
SSHTransport (ssh + rsync) is the production implementation.
"""

from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from crossdeploy.models import HostProfile


@runtime_checkable
class RemoteTransport(Protocol):
    """
    Interface for remote file transfer.

    Error contract:
        - RemoteConnectionError: host unreachable / authentication failed
        - TransferError: upload failed part-way
        - RemoteWriteError: the remote filesystem refused a rename/link

    @runtime_checkable decorator enables isinstance() checks:
        transport = SSHTransport(...)
        assert isinstance(transport, RemoteTransport)
    """

    def check_connection(self, host: HostProfile) -> None:
        """Cheap authenticated round-trip; raises RemoteConnectionError."""
        ...

    def upload(self, local_path: Path, host: HostProfile, remote_path: str) -> None:
        """Copy local_path to remote_path, creating its parent directory."""
        ...

    def remote_size(self, host: HostProfile, remote_path: str) -> Optional[int]:
        """Size of remote_path in bytes, or None if it does not exist."""
        ...

    def link(self, host: HostProfile, remote_path: str, link_path: str) -> bool:
        """Hard-link remote_path to link_path; False if remote_path does not exist."""
        ...

    def rename(self, host: HostProfile, src: str, dst: str) -> None:
        """Atomically rename src onto dst (same filesystem)."""
        ...

    def remove(self, host: HostProfile, remote_path: str) -> None:
        """Delete remote_path if present."""
        ...
