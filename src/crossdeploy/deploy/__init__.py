"""
Device deployment subsystem.

Public API:
    - RemoteTransport: Protocol interface for remote file operations
    - SSHTransport: ssh + rsync implementation
    - Deployer: atomic rename-after-upload with retry and rollback
    - parse_host: Parse user@host[:port] device strings
"""

from .base import RemoteTransport
from .deployer import Deployer, backup_path_for, temp_path_for
from .factory import parse_host
from .ssh_transport import SSHTransport

__all__ = [
    # Protocol
    "RemoteTransport",

    # Implementations
    "SSHTransport",
    "Deployer",

    # Helpers
    "parse_host",
    "temp_path_for",
    "backup_path_for",
]
