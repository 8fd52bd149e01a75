"""
SSHTransport - file transfer to remote Linux devices over SSH.

Targets: Raspberry Pi, Jetson, Linux SBCs, cloud VMs
Strategy: rsync for bytes, ssh for size/link/rename/remove
Requirements on the device: SSH server, rsync, coreutils (or busybox)
"""

import logging
import posixpath
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional

from crossdeploy.exceptions import RemoteConnectionError, RemoteWriteError, TransferError
from crossdeploy.models import HostProfile

logger = logging.getLogger(__name__)

# ssh reserves exit code 255 for its own (connection/auth) failures
SSH_CONNECTION_FAILURE = 255


def quote_remote_path(path: str) -> str:
    """Shell-quote a remote path, keeping a leading ~/ expandable."""
    if path == '~':
        return '"$HOME"'
    if path.startswith('~/'):
        return '"$HOME"/' + shlex.quote(path[2:])
    return shlex.quote(path)


class SSHTransport:
    """
    Moves files to a device with rsync and manipulates them with ssh.

    Every command carries its own timeout: ``ssh_timeout`` bounds connection
    setup (ssh ConnectTimeout) and short remote commands, ``transfer_timeout``
    bounds a single rsync upload.
    """

    def __init__(self, ssh_timeout: float = 10.0, transfer_timeout: float = 300.0):
        self.ssh_timeout = ssh_timeout
        self.transfer_timeout = transfer_timeout

    def _ssh_options(self, host: HostProfile) -> List[str]:
        options = [
            "-p", str(host.port),
            "-o", "BatchMode=yes",  # Fail immediately if a password would be needed
            "-o", f"ConnectTimeout={max(1, int(self.ssh_timeout))}",
        ]
        if host.identity_file:
            options += ["-i", host.identity_file]
        return options

    def _ssh_cmd(self, host: HostProfile, command: str) -> List[str]:
        """Build SSH command with port, batch mode and identity."""
        return ["ssh"] + self._ssh_options(host) + [host.destination, command]

    def _run_ssh(self, host: HostProfile, command: str) -> subprocess.CompletedProcess:
        """Run a short remote command; raise RemoteConnectionError if ssh itself fails."""
        cmd = self._ssh_cmd(host, command)
        logger.debug("ssh %s: %s", host.destination, command)
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, errors='replace', timeout=self.ssh_timeout * 3
            )
        except subprocess.TimeoutExpired:
            raise RemoteConnectionError(
                f"Timed out after {self.ssh_timeout * 3:.0f}s running '{command}' on {host.destination}"
            ) from None
        except FileNotFoundError:
            raise RemoteConnectionError("ssh client not found on PATH") from None

        if result.returncode == SSH_CONNECTION_FAILURE:
            raise RemoteConnectionError(
                f"SSH connection to {host.destination}:{host.port} failed\n"
                f"Error: {result.stderr.strip()}"
            )
        return result

    def check_connection(self, host: HostProfile) -> None:
        """
        Verify passwordless SSH works.

        Raises:
            RemoteConnectionError: with setup instructions if it does not
        """
        result = self._run_ssh(host, "echo OK")
        if result.returncode != 0 or "OK" not in result.stdout:
            port_flag = f"-p {host.port} " if host.port != 22 else ""
            raise RemoteConnectionError(
                f"Passwordless SSH not working for {host.destination}\n"
                f"Error: {result.stderr.strip()}\n\n"
                f"Setup:\n"
                f"  ssh-copy-id {port_flag}{host.destination}\n"
                f"  ssh {port_flag}{host.destination} \"echo OK\"   # must not ask for a password"
            )

    def upload(self, local_path: Path, host: HostProfile, remote_path: str) -> None:
        """
        rsync local_path to remote_path (permissions preserved).

        Raises:
            RemoteConnectionError: ssh could not connect
            TransferError: rsync failed or timed out
        """
        parent = posixpath.dirname(remote_path) or '.'
        result = self._run_ssh(host, f"mkdir -p {quote_remote_path(parent)}")
        if result.returncode != 0:
            raise TransferError(
                f"Cannot create {parent} on {host.destination}: {result.stderr.strip()}"
            )

        ssh_transport = ' '.join(shlex.quote(part) for part in ["ssh"] + self._ssh_options(host))
        rsync_cmd = [
            "rsync",
            "--perms",
            "--times",
            f"--timeout={max(1, int(self.ssh_timeout))}",
            "-e", ssh_transport,
            str(local_path),
            f"{host.rsync_destination}:{remote_path}",
        ]
        logger.debug("Running %s", ' '.join(rsync_cmd))
        try:
            result = subprocess.run(
                rsync_cmd, capture_output=True, text=True, errors='replace', timeout=self.transfer_timeout
            )
        except subprocess.TimeoutExpired:
            raise TransferError(
                f"rsync to {host.destination} timed out after {self.transfer_timeout:.0f}s"
            ) from None
        except FileNotFoundError:
            raise TransferError("rsync not found on PATH") from None

        if result.returncode == SSH_CONNECTION_FAILURE:
            raise RemoteConnectionError(
                f"rsync could not connect to {host.destination}\nError: {result.stderr.strip()}"
            )
        if result.returncode != 0:
            raise TransferError(
                f"rsync failed to {host.destination} (exit code {result.returncode})\n"
                f"Command: {' '.join(rsync_cmd)}\n"
                f"Error: {result.stderr.strip()}\n\n"
                f"Troubleshooting:\n"
                f"  1. Check disk space on device: ssh {host.destination} df -h\n"
                f"  2. Verify write permissions: ssh {host.destination} ls -ld {parent}"
            )

    def remote_size(self, host: HostProfile, remote_path: str) -> Optional[int]:
        result = self._run_ssh(host, f"wc -c < {quote_remote_path(remote_path)}")
        if result.returncode != 0:
            return None
        try:
            return int(result.stdout.strip())
        except ValueError:
            raise TransferError(
                f"Unexpected size output for {remote_path}: {result.stdout.strip()!r}"
            ) from None

    def link(self, host: HostProfile, remote_path: str, link_path: str) -> bool:
        src = quote_remote_path(remote_path)
        dst = quote_remote_path(link_path)
        result = self._run_ssh(
            host, f"if [ -e {src} ]; then ln -f {src} {dst} && echo linked; else echo absent; fi"
        )
        if result.returncode != 0:
            raise RemoteWriteError(
                f"Cannot keep backup {link_path} on {host.destination}: {result.stderr.strip()}"
            )
        return "linked" in result.stdout

    def rename(self, host: HostProfile, src: str, dst: str) -> None:
        """
        mv -f within one directory is a single rename(2).

        Raises:
            RemoteWriteError: for any failure, including a lost connection
        """
        try:
            result = self._run_ssh(
                host, f"mv -f {quote_remote_path(src)} {quote_remote_path(dst)}"
            )
        except RemoteConnectionError as e:
            raise RemoteWriteError(f"Rename on {host.destination} not performed: {e}") from e
        if result.returncode != 0:
            raise RemoteWriteError(
                f"Cannot rename {src} to {dst} on {host.destination}\n"
                f"Error: {result.stderr.strip()}"
            )

    def remove(self, host: HostProfile, remote_path: str) -> None:
        result = self._run_ssh(host, f"rm -f {quote_remote_path(remote_path)}")
        if result.returncode != 0:
            raise RemoteWriteError(
                f"Cannot remove {remote_path} on {host.destination}: {result.stderr.strip()}"
            )
