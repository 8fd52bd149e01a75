"""
Value types passed between pipeline stages.

All types are frozen dataclasses: created once, never mutated.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class HostProfile:
    """
    Where and how to reach the device.

    Attributes:
        address: Hostname or IP (e.g., "pi.local", "192.168.1.40", "fe80::1")
        remote_path: Final path of the executable on the device
        user: SSH username (None uses ssh config / current user)
        port: SSH port
        identity_file: Credential reference, a private key path (None uses agent/ssh config)
    """
    address: str
    remote_path: str
    user: Optional[str] = None
    port: int = 22
    identity_file: Optional[str] = None

    @property
    def destination(self) -> str:
        """SSH destination string: user@host."""
        return f"{self.user}@{self.address}" if self.user else self.address

    @property
    def rsync_destination(self) -> str:
        """Destination usable in rsync/scp "host:path" syntax (IPv6 bracketed)."""
        host = f"[{self.address}]" if ':' in self.address else self.address
        return f"{self.user}@{host}" if self.user else host

    def __str__(self) -> str:
        port = f":{self.port}" if self.port != 22 else ""
        return f"{self.destination}{port}:{self.remote_path}"


@dataclass(frozen=True)
class TargetSpec:
    """
    A registered deployment target.

    Attributes:
        name: Unique registry key (e.g., "pi4")
        triple: Build triple (e.g., "armv7-unknown-linux-gnueabihf")
        toolchain_package: System package providing the cross linker
        host: Remote host profile
        linker: Cross linker executable passed to cargo (None uses cargo's default)
        binary: Name of the executable cargo produces
    """
    name: str
    triple: str
    toolchain_package: str
    host: HostProfile
    linker: Optional[str] = None
    binary: str = "main"

    @property
    def arch(self) -> str:
        """Architecture component of the triple ("armv7" for armv7-unknown-linux-gnueabihf)."""
        return self.triple.split('-', 1)[0]


@dataclass(frozen=True)
class BuildRequest:
    """
    One build invocation.

    Attributes:
        target: Target to build for
        release_mode: Optimized (--release) build
        source_root: Directory holding the Cargo project
        unique_output: Copy the artifact to a unique path instead of the shared one
    """
    target: TargetSpec
    release_mode: bool
    source_root: Path
    unique_output: bool = False

    @property
    def profile(self) -> str:
        return "release" if self.release_mode else "debug"


@dataclass(frozen=True)
class Artifact:
    """
    A compiled binary for one triple.

    Attributes:
        local_path: Path of the binary on the build machine
        size_bytes: Size at build time
        triple: Triple the binary was built for
        unique: True when local_path is a per-run copy the pipeline may discard
    """
    local_path: Path
    size_bytes: int
    triple: str
    unique: bool = False


@dataclass(frozen=True)
class DeployResult:
    """
    Terminal outcome of a deployment.

    Attributes:
        success: Whether the artifact is live at remote_path
        remote_path: Final path on the device
        bytes_transferred: Bytes confirmed on the device
        error: Error kind name when success is False
        attempts: Upload attempts used (including the successful one)
        backup_path: Remote path of the previous deployment, if one was kept
    """
    success: bool
    remote_path: str
    bytes_transferred: int
    error: Optional[str] = None
    attempts: int = 1
    backup_path: Optional[str] = None


@dataclass(frozen=True)
class VerificationReport:
    """
    What ArtifactVerifier actually checked.

    Attributes:
        artifact: The verified artifact
        arch_checked: False when the binary format does not expose the
            architecture cheaply; the architecture check was a no-op then
        detected_format: "elf", "pe", "mach-o" or "unknown"
        detected_machine: Architecture read from the binary, if any
        note: Why the architecture check was skipped, if it was
    """
    artifact: Artifact
    arch_checked: bool
    detected_format: str
    detected_machine: Optional[str] = None
    note: Optional[str] = None
