"""
crossdeploy exceptions.

One class per failure kind the pipeline reports. Every exception carries a
``retryable`` flag so callers can decide between retrying and aborting
without string matching.
"""

from typing import List, Optional


class CrossDeployError(Exception):
    """Base class for every failure raised by a pipeline stage."""
    retryable = False


class ConfigurationError(CrossDeployError):
    """
    Raised when the target registry or settings are invalid.

    Examples:
        - Duplicate target names
        - Missing required field (triple, host.address, ...)
        - Unknown settings key
    """
    pass


class UnknownTarget(ConfigurationError):
    """Raised by TargetRegistry.resolve() for a name that is not registered."""

    def __init__(self, name: str, known: Optional[List[str]] = None):
        self.name = name
        self.known = sorted(known or [])
        hint = f" (known targets: {', '.join(self.known)})" if self.known else ""
        super().__init__(f"Unknown target '{name}'{hint}")


class ToolchainInstallError(CrossDeployError):
    """
    Raised when the cross toolchain cannot be installed.

    ``kind`` is one of KIND_NETWORK, KIND_PERMISSION, KIND_NOT_FOUND or
    KIND_UNKNOWN. Only network failures are worth retrying.
    """
    KIND_NETWORK = "network"
    KIND_PERMISSION = "permission"
    KIND_NOT_FOUND = "not_found"
    KIND_UNKNOWN = "unknown"

    def __init__(self, message: str, kind: str = KIND_UNKNOWN, output: str = ""):
        super().__init__(message)
        self.kind = kind
        self.output = output

    @property
    def retryable(self) -> bool:
        return self.kind == self.KIND_NETWORK


class BuildError(CrossDeployError):
    """Base class for Builder failures."""
    pass


class ToolchainMissing(BuildError):
    """The build tool or the target's standard library/linker is not installed."""
    pass


class CompileError(BuildError):
    """
    The compiler rejected the source.

    ``diagnostics`` holds the compiler's stderr verbatim; nothing is parsed.
    """

    def __init__(self, message: str, diagnostics: str = "", returncode: Optional[int] = None):
        super().__init__(message)
        self.diagnostics = diagnostics
        self.returncode = returncode


class BuildIOError(BuildError):
    """The build finished but its artifact could not be found or copied."""
    pass


class VerificationError(CrossDeployError):
    """Base class for ArtifactVerifier failures. Never bypassed."""
    pass


class EmptyArtifact(VerificationError):
    pass


class TripleMismatch(VerificationError):
    """The artifact was built for, or encodes, a different architecture."""

    def __init__(self, message: str, expected: str = "", actual: str = ""):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class NotExecutable(VerificationError):
    pass


class DeployError(CrossDeployError):
    """Base class for Deployer failures."""
    pass


class RemoteConnectionError(DeployError):
    """
    Raised when the remote host cannot be reached or authentication fails.

    Examples:
        - SSH connection refused / timed out
        - Passwordless SSH not configured
    """
    retryable = True


class TransferError(DeployError):
    """Upload failed or the remote byte count differs from the local size."""
    retryable = True

    def __init__(self, message: str, expected_bytes: Optional[int] = None,
                 transferred_bytes: Optional[int] = None):
        super().__init__(message)
        self.expected_bytes = expected_bytes
        self.transferred_bytes = transferred_bytes


class RemoteWriteError(DeployError):
    """
    The remote side refused the final rename (permissions, disk full, ...).

    Never retried automatically: retrying blindly will not fix it.
    """
    pass


class PipelineCancelled(CrossDeployError):
    """Operator aborted the run; observed at a stage boundary."""
    pass
