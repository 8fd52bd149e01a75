"""Protocol definitions for dependency injection.

This module defines Protocol-based abstractions for all external dependencies.
Protocols use structural typing (duck typing with type hints) which means any
class implementing these methods satisfies the Protocol without explicit inheritance.

Every stage of the pipeline (provisioner, builder, verifier, deployer) receives
these collaborators through its constructor, so unit tests can replace cargo,
rustup, ssh and the local filesystem with mocks.
"""

from dataclasses import dataclass
from typing import Protocol, Dict, Any, Optional, List, Union
from pathlib import Path


class Logger(Protocol):
    """Abstraction for user-facing progress output.

    Diagnostic detail goes through the standard ``logging`` module; this
    protocol carries the messages an operator is expected to read.
    """

    def info(self, message: str) -> None:
        """Log informational message."""
        ...

    def warning(self, message: str) -> None:
        """Log warning message."""
        ...

    def error(self, message: str) -> None:
        """Log error message."""
        ...

    def debug(self, message: str) -> None:
        """Log debug message."""
        ...


class FileSystemService(Protocol):
    """Abstraction for filesystem operations.

    Wraps all Path and file I/O operations used by the pipeline stages.
    """

    def exists(self, path: Union[str, Path]) -> bool:
        """Check if path exists."""
        ...

    def is_file(self, path: Union[str, Path]) -> bool:
        """Check if path is a file."""
        ...

    def is_dir(self, path: Union[str, Path]) -> bool:
        """Check if path is a directory."""
        ...

    def file_size(self, path: Union[str, Path]) -> int:
        """Return the size of a file in bytes."""
        ...

    def is_executable(self, path: Union[str, Path]) -> bool:
        """Check if any execute permission bit is set on path."""
        ...

    def read_bytes(self, path: Union[str, Path], limit: int = -1) -> bytes:
        """Read up to ``limit`` bytes from the start of a file (-1 reads all)."""
        ...

    def write_file(self, path: Union[str, Path], content: str) -> None:
        """Write string content to file."""
        ...

    def append_line(self, path: Union[str, Path], line: str) -> None:
        """Append a single line to a file, creating it if needed."""
        ...

    def mkdir(self, path: Union[str, Path], parents: bool = True, exist_ok: bool = True) -> None:
        """Create directory (with parents if specified)."""
        ...

    def rmtree(self, path: Union[str, Path]) -> None:
        """Recursively remove directory tree."""
        ...

    def remove(self, path: Union[str, Path]) -> None:
        """Remove a single file."""
        ...

    def copy_file(self, src: Union[str, Path], dst: Union[str, Path]) -> None:
        """Copy a file, preserving permission bits."""
        ...

    def replace(self, src: Union[str, Path], dst: Union[str, Path]) -> None:
        """Atomically rename src onto dst."""
        ...


@dataclass
class ProcessResult:
    """Outcome of a finished external command."""
    returncode: int
    stdout: str
    stderr: str


class ProcessExecutor(Protocol):
    """Abstraction for process execution.

    Wraps subprocess.run to enable testing without spawning real processes.
    Implementations raise ``subprocess.TimeoutExpired`` when ``timeout`` elapses
    and ``FileNotFoundError`` when the executable does not exist.
    """

    def run(
        self,
        cmd: List[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> ProcessResult:
        """Execute command to completion and capture its output."""
        ...


class TimeProvider(Protocol):
    """Abstraction for time operations.

    Enables deterministic testing of retry backoff.
    """

    def sleep(self, seconds: float) -> None:
        """Sleep for specified number of seconds."""
        ...


class EnvironmentProvider(Protocol):
    """Abstraction for environment access."""

    def get_environ(self) -> Dict[str, str]:
        """Get copy of environment variables."""
        ...


class ToolLocator(Protocol):
    """Abstraction for external tool discovery.

    Wraps shutil.which() so toolchain probes can be tested without
    cross linkers being installed.
    """

    def has_tool(self, tool_name: str) -> bool:
        """Check if tool exists in PATH."""
        ...


class ConfigLoader(Protocol):
    """Abstraction for configuration file loading.

    Wraps YAML loading to enable testing with mock registries
    without requiring actual config files.
    """

    def load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file and return parsed dictionary."""
        ...
