"""Production implementations of dependency injection protocols.

This module provides real implementations that wrap actual external dependencies
(filesystem, subprocess, time, etc.). These are used in production code.

For testing, use mocks or test doubles instead of these implementations.
"""

import os
import shutil
import stat
import subprocess
import sys
import time
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

from crossdeploy.core.protocols import ProcessResult


class ConsoleLogger:
    """Production logger that prints to console (stdout/stderr)."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def info(self, message: str) -> None:
        """Print info message to stdout."""
        print(message)

    def warning(self, message: str) -> None:
        """Print warning message to stdout."""
        print(f"Warning: {message}")

    def error(self, message: str) -> None:
        """Print error message to stderr."""
        print(f"Error: {message}", file=sys.stderr)

    def debug(self, message: str) -> None:
        """Print debug message to stdout when verbose."""
        if self.verbose:
            print(f"Debug: {message}")


class RealFileSystemService:
    """Production filesystem service using real pathlib, os and shutil operations."""

    def exists(self, path: Union[str, Path]) -> bool:
        return Path(path).exists()

    def is_file(self, path: Union[str, Path]) -> bool:
        return Path(path).is_file()

    def is_dir(self, path: Union[str, Path]) -> bool:
        return Path(path).is_dir()

    def file_size(self, path: Union[str, Path]) -> int:
        return Path(path).stat().st_size

    def is_executable(self, path: Union[str, Path]) -> bool:
        mode = Path(path).stat().st_mode
        return bool(mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))

    def read_bytes(self, path: Union[str, Path], limit: int = -1) -> bytes:
        with open(path, 'rb') as f:
            return f.read(limit)

    def write_file(self, path: Union[str, Path], content: str) -> None:
        with open(path, 'w') as f:
            f.write(content)

    def append_line(self, path: Union[str, Path], line: str) -> None:
        with open(path, 'a') as f:
            f.write(line.rstrip('\n') + '\n')

    def mkdir(self, path: Union[str, Path], parents: bool = True, exist_ok: bool = True) -> None:
        Path(path).mkdir(parents=parents, exist_ok=exist_ok)

    def rmtree(self, path: Union[str, Path]) -> None:
        shutil.rmtree(path)

    def remove(self, path: Union[str, Path]) -> None:
        os.remove(path)

    def copy_file(self, src: Union[str, Path], dst: Union[str, Path]) -> None:
        shutil.copy2(src, dst)

    def replace(self, src: Union[str, Path], dst: Union[str, Path]) -> None:
        os.replace(src, dst)


class SubprocessExecutor:
    """Production process executor using real subprocess.run."""

    def run(
        self,
        cmd: List[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> ProcessResult:
        """Execute command and capture its output as text."""
        completed = subprocess.run(
            cmd,
            cwd=cwd,
            env=env,
            timeout=timeout,
            capture_output=True,
            text=True,
            errors='replace'
        )
        return ProcessResult(
            returncode=completed.returncode,
            stdout=completed.stdout or '',
            stderr=completed.stderr or ''
        )


class SystemTimeProvider:
    """Production time provider using real time module."""

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class SystemEnvironmentProvider:
    """Production environment provider using os.environ."""

    def get_environ(self) -> Dict[str, str]:
        return dict(os.environ)


class SystemToolLocator:
    """Production tool locator using real shutil.which."""

    def has_tool(self, tool_name: str) -> bool:
        return shutil.which(tool_name) is not None


class YamlConfigLoader:
    """Production config loader using real YAML parser."""

    def __init__(self, filesystem: RealFileSystemService):
        """Initialize with filesystem service for reading files."""
        self.fs = filesystem

    def load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file and return parsed dictionary (empty files give {})."""
        content = self.fs.read_bytes(path).decode('utf-8')
        return yaml.safe_load(content) or {}
