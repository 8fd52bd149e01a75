"""Cross build invocation.

Precondition: ``ToolchainProvisioner.ensure()`` succeeded for the request's
target. The builder does not re-check it; a missing toolchain surfaces as
``ToolchainMissing`` from cargo's own diagnostics.
"""

import logging
import re
import subprocess
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from crossdeploy.core.protocols import (
    EnvironmentProvider,
    FileSystemService,
    Logger,
    ProcessExecutor,
)
from crossdeploy.exceptions import BuildIOError, CompileError, ToolchainMissing
from crossdeploy.models import Artifact, BuildRequest
from crossdeploy.utils.locking import KeyedLock

logger = logging.getLogger(__name__)

TARGET_DIR = 'target'
UNIQUE_OUTPUT_DIR = 'deploy'

# cargo/rustc diagnostics that mean "toolchain not provisioned", not "bad source"
TOOLCHAIN_MISSING_PATTERNS = (
    r"can't find crate for `(std|core)`",
    r'the `[^`]+` target may not be installed',
    r'linker `[^`]+` not found',
    r'error: toolchain .* is not installed',
    r'no such command',
)


def linker_env_var(triple: str) -> str:
    """Cargo's per-target linker variable: CARGO_TARGET_<TRIPLE>_LINKER."""
    return f"CARGO_TARGET_{triple.upper().replace('-', '_').replace('.', '_')}_LINKER"


def artifact_path(source_root: Path, triple: str, release_mode: bool, binary: str) -> Path:
    """Deterministic output location for (triple, release_mode)."""
    profile = 'release' if release_mode else 'debug'
    return Path(source_root) / TARGET_DIR / triple / profile / binary


class Builder:
    """Runs ``cargo build`` for one triple and returns exactly one Artifact.

    Args:
        process_executor: Runs cargo
        filesystem: Checks and copies the produced binary
        env_provider: Base environment for cargo
        logger: User-facing progress output
        max_parallel_builds: Cap on concurrent cargo invocations across runs
        build_timeout: Seconds before a cargo invocation is abandoned (None waits)
    """

    def __init__(
        self,
        process_executor: ProcessExecutor,
        filesystem: FileSystemService,
        env_provider: EnvironmentProvider,
        logger: Logger,
        max_parallel_builds: int = 2,
        build_timeout: Optional[float] = None
    ):
        self.process = process_executor
        self.fs = filesystem
        self.env = env_provider
        self.log = logger
        self.build_timeout = build_timeout
        self._slots = threading.BoundedSemaphore(max_parallel_builds)
        self._output_locks = KeyedLock()

    def command(self, req: BuildRequest) -> List[str]:
        cmd = ['cargo', 'build', '--target', req.target.triple]
        if req.release_mode:
            cmd.append('--release')
        return cmd

    def environment(self, req: BuildRequest) -> Dict[str, str]:
        env = self.env.get_environ()
        if req.target.linker:
            env[linker_env_var(req.target.triple)] = req.target.linker
        return env

    def build(self, req: BuildRequest) -> Artifact:
        """Build ``req`` and return the artifact.

        Raises:
            ToolchainMissing: cargo or the target's std/linker is not installed
            CompileError: compiler rejected the source (diagnostics verbatim)
            BuildIOError: the artifact is missing or could not be copied
        """
        source_root = Path(req.source_root)
        if not self.fs.is_dir(source_root):
            raise BuildIOError(f"Source root not found: {source_root}")

        output = artifact_path(source_root, req.target.triple, req.release_mode, req.target.binary)
        cmd = self.command(req)

        # Builds sharing an output directory must not interleave. The directory
        # lock is taken before a build slot.
        with self._output_locks.hold(str(output.parent)), self._slots:
            self.log.info(f"Building {req.target.name} ({req.target.triple}, {req.profile})...")
            logger.debug("Running %s in %s", ' '.join(cmd), source_root)
            try:
                result = self.process.run(
                    cmd,
                    cwd=str(source_root),
                    env=self.environment(req),
                    timeout=self.build_timeout
                )
            except FileNotFoundError:
                raise ToolchainMissing(
                    "cargo not found on PATH; install Rust via rustup"
                ) from None
            except subprocess.TimeoutExpired:
                raise BuildIOError(
                    f"cargo build timed out after {self.build_timeout:.0f}s"
                ) from None

            if result.returncode != 0:
                self._raise_for_failure(req, result.returncode, result.stderr)

            if not self.fs.is_file(output):
                raise BuildIOError(
                    f"cargo build succeeded but {output} was not produced "
                    f"(is the binary named '{req.target.binary}'?)"
                )

            if req.unique_output:
                output = self._copy_unique(output)

            try:
                size = self.fs.file_size(output)
            except OSError as e:
                raise BuildIOError(f"Cannot stat artifact {output}: {e}") from e

        self.log.info(f"✓ Built {output} ({size} bytes)")
        return Artifact(
            local_path=output,
            size_bytes=size,
            triple=req.target.triple,
            unique=req.unique_output
        )

    def _raise_for_failure(self, req: BuildRequest, returncode: int, stderr: str) -> None:
        diagnostics = stderr or ''
        for pattern in TOOLCHAIN_MISSING_PATTERNS:
            if re.search(pattern, diagnostics):
                raise ToolchainMissing(
                    f"Toolchain for {req.target.triple} is not installed:\n{diagnostics}"
                )
        raise CompileError(
            f"cargo build failed for {req.target.triple} (exit code {returncode})",
            diagnostics=diagnostics,
            returncode=returncode
        )

    def _copy_unique(self, output: Path) -> Path:
        stamp = datetime.now().strftime('%Y%m%d-%H%M%S')
        unique_dir = output.parent / UNIQUE_OUTPUT_DIR
        unique = unique_dir / f"{output.name}-{stamp}-{uuid.uuid4().hex[:8]}"
        try:
            self.fs.mkdir(unique_dir, parents=True, exist_ok=True)
            self.fs.copy_file(output, unique)
        except OSError as e:
            raise BuildIOError(f"Cannot copy artifact to {unique}: {e}") from e
        return unique
