"""Cross toolchain provisioning.

Makes sure the target's Rust standard library (``rustup target add``) and the
system cross linker package (``apt-get install``) are present before a build.

Installation state is recorded under ``<state_dir>/toolchains/<triple>/``.
The record is assembled in a staging directory and moved into place with a
single ``os.replace`` only after every install step succeeded, so an
interrupted install leaves either the previous state or a complete one.
"""

import json
import logging
import re
import subprocess
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import yaml

from crossdeploy.core.cancellation import CancelToken
from crossdeploy.core.protocols import (
    FileSystemService,
    Logger,
    ProcessExecutor,
    ToolLocator,
)
from crossdeploy.exceptions import ToolchainInstallError
from crossdeploy.models import TargetSpec
from crossdeploy.utils.config import Settings
from crossdeploy.utils.locking import KeyedLock, exclusive_file_lock

logger = logging.getLogger(__name__)

TOOLCHAINS_DIR = 'toolchains'
LOCKS_DIR = 'locks'
INSTALL_LOG_FILE = 'install.log'
MANIFEST_FILE = 'manifest.yaml'
PROBE_TIMEOUT = 60

NETWORK_PATTERNS = (
    r'could not resolve', r'temporary failure', r'failed to fetch',
    r'network is unreachable', r'connection (refused|reset|timed out)',
    r'timed out', r'error sending request', r'could not download',
    r'name or service not known',
)
PERMISSION_PATTERNS = (
    r'permission denied', r'are you root', r'a password is required',
    r'could not open lock file', r'unable to acquire the dpkg frontend lock',
    r'operation not permitted', r'not in the sudoers',
)
NOT_FOUND_PATTERNS = (
    r'unable to locate package', r'has no installation candidate',
    r'does not (support|contain)', r'unknown target', r'invalid target',
    r"component '.*' for target '.*' is unavailable", r'command not found',
)


def classify_install_failure(output: str) -> str:
    """Map installer output to a ToolchainInstallError kind."""
    text = output.lower()
    for kind, patterns in (
        (ToolchainInstallError.KIND_NOT_FOUND, NOT_FOUND_PATTERNS),
        (ToolchainInstallError.KIND_PERMISSION, PERMISSION_PATTERNS),
        (ToolchainInstallError.KIND_NETWORK, NETWORK_PATTERNS),
    ):
        if any(re.search(pattern, text) for pattern in patterns):
            return kind
    return ToolchainInstallError.KIND_UNKNOWN


class ToolchainProvisioner:
    """Idempotent installer for a target's cross toolchain.

    Args:
        process_executor: Runs rustup / package manager commands
        filesystem: Access to the state directory
        tool_locator: Finds the cross linker on PATH
        logger: User-facing progress output
        settings: state_dir, install_timeout and package_manager
        locks: Keyed lock map shared by every run in this process
    """

    def __init__(
        self,
        process_executor: ProcessExecutor,
        filesystem: FileSystemService,
        tool_locator: ToolLocator,
        logger: Logger,
        settings: Settings,
        locks: Optional[KeyedLock] = None
    ):
        self.process = process_executor
        self.fs = filesystem
        self.tools = tool_locator
        self.log = logger
        self.settings = settings
        self.locks = locks if locks is not None else KeyedLock()
        self.state_dir = Path(settings.state_dir)

    @property
    def install_log_path(self) -> Path:
        return self.state_dir / INSTALL_LOG_FILE

    def record_dir(self, triple: str) -> Path:
        return self.state_dir / TOOLCHAINS_DIR / triple

    def ensure(self, spec: TargetSpec, cancel_token: Optional[CancelToken] = None) -> bool:
        """Install the toolchain for ``spec`` unless it is already present.

        Returns:
            True if an installation was performed, False if already installed

        Raises:
            ToolchainInstallError: classified by kind (network/permission/not_found/unknown)
            PipelineCancelled: cancellation observed before the record was swapped in
        """
        token = cancel_token or CancelToken()
        token.raise_if_cancelled("before toolchain probe")

        if self.is_installed(spec):
            self.log.info(f"Toolchain for {spec.triple} already installed")
            return False

        # At most one install per triple in flight; late callers wait, then re-probe.
        with self.locks.hold(spec.triple), \
                exclusive_file_lock(self.state_dir / LOCKS_DIR, f"{spec.triple}.lock"):
            if self.is_installed(spec):
                self.log.info(f"Toolchain for {spec.triple} installed by a concurrent run")
                return False
            self._install(spec, token)
        return True

    def is_installed(self, spec: TargetSpec) -> bool:
        """Side-effect-free probe."""
        if not self.fs.exists(self.record_dir(spec.triple) / MANIFEST_FILE):
            logger.debug("No installation record for %s", spec.triple)
            return False
        if not self._rust_target_installed(spec.triple):
            logger.debug("rustup does not list %s as installed", spec.triple)
            return False
        if spec.linker and not self.tools.has_tool(spec.linker):
            logger.debug("Linker %s not on PATH", spec.linker)
            return False
        if not self._package_installed(spec.toolchain_package):
            logger.debug("Package %s not installed", spec.toolchain_package)
            return False
        return True

    def _rust_target_installed(self, triple: str) -> bool:
        try:
            result = self.process.run(
                ['rustup', 'target', 'list', '--installed'], timeout=PROBE_TIMEOUT
            )
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return False
        if result.returncode != 0:
            return False
        return triple in result.stdout.split()

    def _package_installed(self, package: str) -> bool:
        try:
            result = self.process.run(
                ['dpkg-query', '-W', '-f=${Status}', package], timeout=PROBE_TIMEOUT
            )
        except FileNotFoundError:
            # Not a dpkg system: trust the linker probe
            logger.debug("dpkg-query not available, skipping package probe for %s", package)
            return True
        except subprocess.TimeoutExpired:
            return False
        return result.returncode == 0 and 'install ok installed' in result.stdout

    def _install(self, spec: TargetSpec, token: CancelToken) -> None:
        toolchains_dir = self.state_dir / TOOLCHAINS_DIR
        self.fs.mkdir(toolchains_dir, parents=True, exist_ok=True)
        staging = toolchains_dir / f".staging-{spec.triple}-{uuid.uuid4().hex[:8]}"
        self.fs.mkdir(staging, parents=True, exist_ok=False)

        self.log.info(f"Installing toolchain for {spec.triple}...")
        steps: List[str] = []
        try:
            token.raise_if_cancelled("before toolchain install")

            self._run_step(['rustup', 'target', 'add', spec.triple], spec)
            steps.append('rust-std')
            token.raise_if_cancelled("after rustup target add")

            if not self._package_installed(spec.toolchain_package):
                self._run_step(self.settings.package_manager + [spec.toolchain_package], spec)
                steps.append(f'package:{spec.toolchain_package}')
            token.raise_if_cancelled("after package install")

            if spec.linker and not self.tools.has_tool(spec.linker):
                raise ToolchainInstallError(
                    f"Linker '{spec.linker}' still not on PATH after installing "
                    f"{spec.toolchain_package}",
                    kind=ToolchainInstallError.KIND_NOT_FOUND
                )

            installed_at = datetime.now(timezone.utc).isoformat()
            manifest = {
                'triple': spec.triple,
                'toolchain_package': spec.toolchain_package,
                'linker': spec.linker,
                'installed_at': installed_at,
                'steps': steps,
            }
            self.fs.write_file(
                staging / MANIFEST_FILE,
                yaml.safe_dump(manifest, default_flow_style=False, sort_keys=False)
            )
            token.raise_if_cancelled("before recording toolchain")
            self._swap_in(staging, self.record_dir(spec.triple))
        except BaseException:
            if self.fs.exists(staging):
                self.fs.rmtree(staging)
            raise

        self.fs.append_line(self.install_log_path, json.dumps({
            'timestamp': installed_at,
            'event': 'install',
            'triple': spec.triple,
            'toolchain_package': spec.toolchain_package,
            'steps': steps,
        }))
        self.log.info(f"✓ Toolchain for {spec.triple} installed")

    def _swap_in(self, staging: Path, final: Path) -> None:
        """Replace ``final`` with ``staging`` (a stale record is moved aside first)."""
        stale = None
        if self.fs.exists(final):
            stale = final.with_name(f".stale-{final.name}-{uuid.uuid4().hex[:8]}")
            self.fs.replace(final, stale)
        self.fs.replace(staging, final)
        if stale is not None:
            self.fs.rmtree(stale)

    def _run_step(self, cmd: List[str], spec: TargetSpec) -> None:
        logger.debug("Running %s", ' '.join(cmd))
        try:
            result = self.process.run(cmd, timeout=self.settings.install_timeout)
        except FileNotFoundError:
            raise ToolchainInstallError(
                f"'{cmd[0]}' not found; cannot install toolchain for {spec.triple}",
                kind=ToolchainInstallError.KIND_NOT_FOUND
            ) from None
        except subprocess.TimeoutExpired:
            raise ToolchainInstallError(
                f"'{' '.join(cmd)}' timed out after {self.settings.install_timeout:.0f}s",
                kind=ToolchainInstallError.KIND_NETWORK
            ) from None

        if result.returncode != 0:
            output = (result.stderr or '') + (result.stdout or '')
            kind = classify_install_failure(output)
            raise ToolchainInstallError(
                f"'{' '.join(cmd)}' failed (exit code {result.returncode}, {kind})\n{output.strip()}",
                kind=kind,
                output=output
            )
