"""Build-and-deploy pipeline as an explicit state machine.

    RESOLVING -> PROVISIONING -> BUILDING -> VERIFYING -> DEPLOYING -> DONE
         \\______________\\______________\\___________\\___________\\-> FAILED

A failed stage is never re-entered and the pipeline never retries itself;
re-running the whole pipeline is safe because every stage is idempotent or
side-effect-isolated. The report keeps the failing stage and the original
exception so callers can map failures to exit codes.
"""

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from crossdeploy.builder import Builder
from crossdeploy.core.cancellation import CancelToken
from crossdeploy.core.protocols import FileSystemService, Logger
from crossdeploy.deploy.deployer import Deployer
from crossdeploy.exceptions import CrossDeployError, DeployError, PipelineCancelled, TransferError
from crossdeploy.models import (
    Artifact,
    BuildRequest,
    DeployResult,
    TargetSpec,
    VerificationReport,
)
from crossdeploy.registry import TargetRegistry
from crossdeploy.toolchain import ToolchainProvisioner
from crossdeploy.verifier import ArtifactVerifier

logger = logging.getLogger(__name__)


class Stage(enum.Enum):
    RESOLVING = "resolving"
    PROVISIONING = "provisioning"
    BUILDING = "building"
    VERIFYING = "verifying"
    DEPLOYING = "deploying"
    DONE = "done"
    FAILED = "failed"


EXIT_SUCCESS = 0
EXIT_CANCELLED = 130
STAGE_EXIT_CODES = {
    Stage.RESOLVING: 2,
    Stage.PROVISIONING: 3,
    Stage.BUILDING: 4,
    Stage.VERIFYING: 5,
    Stage.DEPLOYING: 6,
}


@dataclass
class PipelineJob:
    """Inputs of one pipeline run."""
    target_name: str
    release_mode: bool = True
    source_root: Union[str, Path] = "."
    unique_output: bool = False


@dataclass
class PipelineReport:
    """Outcome of one run, including partial progress on failure."""
    target_name: str
    state: Stage = Stage.RESOLVING
    failed_stage: Optional[Stage] = None
    error: Optional[Exception] = None
    cancelled: bool = False
    target: Optional[TargetSpec] = None
    toolchain_installed: Optional[bool] = None
    artifact: Optional[Artifact] = None
    verification: Optional[VerificationReport] = None
    deploy_result: Optional[DeployResult] = None
    progress: List[str] = field(default_factory=list)
    transitions: List[Stage] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is Stage.DONE

    @property
    def error_kind(self) -> Optional[str]:
        return type(self.error).__name__ if self.error is not None else None

    @property
    def exit_code(self) -> int:
        if self.succeeded:
            return EXIT_SUCCESS
        if self.cancelled:
            return EXIT_CANCELLED
        return STAGE_EXIT_CODES.get(self.failed_stage, 1)

    def enter(self, stage: Stage) -> None:
        self.state = stage
        self.transitions.append(stage)

    def fail(self, error: Exception, cancelled: bool = False) -> None:
        self.failed_stage = self.state
        self.error = error
        self.cancelled = cancelled or isinstance(error, PipelineCancelled)
        self.enter(Stage.FAILED)


class Pipeline:
    """
    Sequences registry → provisioner → builder → verifier → deployer.

    Args:
        registry: Loaded target registry
        provisioner: Toolchain installer (shared across runs for its keyed lock)
        builder: cargo invoker (shared across runs for its concurrency cap)
        verifier: Artifact safety gate
        deployer: Atomic remote installer
        logger: User-facing progress output
        filesystem: Used to discard per-run artifact copies
        keep_local_artifact: Keep unique-output artifacts after a successful deploy
    """

    def __init__(
        self,
        registry: TargetRegistry,
        provisioner: ToolchainProvisioner,
        builder: Builder,
        verifier: ArtifactVerifier,
        deployer: Deployer,
        logger: Logger,
        filesystem: Optional[FileSystemService] = None,
        keep_local_artifact: bool = True
    ):
        self.registry = registry
        self.provisioner = provisioner
        self.builder = builder
        self.verifier = verifier
        self.deployer = deployer
        self.log = logger
        self.fs = filesystem
        self.keep_local_artifact = keep_local_artifact

    def run(
        self,
        target_name: str,
        release_mode: bool = True,
        source_root: Union[str, Path] = ".",
        unique_output: bool = False,
        cancel_token: Optional[CancelToken] = None
    ) -> PipelineReport:
        """Run every stage for one target; never raises for stage failures."""
        token = cancel_token or CancelToken()
        report = PipelineReport(target_name=target_name)

        try:
            self._enter(report, Stage.RESOLVING, token)
            spec = self.registry.resolve(target_name)
            report.target = spec
            report.progress.append(f"target {spec.name} resolved to {spec.triple}")

            self._enter(report, Stage.PROVISIONING, token)
            installed = self.provisioner.ensure(spec, token)
            report.toolchain_installed = installed
            report.progress.append(
                "toolchain installed" if installed else "toolchain already installed"
            )

            self._enter(report, Stage.BUILDING, token)
            artifact = self.builder.build(BuildRequest(
                target=spec,
                release_mode=release_mode,
                source_root=Path(source_root),
                unique_output=unique_output
            ))
            report.artifact = artifact
            report.progress.append(f"build succeeded ({artifact.size_bytes} bytes)")

            self._enter(report, Stage.VERIFYING, token)
            verification = self.verifier.check(artifact, spec.triple)
            report.verification = verification
            if verification.arch_checked:
                report.progress.append(f"verified {verification.detected_machine}")
            else:
                self.log.warning(verification.note)
                report.progress.append(f"verified (best effort: {verification.note})")

            self._enter(report, Stage.DEPLOYING, token)
            result = self.deployer.deploy(artifact, spec.host, token, expected_triple=spec.triple)
            report.deploy_result = result
            report.progress.append(f"deployed {result.bytes_transferred} bytes to {spec.host}")

            report.enter(Stage.DONE)
        except (CrossDeployError, OSError) as e:
            logger.debug("Pipeline for %s failed at %s", target_name, report.state.value,
                         exc_info=True)
            if report.state is Stage.DEPLOYING and report.target is not None:
                report.deploy_result = self._failed_deploy_result(report.target, e)
            report.fail(e, cancelled=token.cancelled)
            return report

        self._discard_local_copy(report.artifact)
        return report

    def run_many(
        self,
        jobs: List[PipelineJob],
        max_workers: int = 2,
        cancel_token: Optional[CancelToken] = None
    ) -> List[PipelineReport]:
        """Run independent pipelines concurrently; reports keep the order of ``jobs``."""
        token = cancel_token or CancelToken()
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(
                    self.run,
                    job.target_name,
                    job.release_mode,
                    job.source_root,
                    job.unique_output,
                    token
                )
                for job in jobs
            ]
            return [future.result() for future in futures]

    def _enter(self, report: PipelineReport, stage: Stage, token: CancelToken) -> None:
        report.enter(stage)
        self.log.debug(f"[{report.target_name}] {stage.value}")
        token.raise_if_cancelled(f"entering {stage.value}")

    @staticmethod
    def _failed_deploy_result(spec: TargetSpec, error: Exception) -> DeployResult:
        transferred = 0
        if isinstance(error, TransferError) and error.transferred_bytes:
            transferred = error.transferred_bytes
        return DeployResult(
            success=False,
            remote_path=spec.host.remote_path,
            bytes_transferred=transferred,
            error=type(error).__name__ if isinstance(error, DeployError) else None
        )

    def _discard_local_copy(self, artifact: Optional[Artifact]) -> None:
        if self.keep_local_artifact or artifact is None or not artifact.unique or self.fs is None:
            return
        try:
            self.fs.remove(artifact.local_path)
        except OSError as e:
            self.log.warning(f"Could not remove local artifact {artifact.local_path}: {e}")
