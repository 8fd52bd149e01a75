"""Shared wiring for commands: registry loading and production dependencies."""
from typing import Tuple

from crossdeploy.builder import Builder
from crossdeploy.core import (
    ConsoleLogger,
    RealFileSystemService,
    SubprocessExecutor,
    SystemEnvironmentProvider,
    SystemTimeProvider,
    SystemToolLocator,
    YamlConfigLoader,
)
from crossdeploy.deploy import Deployer, SSHTransport
from crossdeploy.pipeline import Pipeline
from crossdeploy.registry import TargetRegistry, load_registry
from crossdeploy.toolchain import ToolchainProvisioner
from crossdeploy.utils.config import Settings, locate_registry
from crossdeploy.verifier import ArtifactVerifier


def add_registry_argument(parser):
    parser.add_argument(
        '--registry',
        help='Target registry file (default: $CROSSDEPLOY_REGISTRY or ./crossdeploy.yaml)'
    )


def load_context(args) -> Tuple[TargetRegistry, Settings]:
    """Load the registry named by args and apply command-line overrides to its settings.

    Raises:
        ConfigurationError: registry missing or malformed, or an override is invalid
    """
    filesystem = RealFileSystemService()
    path = locate_registry(getattr(args, 'registry', None))
    registry, settings = load_registry(path, YamlConfigLoader(filesystem))
    settings = settings.with_overrides(
        retries=getattr(args, 'retries', None),
        backup=True if getattr(args, 'backup', False) else None,
    )
    return registry, settings


def make_deployer(settings: Settings, logger: ConsoleLogger) -> Deployer:
    return Deployer(
        transport=SSHTransport(
            ssh_timeout=settings.ssh_timeout,
            transfer_timeout=settings.transfer_timeout
        ),
        time_provider=SystemTimeProvider(),
        logger=logger,
        retries=settings.retries,
        backoff_base=settings.backoff_base,
        backoff_max=settings.backoff_max,
        keep_backup=settings.backup
    )


def make_pipeline(registry: TargetRegistry, settings: Settings, logger: ConsoleLogger) -> Pipeline:
    """Create a production pipeline with real dependencies."""
    filesystem = RealFileSystemService()
    process = SubprocessExecutor()
    return Pipeline(
        registry=registry,
        provisioner=ToolchainProvisioner(
            process_executor=process,
            filesystem=filesystem,
            tool_locator=SystemToolLocator(),
            logger=logger,
            settings=settings
        ),
        builder=Builder(
            process_executor=process,
            filesystem=filesystem,
            env_provider=SystemEnvironmentProvider(),
            logger=logger,
            max_parallel_builds=settings.max_parallel_builds
        ),
        verifier=ArtifactVerifier(filesystem),
        deployer=make_deployer(settings, logger),
        logger=logger,
        filesystem=filesystem,
        keep_local_artifact=settings.keep_local_artifact
    )
