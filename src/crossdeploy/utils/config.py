"""Runtime settings and registry file location"""
import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from crossdeploy.exceptions import ConfigurationError

REGISTRY_ENV = "CROSSDEPLOY_REGISTRY"
STATE_DIR_ENV = "CROSSDEPLOY_STATE_DIR"
DEFAULT_REGISTRY_FILE = "crossdeploy.yaml"
DEFAULT_STATE_DIR = Path.home() / ".cache" / "crossdeploy"


def _default_state_dir() -> str:
    return os.environ.get(STATE_DIR_ENV, str(DEFAULT_STATE_DIR))


@dataclass(frozen=True)
class Settings:
    """Tunables shared by all stages.

    Loaded from the optional ``settings:`` section of the registry file and
    overridden by command-line flags.
    """
    state_dir: str = field(default_factory=_default_state_dir)
    retries: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    ssh_timeout: float = 10.0
    transfer_timeout: float = 300.0
    install_timeout: float = 1800.0
    max_parallel_builds: int = 2
    keep_local_artifact: bool = True
    backup: bool = False
    package_manager: List[str] = field(
        default_factory=lambda: ["sudo", "apt-get", "install", "-y"]
    )

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "Settings":
        """Build settings from a YAML mapping, rejecting unknown keys."""
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigurationError("'settings' must be a mapping")

        known = {f.name: f for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ConfigurationError(f"Unknown settings key(s): {', '.join(unknown)}")

        values = {}
        for key, value in data.items():
            values[key] = _coerce(key, value, known[key].type)
        settings = cls(**values)
        settings.validate()
        return settings

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        settings = dataclasses.replace(self, **changes) if changes else self
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.retries < 0:
            raise ConfigurationError(f"retries must be >= 0, got {self.retries}")
        if self.max_parallel_builds < 1:
            raise ConfigurationError(
                f"max_parallel_builds must be >= 1, got {self.max_parallel_builds}"
            )
        for name in ('backoff_base', 'backoff_max', 'ssh_timeout',
                     'transfer_timeout', 'install_timeout'):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if not self.package_manager:
            raise ConfigurationError("package_manager must not be empty")


def _coerce(key: str, value: Any, annotation: Any) -> Any:
    """Check a settings value against the field's declared type."""
    if annotation in (int, 'int'):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"settings.{key} must be an integer")
        return value
    if annotation in (float, 'float'):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"settings.{key} must be a number")
        return float(value)
    if annotation in (bool, 'bool'):
        if not isinstance(value, bool):
            raise ConfigurationError(f"settings.{key} must be true or false")
        return value
    if annotation in (str, 'str'):
        if not isinstance(value, str):
            raise ConfigurationError(f"settings.{key} must be a string")
        return os.path.expanduser(value)
    # package_manager
    if isinstance(value, str):
        return value.split()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"settings.{key} must be a list of strings")
    return list(value)


def locate_registry(cli_path: Optional[str] = None,
                    environ: Optional[Dict[str, str]] = None) -> str:
    """Resolve the registry file: --registry, then $CROSSDEPLOY_REGISTRY, then ./crossdeploy.yaml."""
    if cli_path:
        return cli_path
    environ = os.environ if environ is None else environ
    return environ.get(REGISTRY_ENV) or DEFAULT_REGISTRY_FILE
