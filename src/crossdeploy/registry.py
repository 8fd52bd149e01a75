"""Target registry: logical target names → TargetSpec.

Loaded once from the static YAML registry, read-only afterwards::

    targets:
      - name: pi4
        triple: armv7-unknown-linux-gnueabihf
        toolchain_package: gcc-arm-linux-gnueabihf
        linker: arm-linux-gnueabihf-gcc
        binary: main
        host:
          address: pi@pi.local
          remote_path: /opt/app/main
          identity_file: ~/.ssh/id_ed25519
    settings:
      retries: 5
"""
import logging
import os
import yaml
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from crossdeploy.core.protocols import ConfigLoader
from crossdeploy.deploy.factory import parse_host
from crossdeploy.exceptions import ConfigurationError, UnknownTarget
from crossdeploy.models import HostProfile, TargetSpec
from crossdeploy.utils.config import Settings

logger = logging.getLogger(__name__)

REQUIRED_TARGET_FIELDS = ('name', 'triple', 'toolchain_package', 'host')
OPTIONAL_TARGET_FIELDS = ('linker', 'binary')
HOST_FIELDS = ('address', 'remote_path', 'user', 'port', 'identity_file')


class TargetRegistry:
    """Immutable name → TargetSpec lookup."""

    def __init__(self, targets: List[TargetSpec]):
        by_name: Dict[str, TargetSpec] = {}
        for spec in targets:
            if spec.name in by_name:
                raise ConfigurationError(f"Duplicate target name '{spec.name}' in registry")
            by_name[spec.name] = spec
        self._targets = by_name

    def resolve(self, name: str) -> TargetSpec:
        """Exact-match lookup; raises UnknownTarget."""
        try:
            return self._targets[name]
        except KeyError:
            raise UnknownTarget(name, list(self._targets)) from None

    def names(self) -> List[str]:
        return sorted(self._targets)

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def __iter__(self) -> Iterator[TargetSpec]:
        return iter(self._targets[name] for name in self.names())

    def __len__(self) -> int:
        return len(self._targets)


def load_registry(path: str, config_loader: ConfigLoader) -> Tuple[TargetRegistry, Settings]:
    """Load the registry file and its optional settings section.

    Raises:
        ConfigurationError: File missing/unreadable, malformed entries, duplicates
    """
    try:
        data = config_loader.load_yaml(path)
    except FileNotFoundError:
        raise ConfigurationError(f"Registry file not found: {path}") from None
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read registry {path}: {e}") from e

    logger.debug("Loaded registry from %s", path)
    return parse_registry(data)


def parse_registry(data: Any) -> Tuple[TargetRegistry, Settings]:
    """Validate raw registry data (already parsed from YAML)."""
    if not isinstance(data, Mapping):
        raise ConfigurationError("Registry must be a mapping with a 'targets' list")

    unknown = sorted(set(data) - {'targets', 'settings'})
    if unknown:
        raise ConfigurationError(f"Unknown top-level registry key(s): {', '.join(unknown)}")

    entries = data.get('targets')
    if not isinstance(entries, list) or not entries:
        raise ConfigurationError("Registry 'targets' must be a non-empty list")

    targets = [_parse_target(entry, index) for index, entry in enumerate(entries)]
    registry = TargetRegistry(targets)
    settings = Settings.from_mapping(data.get('settings'))
    return registry, settings


def _parse_target(entry: Any, index: int) -> TargetSpec:
    where = f"targets[{index}]"
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"{where} must be a mapping")

    if isinstance(entry.get('name'), str):
        where = f"target '{entry['name']}'"

    missing = [f for f in REQUIRED_TARGET_FIELDS if entry.get(f) in (None, '')]
    if missing:
        raise ConfigurationError(f"{where} is missing required field(s): {', '.join(missing)}")

    unknown = sorted(set(entry) - set(REQUIRED_TARGET_FIELDS) - set(OPTIONAL_TARGET_FIELDS))
    if unknown:
        raise ConfigurationError(f"{where} has unknown field(s): {', '.join(unknown)}")

    for key in ('name', 'triple', 'toolchain_package', 'linker', 'binary'):
        value = entry.get(key)
        if value is not None and not isinstance(value, str):
            raise ConfigurationError(f"{where}: '{key}' must be a string")

    triple = entry['triple']
    if triple.count('-') < 2:
        raise ConfigurationError(
            f"{where}: triple '{triple}' must look like <arch>-<vendor>-<os>[-<abi>]"
        )

    return TargetSpec(
        name=entry['name'],
        triple=triple,
        toolchain_package=entry['toolchain_package'],
        host=_parse_host(entry['host'], where),
        linker=entry.get('linker'),
        binary=entry.get('binary') or 'main',
    )


def _parse_host(raw: Any, where: str) -> HostProfile:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{where}: 'host' must be a mapping")

    unknown = sorted(set(raw) - set(HOST_FIELDS))
    if unknown:
        raise ConfigurationError(f"{where}: host has unknown field(s): {', '.join(unknown)}")

    address = raw.get('address')
    remote_path = raw.get('remote_path')
    if not isinstance(address, str) or not address:
        raise ConfigurationError(f"{where}: host.address is required")
    if not isinstance(remote_path, str) or not remote_path:
        raise ConfigurationError(f"{where}: host.remote_path is required")
    if remote_path.endswith('/'):
        raise ConfigurationError(f"{where}: host.remote_path must name a file, not a directory")

    identity_file: Optional[str] = raw.get('identity_file')
    if identity_file is not None:
        if not isinstance(identity_file, str):
            raise ConfigurationError(f"{where}: host.identity_file must be a string")
        identity_file = os.path.expanduser(identity_file)

    port = raw.get('port', 22)
    if isinstance(port, bool) or not isinstance(port, int):
        raise ConfigurationError(f"{where}: host.port must be an integer")
    if not 0 < port < 65536:
        raise ConfigurationError(f"{where}: host.port {port} is out of range (1-65535)")

    try:
        host = parse_host(address, remote_path, identity_file=identity_file, default_port=port)
    except ValueError as e:
        raise ConfigurationError(f"{where}: {e}") from e

    if 'port' in raw and host.port != port:
        raise ConfigurationError(
            f"{where}: host.port {port} conflicts with address '{address}'"
        )

    user = raw.get('user')
    if user is not None:
        if not isinstance(user, str):
            raise ConfigurationError(f"{where}: host.user must be a string")
        if host.user and host.user != user:
            raise ConfigurationError(
                f"{where}: host.user '{user}' conflicts with address '{address}'"
            )
        host = HostProfile(
            address=host.address,
            remote_path=host.remote_path,
            user=user,
            port=host.port,
            identity_file=host.identity_file
        )
    return host
