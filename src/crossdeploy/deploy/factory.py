"""
Host string parsing.

Accepted formats:
    host                   → HostProfile(address="host", port=22)
    user@host              → HostProfile(user="user", address="host")
    user@host:2222         → custom SSH port
    user@[fe80::1]:2222    → IPv6 with custom port
    [fe80::1]              → IPv6, no user
"""

from typing import Optional

from crossdeploy.models import HostProfile


def parse_host(
    device: str,
    remote_path: str,
    identity_file: Optional[str] = None,
    default_port: int = 22
) -> HostProfile:
    """
    Parse a device string into a HostProfile.

    Args:
        device: Connection string (see module docstring)
        remote_path: Final path of the executable on the device
        identity_file: Optional private key path
        default_port: Port used when the string has none

    Raises:
        ValueError: If the format is not recognized
    """
    if not device or not device.strip():
        raise ValueError("Empty host string")
    device = device.strip()

    user = None
    host_part = device
    if '@' in device:
        user, host_part = device.split('@', 1)
        if not user:
            raise ValueError(f"Empty user in host string: {device}")

    if host_part.startswith('['):
        # IPv6: [fe80::1] or [fe80::1]:2222
        bracket_end = host_part.find(']')
        if bracket_end == -1:
            raise ValueError(f"Malformed IPv6 address: {device}")
        host = host_part[1:bracket_end]
        remainder = host_part[bracket_end + 1:]
        if remainder and not remainder.startswith(':'):
            raise ValueError(f"Unexpected text after IPv6 address: {device}")
        port = _parse_port(remainder[1:], device) if remainder else default_port
    elif host_part.count(':') == 1:
        host, port_str = host_part.rsplit(':', 1)
        port = _parse_port(port_str, device)
    elif ':' in host_part:
        # Bare IPv6 without brackets cannot carry a port
        host = host_part
        port = default_port
    else:
        host = host_part
        port = default_port

    if not host:
        raise ValueError(f"Empty host in host string: {device}")

    return HostProfile(
        address=host,
        remote_path=remote_path,
        user=user,
        port=port,
        identity_file=identity_file
    )


def _parse_port(port_str: str, device: str) -> int:
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port in host string: {device}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range in host string: {device}")
    return port
