"""Unit tests for host string parsing."""

import pytest

from crossdeploy.deploy.factory import parse_host


class TestParseHost:

    def test_bare_host(self):
        host = parse_host("pi.local", "/opt/app/main")

        assert host.address == "pi.local"
        assert host.user is None
        assert host.port == 22
        assert host.destination == "pi.local"

    def test_user_and_port(self):
        host = parse_host("pi@192.168.1.40:2222", "/opt/app/main")

        assert host.user == "pi"
        assert host.address == "192.168.1.40"
        assert host.port == 2222
        assert str(host) == "pi@192.168.1.40:2222:/opt/app/main"

    def test_bracketed_ipv6_with_port(self):
        host = parse_host("root@[fe80::1]:2200", "/usr/local/bin/main")

        assert host.address == "fe80::1"
        assert host.port == 2200
        assert host.rsync_destination == "root@[fe80::1]"

    def test_bare_ipv6_keeps_default_port(self):
        host = parse_host("fe80::1", "/opt/main", default_port=2022)

        assert host.address == "fe80::1"
        assert host.port == 2022

    def test_identity_file_passed_through(self):
        host = parse_host("pi.local", "/opt/main", identity_file="/keys/id")

        assert host.identity_file == "/keys/id"

    @pytest.mark.parametrize("device", [
        "",
        "   ",
        "@pi.local",
        "pi@",
        "pi.local:ssh",
        "pi.local:0",
        "[fe80::1",
        "[fe80::1]x",
    ])
    def test_invalid(self, device):
        with pytest.raises(ValueError):
            parse_host(device, "/opt/main")
