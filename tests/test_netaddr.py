import socket

import pytest

from fakes import iface, interfaces
from torrentgate.errors import NoLocalAddressFound
from torrentgate.netaddr import LocalAddressResolver


def test_prefers_prefixed_address():
    resolver = LocalAddressResolver("192.", interfaces=interfaces("127.0.0.1", "10.0.0.5", "192.168.1.20"))

    assert resolver.resolve() == "192.168.1.20"


def test_falls_back_to_first_candidate():
    resolver = LocalAddressResolver("192.", interfaces=interfaces("127.0.0.1", "10.0.0.5", "172.16.0.2"))

    assert resolver.resolve() == "10.0.0.5"


def test_no_preference():
    resolver = LocalAddressResolver("", interfaces=interfaces("10.0.0.5", "192.168.1.20"))

    assert resolver.resolve() == "10.0.0.5"


def test_loopback_only_raises():
    resolver = LocalAddressResolver(interfaces=interfaces("127.0.0.1"))

    with pytest.raises(NoLocalAddressFound):
        resolver.resolve()


def test_ignores_ipv6_and_link_layer_entries():
    def table():
        return {
            "lo": [iface("127.0.0.1"), iface("::1", socket.AF_INET6)],
            "eth0": [iface("00:11:22:33:44:55", -1), iface("fe80::1", socket.AF_INET6), iface("10.1.2.3")],
        }

    resolver = LocalAddressResolver(interfaces=table)

    assert resolver.candidates() == ["10.1.2.3"]


def test_follows_interface_changes():
    current = {"addresses": ("10.0.0.5",)}
    resolver = LocalAddressResolver(interfaces=lambda: interfaces(*current["addresses"])())

    assert resolver.resolve() == "10.0.0.5"

    current["addresses"] = ("10.0.0.5", "192.168.0.7")

    assert resolver.resolve() == "192.168.0.7"
