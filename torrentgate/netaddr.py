import ipaddress
import logging
import socket
from typing import Callable, Dict, List, Optional

import psutil

from torrentgate.errors import NoLocalAddressFound

logger = logging.getLogger(__name__)


class LocalAddressResolver:
    """
    Picks the IPv4 address a media player on the network should use to reach
    this host. Interfaces are re-read on every call, so the answer follows
    address changes.
    """

    def __init__(
        self,
        prefer_prefix: Optional[str] = "192.",
        interfaces: Callable[[], Dict[str, list]] = psutil.net_if_addrs,
    ):
        self.prefer_prefix = prefer_prefix or None
        self._interfaces = interfaces

    def candidates(self) -> List[str]:
        """Non-loopback IPv4 addresses in interface order."""
        out = []
        for name, addrs in self._interfaces().items():
            for addr in addrs:
                if addr.family != socket.AF_INET:
                    continue
                try:
                    ip = ipaddress.ip_address(addr.address)
                except ValueError:
                    continue
                if ip.version != 4 or ip.is_loopback:
                    continue
                out.append(str(ip))
        return out

    def resolve(self) -> str:
        candidates = self.candidates()
        if not candidates:
            raise NoLocalAddressFound("no non-loopback IPv4 address found")

        if self.prefer_prefix:
            for address in candidates:
                if address.startswith(self.prefer_prefix):
                    return address
        return candidates[0]
