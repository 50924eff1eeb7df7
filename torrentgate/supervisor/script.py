"""
Companion supervisor that lives inside the media player: it keeps the gateway
running, hands torrent identifiers the player is about to open over to it and
serves the torrent menu.
"""
import logging
import re
from typing import Optional

from torrentgate.supervisor.client import GatewayClient
from torrentgate.supervisor.config import SupervisorConfig
from torrentgate.supervisor.menu import Menu
from torrentgate.supervisor.player import Player

logger = logging.getLogger(__name__)

TORRENT_PATTERNS = [
    re.compile(r"\.torrent$"),
    re.compile(r"^magnet:\?xt=urn:btih:"),
    re.compile(r"^https?://"),
    re.compile(r"^[0-9a-fA-F]{40}$"),
]
# Stream URLs handed out by the gateway itself.
EXCLUDE_PATTERNS = [
    re.compile(r"127\.0\.0\.1"),
    re.compile(r"192\.168\.\d+\.\d+"),
    re.compile(r"/torrents/"),
]

MENU_KEY = "Alt+t"
ON_LOAD_PRIORITY = 50


def is_torrent_identifier(path: str) -> bool:
    if any(p.search(path) for p in EXCLUDE_PATTERNS):
        return False
    return any(p.search(path) for p in TORRENT_PATTERNS)


class Supervisor:
    def __init__(self, player: Player, config: Optional[SupervisorConfig] = None, client: Optional[GatewayClient] = None):
        self.player = player
        self.config = config or SupervisorConfig()
        self.client = client or GatewayClient(self.config)
        self.menu = Menu(self.client, player)

    def init(self) -> None:
        """Registers key bindings, script messages and player hooks."""
        self.player.add_key_binding(MENU_KEY, "toggle-torrent-menu", self.menu.show)
        self.player.register_script_message("menu-callback", self.menu.handle_callback)
        self.player.register_script_message("client-start", self.on_client_start)
        self.player.register_script_message("client-stop", self.on_client_stop)
        self.player.add_hook("on_load", ON_LOAD_PRIORITY, self.on_file_loaded)

        if self.config.close_client_on_exit:
            self.player.register_event("shutdown", self.client.close)

        if self.config.start_client_on_launch:
            self.client.start()

    def on_client_start(self) -> None:
        self.client.start()
        self.menu.show()

    def on_client_stop(self) -> None:
        self.client.close()
        self.menu.show()

    def on_file_loaded(self) -> None:
        path = self.player.get_property("stream-open-filename", "") or ""

        if is_torrent_identifier(path):
            if self.client.start():
                playlist = self.client.add(path)
                if playlist:
                    self.client.update_status()
                    self.player.set_property("stream-open-filename", f"memory://{playlist}")
                    return
            logger.warning(f"Could not hand {path} over to the torrent server")

        if not self.client.state.torrents and self.config.close_client_on_no_torrent_files:
            self.client.close()
