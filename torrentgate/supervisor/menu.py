import json
import logging

from torrentgate.supervisor.client import GatewayClient
from torrentgate.supervisor.player import Player

logger = logging.getLogger(__name__)

MENU_TYPE = "torrent_menu"
CONTROLS_MENU = "Client Controls"
REMOVE_MENU = "Remove Torrent"

GB = 1024 * 1024 * 1024
MB = 1024 * 1024


class Menu:
    """Builds the torrent menu and acts on the player's menu callbacks."""

    def __init__(self, client: GatewayClient, player: Player):
        self.client = client
        self.player = player

    def _script_message(self, name: str) -> list:
        return ["script-message-to", self.player.script_name, name]

    def create_torrent_menu(self) -> dict:
        self.client.update_status()
        state = self.client.state
        running = state.client_running

        menu_items = [{
            "title": CONTROLS_MENU,
            "items": [{
                "title": "Stop Client" if running else "Start Client",
                "icon": "stop" if running else "play_arrow",
                "value": self._script_message("client-stop" if running else "client-start"),
            }],
        }]

        if running:
            menu_items.append({
                "title": REMOVE_MENU,
                "items": [
                    {
                        "title": t["Name"],
                        "hint": f"{t['Length'] / GB:.1f} GB",
                        "value": info_hash,
                        "actions": [
                            {"name": "delete", "icon": "delete", "label": "Delete torrent"},
                            {"name": "delete_files", "icon": "delete_forever", "label": "Delete torrent & files"},
                        ],
                    }
                    for info_hash, t in state.torrents.items()
                ],
            })

            for info_hash, t in state.torrents.items():
                menu_items.append({
                    "title": t["Name"],
                    "hint": f"{len(t['Files'])} files",
                    "items": [
                        {
                            "title": f["Name"],
                            "hint": f"{f['Length'] / MB:.1f} MB",
                            "value": ["loadfile", f["URL"]],
                        }
                        for f in t["Files"]
                    ],
                })

        return {
            "type": MENU_TYPE,
            "title": "Torrent Manager",
            "items": menu_items,
            "callback": [self.player.script_name, "menu-callback"],
        }

    def show(self) -> None:
        self.player.open_menu(self.create_torrent_menu())

    def handle_callback(self, json_event: str) -> None:
        event = json.loads(json_event)
        if event.get("type") != "activate":
            return

        action = event.get("action")
        menu_id = event.get("menu_id")
        if action in ("delete", "delete_files"):
            self.client.remove(event["value"], delete_files=action == "delete_files")
            self.show()
        elif menu_id != REMOVE_MENU:
            self.player.command(*event["value"])

        if menu_id not in (CONTROLS_MENU, REMOVE_MENU):
            self.player.close_menu(MENU_TYPE)
