"""
Runs mpv with the supervisor attached.

MpvPlayer adapts a python-mpv handle to the Player interface. Menus are drawn
by the uosc script, which mpv loads from the user's config. mpv's on_load hook
is not reachable from a client handle, so the adapter runs "on_load" handlers
itself before every loadfile it issues: a handler may rewrite
stream-open-filename and the rewritten value is what gets loaded.
"""
import argparse
import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from torrentgate.config import DEFAULT_PORT, str2bool
from torrentgate.supervisor.config import SupervisorConfig
from torrentgate.supervisor.script import Supervisor

logger = logging.getLogger(__name__)

MENU_SCRIPT = "uosc"
OPEN_FILENAME = "stream-open-filename"


class MpvPlayer:
    def __init__(self, handle, script_name: str = "main"):
        self.handle = handle
        # The handle created with mpv_create() is named "main".
        self.script_name = script_name
        self._hooks: Dict[str, List[tuple]] = {}
        self._shutdown: List[Callable[[], None]] = []
        self._loading: Optional[str] = None

    # --- Commands and properties ---
    def command(self, *args: str) -> None:
        if args and args[0] == "loadfile":
            self.load(*args[1:])
            return
        self.handle.command(*args)

    def get_property(self, name, default=None):
        if name == OPEN_FILENAME and self._loading is not None:
            return self._loading
        try:
            value = self.handle[name]
        except AttributeError:
            return default
        return default if value is None else value

    def set_property(self, name, value) -> None:
        if name == OPEN_FILENAME and self._loading is not None:
            self._loading = value
            return
        self.handle[name] = value

    # --- Menus ---
    def open_menu(self, menu: dict) -> None:
        self.handle.command("script-message-to", MENU_SCRIPT, "open-menu", json.dumps(menu))

    def close_menu(self, menu_type: str) -> None:
        self.handle.command("script-message-to", MENU_SCRIPT, "close-menu", menu_type)

    # --- Registration ---
    def add_key_binding(self, key, name, fn) -> None:
        def on_key(state, *args):
            # "d-" on key down, "p-" for a complete press.
            if state[:1] in ("d", "p"):
                fn()

        self.handle.register_key_binding(key, on_key)

    def register_script_message(self, name, fn) -> None:
        self.handle.register_message_handler(name, fn)

    def add_hook(self, name, priority, fn) -> None:
        hooks = self._hooks.setdefault(name, [])
        hooks.append((priority, fn))
        hooks.sort(key=lambda hook: hook[0])

    def register_event(self, name, fn) -> None:
        if name == "shutdown":
            self._shutdown.append(fn)
            return
        self.handle.event_callback(name)(lambda event: fn())

    # --- Playback ---
    def load(self, path: str, mode: str = "replace") -> None:
        """Runs the on_load handlers for path, then loads whatever they left."""
        self._loading = path
        try:
            for _, fn in self._hooks.get("on_load", []):
                fn()
            target = self._loading
        finally:
            self._loading = None
        logger.info(f"Loading {target[:80]}")
        self.handle.command("loadfile", target, mode)

    def run_shutdown_handlers(self) -> None:
        for fn in self._shutdown:
            try:
                fn()
            except Exception as e:
                logger.error(f"Shutdown handler failed: {e}", exc_info=True)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser("torrentgate-player", description="Play torrents in mpv through torrentgate")
    ap.add_argument("paths", nargs="*", help="Magnet links, info-hashes, .torrent files, URLs or plain media files")
    ap.add_argument("--port", type=int, default=DEFAULT_PORT, help="Gateway HTTP port")
    ap.add_argument("--download-dir", type=Path, default=None, help="Directory the gateway downloads into")
    ap.add_argument("--start-client-on-launch", type=str2bool, nargs="?", const=True, default=True)
    ap.add_argument("--close-client-on-exit", type=str2bool, nargs="?", const=True, default=True)
    ap.add_argument("--close-client-on-no-torrent-files", type=str2bool, nargs="?", const=True, default=False)
    return ap


def parse_args(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    options = {
        "port": args.port,
        "start_client_on_launch": args.start_client_on_launch,
        "close_client_on_exit": args.close_client_on_exit,
        "close_client_on_no_torrent_files": args.close_client_on_no_torrent_files,
    }
    if args.download_dir is not None:
        options["download_dir"] = str(args.download_dir.resolve())
    return args.paths, SupervisorConfig(**options)


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    paths, config = parse_args(argv)

    import mpv

    handle = mpv.MPV(config=True, input_default_bindings=True, input_vo_keyboard=True, osc=True)
    player = MpvPlayer(handle)
    Supervisor(player, config).init()

    for i, path in enumerate(paths):
        player.load(path, "replace" if i == 0 else "append-play")

    try:
        handle.wait_for_shutdown()
    finally:
        player.run_shutdown_handlers()
        handle.terminate()


if __name__ == "__main__":
    main()
