import json

import pytest

from fakes import INFO_HASH, MAGNET
from torrentgate.supervisor.config import SupervisorConfig
from torrentgate.supervisor.mpv_player import MpvPlayer, parse_args
from torrentgate.supervisor.script import Supervisor


class FakeHandle:
    """Records what the adapter asks of a python-mpv handle."""

    def __init__(self):
        self.commands = []
        self.properties = {}
        self.key_bindings = {}
        self.message_handlers = {}
        self.event_callbacks = {}

    def command(self, *args):
        self.commands.append(args)

    def __getitem__(self, name):
        if name not in self.properties:
            raise AttributeError("mpv property does not exist")
        return self.properties[name]

    def __setitem__(self, name, value):
        self.properties[name] = value

    def register_key_binding(self, keydef, callback):
        self.key_bindings[keydef] = callback

    def register_message_handler(self, target, handler):
        self.message_handlers[target] = handler

    def event_callback(self, *event_types):
        def register(callback):
            for name in event_types:
                self.event_callbacks[name] = callback
            return callback
        return register


class StubClient:
    def __init__(self, playlist="#EXTM3U"):
        self.playlist = playlist
        self.state = type("State", (), {"torrents": {}, "client_running": False})()
        self.added = []
        self.closed = 0

    def start(self):
        self.state.client_running = True
        return True

    def add(self, identifier):
        self.added.append(identifier)
        return self.playlist

    def update_status(self):
        self.state.torrents = {INFO_HASH: {"Name": "Show", "Files": [], "Length": 0}}
        return True

    def close(self):
        self.closed += 1


@pytest.fixture
def handle():
    return FakeHandle()


@pytest.fixture
def player(handle):
    return MpvPlayer(handle)


def test_properties_pass_through(player, handle):
    player.set_property("volume", 50)

    assert handle.properties["volume"] == 50
    assert player.get_property("volume") == 50
    assert player.get_property("missing", "fallback") == "fallback"


def test_menus_go_to_uosc(player, handle):
    player.open_menu({"type": "torrent_menu", "items": []})
    player.close_menu("torrent_menu")

    opened, closed = handle.commands
    assert opened[:3] == ("script-message-to", "uosc", "open-menu")
    assert json.loads(opened[3]) == {"type": "torrent_menu", "items": []}
    assert closed == ("script-message-to", "uosc", "close-menu", "torrent_menu")


def test_key_binding_fires_on_press_only(player, handle):
    pressed = []
    player.add_key_binding("Alt+t", "toggle-torrent-menu", lambda: pressed.append(1))

    handle.key_bindings["Alt+t"]("d-", "Alt+t", None)
    handle.key_bindings["Alt+t"]("u-", "Alt+t", None)

    assert pressed == [1]


def test_script_messages_and_events(player, handle):
    seen = []
    player.register_script_message("client-start", lambda: seen.append("start"))
    player.register_event("end-file", lambda: seen.append("end"))
    player.register_event("shutdown", lambda: seen.append("shutdown"))

    handle.message_handlers["client-start"]()
    handle.event_callbacks["end-file"](object())
    player.run_shutdown_handlers()

    assert seen == ["start", "end", "shutdown"]
    assert "shutdown" not in handle.event_callbacks


def test_failing_shutdown_handler_does_not_stop_others(player):
    seen = []

    def broken():
        raise RuntimeError("boom")

    player.register_event("shutdown", broken)
    player.register_event("shutdown", lambda: seen.append("closed"))

    player.run_shutdown_handlers()

    assert seen == ["closed"]


def test_load_runs_on_load_hooks_in_priority_order(player, handle):
    order = []
    player.add_hook("on_load", 60, lambda: order.append(60))
    player.add_hook("on_load", 10, lambda: order.append(10))

    player.load("/videos/movie.mkv")

    assert order == [10, 60]
    assert handle.commands == [("loadfile", "/videos/movie.mkv", "replace")]


def test_hook_can_rewrite_the_loaded_path(player, handle):
    def rewrite():
        path = player.get_property("stream-open-filename")
        player.set_property("stream-open-filename", f"memory://{path}")

    player.add_hook("on_load", 50, rewrite)

    player.command("loadfile", "x.mkv")

    assert handle.commands == [("loadfile", "memory://x.mkv", "replace")]
    assert "stream-open-filename" not in handle.properties


def test_supervisor_hands_magnet_to_gateway(player, handle):
    client = StubClient(playlist="#EXTM3U\nhttp://192.168.1.20:6969/torrents/x/ep1.mp4")
    config = SupervisorConfig(start_client_on_launch=False, close_client_on_exit=True)
    Supervisor(player, config, client).init()

    player.load(MAGNET)
    player.run_shutdown_handlers()

    assert client.added == [MAGNET]
    assert handle.commands == [("loadfile", f"memory://{client.playlist}", "replace")]
    assert "menu-callback" in handle.message_handlers
    assert "Alt+t" in handle.key_bindings
    assert client.closed == 1


def test_parse_args(tmp_path):
    paths, config = parse_args([MAGNET, "--port", "7000", "--download-dir", str(tmp_path), "--close-client-on-exit=false"])

    assert paths == [MAGNET]
    assert config.port == 7000
    assert config.download_dir == str(tmp_path.resolve())
    assert config.close_client_on_exit is False
    assert config.start_client_on_launch is True
