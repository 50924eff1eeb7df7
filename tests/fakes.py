"""In-memory stand-ins for the libtorrent engine and the player."""
import asyncio
import hashlib
import json
import socket
from types import SimpleNamespace
from typing import Dict, List, Optional

from torrentgate.models import TorrentFile

INFO_HASH = "0123456789abcdef0123456789abcdef01234567"
OTHER_HASH = "89abcdef89abcdef89abcdef89abcdef89abcd12"
MAGNET = f"magnet:?xt=urn:btih:{INFO_HASH}&dn=Show"


def iface(address: str, family: int = socket.AF_INET):
    return SimpleNamespace(family=family, address=address, netmask=None, broadcast=None, ptp=None)


def interfaces(*addresses: str):
    return lambda: {f"eth{i}": [iface(a)] for i, a in enumerate(addresses)}


class FakeTorrent:
    def __init__(
        self,
        name: str,
        info_hash: str,
        files: Optional[Dict[str, bytes]] = None,
        piece_length: int = 16,
        resolved: bool = True,
        creation_date: float = 1700000000,
    ):
        self.name = name
        self.info_hash = info_hash.lower()
        self.piece_length = piece_length
        self.resolved = resolved
        self._creation_date = creation_date
        self._contents = dict(files or {})
        self._data = b"".join(self._contents.values())
        self.removed = False
        self.prioritized: List[List[int]] = []
        self.pieces_read: List[int] = []
        self.missing = set()
        self._info_ready = asyncio.Event()

    # --- Metadata ---
    def has_info(self) -> bool:
        return self.resolved

    async def wait_info(self) -> None:
        if not self.resolved:
            await self._info_ready.wait()

    def files(self) -> List[TorrentFile]:
        out, offset = [], 0
        for i, (path, data) in enumerate(self._contents.items()):
            out.append(TorrentFile(index=i, path=path, length=len(data), offset=offset))
            offset += len(data)
        return out

    def creation_date(self) -> float:
        return self._creation_date

    def metainfo(self) -> bytes:
        return json.dumps({
            "name": self.name,
            "info_hash": self.info_hash,
            "files": {path: data.decode("latin-1") for path, data in self._contents.items()},
        }).encode()

    @classmethod
    def from_metainfo(cls, data: bytes) -> "FakeTorrent":
        try:
            meta = json.loads(data)
        except ValueError as e:
            raise ValueError(f"invalid torrent metadata: {e}")
        files = {path: text.encode("latin-1") for path, text in meta["files"].items()}
        return cls(meta["name"], meta["info_hash"], files)

    # --- Pieces ---
    @property
    def num_pieces(self) -> int:
        return (len(self._data) + self.piece_length - 1) // self.piece_length

    def _piece_bytes(self, index: int) -> bytes:
        return self._data[index * self.piece_length:(index + 1) * self.piece_length]

    def piece_hash(self, index: int) -> str:
        return hashlib.sha1(self._piece_bytes(index)).hexdigest()

    def piece_hashes(self) -> List[str]:
        return [self.piece_hash(i) for i in range(self.num_pieces)]

    def have_piece(self, index: int) -> bool:
        return index not in self.missing

    def prioritize(self, pieces: List[int]) -> None:
        self.prioritized.append(list(pieces))

    def read_piece(self, index: int) -> bytes:
        self.pieces_read.append(index)
        return self._piece_bytes(index)

    def is_valid(self) -> bool:
        return not self.removed


class FakeEngine:
    def __init__(self):
        self._torrents: Dict[str, FakeTorrent] = {}
        self.magnets: Dict[str, FakeTorrent] = {}
        self.removed: List[tuple] = []
        self.started = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    def torrents(self) -> List[FakeTorrent]:
        return list(self._torrents.values())

    def torrent(self, info_hash: str) -> Optional[FakeTorrent]:
        return self._torrents.get(info_hash.lower())

    def put(self, torrent: FakeTorrent) -> FakeTorrent:
        return self._torrents.setdefault(torrent.info_hash, torrent)

    def add_torrent_file(self, path) -> FakeTorrent:
        with open(path, "rb") as f:
            return self.put(FakeTorrent.from_metainfo(f.read()))

    def add_metainfo(self, data: bytes) -> FakeTorrent:
        return self.put(FakeTorrent.from_metainfo(data))

    def add_info_hash(self, info_hash: str) -> FakeTorrent:
        return self.put(FakeTorrent(info_hash, info_hash, resolved=False))

    def add_magnet(self, uri: str) -> FakeTorrent:
        if uri not in self.magnets:
            raise ValueError("unknown magnet")
        return self.put(self.magnets[uri])

    def remove(self, torrent: FakeTorrent, delete_files: bool = False) -> None:
        self._torrents.pop(torrent.info_hash, None)
        torrent.removed = True
        self.removed.append((torrent.info_hash, delete_files))


class FakePlayer:
    script_name = "torrentgate"

    def __init__(self, properties: Optional[dict] = None):
        self.properties = dict(properties or {})
        self.commands: List[tuple] = []
        self.menus: List[dict] = []
        self.closed_menus: List[str] = []
        self.key_bindings: Dict[str, object] = {}
        self.script_messages: Dict[str, object] = {}
        self.hooks: Dict[str, object] = {}
        self.events: Dict[str, object] = {}

    def command(self, *args):
        self.commands.append(args)

    def get_property(self, name, default=None):
        return self.properties.get(name, default)

    def set_property(self, name, value):
        self.properties[name] = value

    def open_menu(self, menu):
        self.menus.append(menu)

    def close_menu(self, menu_type):
        self.closed_menus.append(menu_type)

    def add_key_binding(self, key, name, fn):
        self.key_bindings[name] = fn

    def register_script_message(self, name, fn):
        self.script_messages[name] = fn

    def add_hook(self, name, priority, fn):
        self.hooks[name] = fn

    def register_event(self, name, fn):
        self.events[name] = fn
