import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import libtorrent as lt

from torrentgate.config import Settings
from torrentgate.models import TorrentFile

logger = logging.getLogger(__name__)

ALERT_POLL_INTERVAL = 0.5
PIECE_DEADLINE_MS = 500


def create_session(settings: Settings) -> "lt.session":
    """Builds the libtorrent session from the gateway settings."""
    return lt.session({
        'listen_interfaces': settings.listen_addr,
        'outgoing_interfaces': settings.local_addr,
        'alert_mask': (
            lt.alert.category_t.status_notification
            | lt.alert.category_t.error_notification
            | lt.alert.category_t.storage_notification
        ),
        'user_agent': 'torrentgate/1.0.0',
        'download_rate_limit': 0,
        'upload_rate_limit': 0,
        'connections_limit': 500,
        'enable_outgoing_utp': not settings.disable_utp,
        'enable_incoming_utp': not settings.disable_utp,
        'active_dht_limit': 88,
        'active_tracker_limit': 1600,
        'active_lsd_limit': 60,
        'active_limit': 500,
    })


def fingerprint(info_hashes) -> str:
    """Hex info-hash: v1 when the torrent has one, v2 otherwise."""
    if info_hashes.has_v1():
        return str(info_hashes.v1).lower()
    return str(info_hashes.v2).lower()


def _hex(digest) -> str:
    if isinstance(digest, bytes):
        return digest.hex()
    return str(digest).lower()


class Torrent:
    """A torrent inside the session, addressed by its fingerprint."""

    def __init__(self, handle, save_path: Path):
        self.handle = handle
        self.save_path = Path(save_path)
        self.info_hash = fingerprint(handle.info_hashes())
        self._ti = None
        self._info_ready = asyncio.Event()
        if self.has_info():
            self._info_ready.set()

    # --- Metadata ---
    def _info(self):
        if self._ti is None and self.handle.is_valid():
            self._ti = self.handle.torrent_file()
        return self._ti

    def has_info(self) -> bool:
        return self._info() is not None

    def mark_info_ready(self) -> None:
        self._info_ready.set()

    async def wait_info(self) -> None:
        if self.has_info():
            return
        await self._info_ready.wait()

    @property
    def name(self) -> str:
        ti = self._info()
        if ti is not None:
            return ti.name()
        if self.handle.is_valid():
            return self.handle.status().name or self.info_hash
        return self.info_hash

    def files(self) -> List[TorrentFile]:
        ti = self._info()
        if ti is None:
            return []
        fs = ti.files()
        multi_file = ti.num_files() > 1
        out = []
        for i in range(fs.num_files()):
            if fs.file_flags(i) & lt.file_storage.flag_pad_file:
                continue
            path = fs.file_path(i).replace(os.sep, "/")
            if multi_file and "/" in path:
                # Multi-file torrents nest everything under the torrent name.
                path = path.split("/", 1)[1]
            out.append(TorrentFile(index=i, path=path, length=fs.file_size(i), offset=fs.file_offset(i)))
        return out

    def creation_date(self) -> float:
        ti = self._info()
        if ti is None:
            return 0.0
        value = ti.creation_date()
        if isinstance(value, datetime):
            return value.timestamp()
        return float(value or 0)

    def metainfo(self) -> bytes:
        """Bencoded .torrent contents for this torrent."""
        ti = self._info()
        if ti is None:
            raise ValueError(f"metadata for {self.info_hash} is not available yet")
        return lt.bencode(lt.create_torrent(ti).generate())

    # --- Pieces ---
    @property
    def piece_length(self) -> int:
        return self._info().piece_length()

    @property
    def num_pieces(self) -> int:
        ti = self._info()
        return ti.num_pieces() if ti is not None else 0

    def piece_hash(self, index: int) -> str:
        return _hex(self._info().hash_for_piece(index))

    def piece_hashes(self) -> List[str]:
        return [self.piece_hash(i) for i in range(self.num_pieces)]

    def have_piece(self, index: int) -> bool:
        return self.handle.have_piece(index)

    def prioritize(self, pieces: List[int]) -> None:
        for n, piece in enumerate(pieces):
            self.handle.set_piece_deadline(piece, PIECE_DEADLINE_MS * (n + 1))

    def read_piece(self, index: int) -> bytes:
        """Reads a downloaded piece back from the files libtorrent wrote."""
        ti = self._info()
        fs = ti.files()
        chunks = []
        for file_slice in ti.map_block(index, 0, ti.piece_size(index)):
            if fs.file_flags(file_slice.file_index) & lt.file_storage.flag_pad_file:
                chunks.append(b"\0" * file_slice.size)
                continue
            real_path = self.save_path / fs.file_path(file_slice.file_index)
            with open(real_path, "rb") as f:
                f.seek(file_slice.offset)
                chunks.append(f.read(file_slice.size))
        return b"".join(chunks)

    def is_valid(self) -> bool:
        return self.handle.is_valid()


class TorrentEngine:
    """
    Owns the libtorrent session and the fingerprint -> Torrent table.
    Readiness is driven by the alert listener task started with start().
    """

    def __init__(self, settings: Settings, session=None):
        self.settings = settings
        self._session = session if session is not None else create_session(settings)
        self._torrents: Dict[str, Torrent] = {}
        self._alert_task: Optional[asyncio.Task] = None

    # --- Lifecycle ---
    def start(self) -> None:
        if self._alert_task is None:
            self._alert_task = asyncio.create_task(self._alert_listener())
            logger.info("Torrent engine started")

    async def close(self) -> None:
        if self._alert_task is not None:
            self._alert_task.cancel()
            try:
                await self._alert_task
            except asyncio.CancelledError:
                pass
            self._alert_task = None
        self._session.pause()
        logger.info("Torrent engine shutdown successfully")

    # --- Lookup ---
    def torrents(self) -> List[Torrent]:
        return list(self._torrents.values())

    def torrent(self, info_hash: str) -> Optional[Torrent]:
        return self._torrents.get(info_hash.lower())

    # --- Adding ---
    def _add(self, atp, info_hashes) -> Torrent:
        key = fingerprint(info_hashes)
        existing = self._torrents.get(key)
        if existing is not None:
            logger.info(f"Torrent {key} already exists")
            return existing

        atp.save_path = str(self.settings.download_dir)
        atp.storage_mode = lt.storage_mode_t.storage_mode_sparse
        atp.max_connections = self.settings.max_conns_per_torrent
        handle = self._session.add_torrent(atp)
        torrent = Torrent(handle, self.settings.download_dir)
        self._torrents[torrent.info_hash] = torrent
        logger.info(f"Torrent added: {torrent.info_hash}")
        return torrent

    def add_torrent_file(self, path) -> Torrent:
        ti = lt.torrent_info(str(path))
        atp = lt.add_torrent_params()
        atp.ti = ti
        return self._add(atp, ti.info_hashes())

    def add_metainfo(self, data: bytes) -> Torrent:
        decoded = lt.bdecode(data)
        if decoded is None:
            raise ValueError("invalid torrent metadata")
        ti = lt.torrent_info(decoded)
        atp = lt.add_torrent_params()
        atp.ti = ti
        return self._add(atp, ti.info_hashes())

    def add_info_hash(self, info_hash: str) -> Torrent:
        atp = lt.parse_magnet_uri(f"magnet:?xt=urn:btih:{info_hash.lower()}")
        return self._add(atp, atp.info_hashes)

    def add_magnet(self, uri: str) -> Torrent:
        atp = lt.parse_magnet_uri(uri)
        return self._add(atp, atp.info_hashes)

    # --- Removing ---
    def remove(self, torrent: Torrent, delete_files: bool = False) -> None:
        self._torrents.pop(torrent.info_hash, None)
        if delete_files:
            self._session.remove_torrent(torrent.handle, lt.session.delete_files)
        else:
            self._session.remove_torrent(torrent.handle)
        logger.info(f"Dropped torrent: {torrent.name}")

    # --- Alerts ---
    def _by_handle(self, handle) -> Optional[Torrent]:
        if not handle.is_valid():
            return None
        return self._torrents.get(fingerprint(handle.info_hashes()))

    async def _alert_listener(self) -> None:
        """Listens for and processes libtorrent alerts."""
        while True:
            for alert in self._session.pop_alerts():
                if isinstance(alert, (lt.metadata_received_alert, lt.add_torrent_alert)):
                    torrent = self._by_handle(alert.handle)
                    if torrent is not None and torrent.has_info():
                        torrent.mark_info_ready()
                        logger.info(f"Metadata received for {torrent.name}")

                elif isinstance(alert, lt.torrent_finished_alert):
                    torrent = self._by_handle(alert.handle)
                    if torrent is not None:
                        logger.info(f"Torrent finished: {torrent.name}")

                elif isinstance(alert, lt.torrent_error_alert):
                    logger.error(f"Torrent error: {alert.message()}")

                elif isinstance(alert, lt.file_error_alert):
                    logger.error(f"File error: {alert.message()}")

            await asyncio.sleep(ALERT_POLL_INTERVAL)
