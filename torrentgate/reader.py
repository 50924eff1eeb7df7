import asyncio
import logging
import os
from typing import List, Optional

from starlette.concurrency import run_in_threadpool

from torrentgate.config import DEFAULT_READAHEAD
from torrentgate.errors import TorrentNotFound
from torrentgate.models import TorrentFile
from torrentgate.piece_cache import PieceCache

logger = logging.getLogger(__name__)

PIECE_POLL_INTERVAL = 0.05


class TorrentFileReader:
    """
    Seekable reader over one file of a torrent.

    Byte offsets are mapped onto pieces. A piece is served from the piece
    cache when present; otherwise the reader prioritises it in the engine,
    waits until the engine has it, reads it and stores it in the cache.

    The torrent object must expose: piece_length, piece_hash(i),
    have_piece(i), prioritize(pieces), read_piece(i), is_valid().

    - responsive: a read returns once the first piece it needs is available
      and may be shorter than requested.
    - readahead: bytes past the read position to prioritise in the engine.
      Negative leaves prioritisation to the engine apart from the pieces a
      read is waiting on.
    """

    def __init__(
        self,
        torrent,
        file: TorrentFile,
        cache: Optional[PieceCache] = None,
        readahead: int = DEFAULT_READAHEAD,
        responsive: bool = False,
    ):
        self.torrent = torrent
        self.file = file
        self.cache = cache
        self.readahead = readahead
        self.responsive = responsive
        self._pos = 0
        self._closed = False

    @property
    def length(self) -> int:
        return self.file.length

    @property
    def closed(self) -> bool:
        return self._closed

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if whence == os.SEEK_SET:
            pos = offset
        elif whence == os.SEEK_CUR:
            pos = self._pos + offset
        elif whence == os.SEEK_END:
            pos = self.length + offset
        else:
            raise ValueError(f"invalid whence: {whence}")
        if pos < 0:
            raise ValueError("negative seek position")
        self._pos = pos
        return pos

    def close(self) -> None:
        self._closed = True

    async def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise ValueError("read from closed reader")

        remaining = self.length - self._pos
        if size < 0 or size > remaining:
            size = remaining
        if size <= 0:
            return b""

        piece_length = self.torrent.piece_length
        start = self.file.offset + self._pos
        end = start + size
        first = start // piece_length
        last = (end - 1) // piece_length
        if self.responsive:
            last = first

        self._prioritize(first, last)

        chunks = []
        for index in range(first, last + 1):
            data = await self._piece(index)
            piece_start = index * piece_length
            lo = max(start, piece_start) - piece_start
            hi = min(end, piece_start + len(data)) - piece_start
            chunks.append(data[lo:hi])

        out = b"".join(chunks)
        self._pos += len(out)
        return out

    def _prioritize(self, first: int, last: int) -> None:
        pieces: List[int] = list(range(first, last + 1))
        if self.readahead > 0:
            file_end = self.file.offset + self.file.length
            window_end = min(file_end, self.file.offset + self._pos + self.readahead)
            ahead = (window_end - 1) // self.torrent.piece_length
            pieces.extend(range(last + 1, ahead + 1))
        missing = [p for p in pieces if not self.torrent.have_piece(p)]
        if missing:
            self.torrent.prioritize(missing)

    async def _piece(self, index: int) -> bytes:
        key = self.torrent.piece_hash(index)
        if self.cache is not None:
            data = await run_in_threadpool(self.cache.get, key)
            if data is not None:
                return data

        while not self.torrent.have_piece(index):
            if self._closed:
                raise ValueError("reader closed while waiting for piece")
            if not self.torrent.is_valid():
                raise TorrentNotFound("torrent was removed while reading")
            await asyncio.sleep(PIECE_POLL_INTERVAL)

        data = await run_in_threadpool(self.torrent.read_piece, index)
        if self.cache is not None:
            try:
                await run_in_threadpool(self.cache.put, key, data)
            except Exception as e:
                logger.error(f"Error caching piece {index}: {e}")
        return data
