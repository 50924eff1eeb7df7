import logging
import re
from enum import Enum

import requests
from starlette.concurrency import run_in_threadpool

from torrentgate.errors import InvalidTorrentIdentifier, RemoteFetchError

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 30

TORRENT_PATTERN = re.compile(r"\.torrent$")
MAGNET_PATTERN = re.compile(r"^magnet:")
INFO_HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{40}$")
HTTP_PATTERN = re.compile(r"^https?")


class IdentifierKind(str, Enum):
    URL = "url"
    TORRENT_FILE = "torrent-file"
    INFO_HASH = "info-hash"
    MAGNET = "magnet"


# Checked in this order; the first match wins.
_CLASSIFIERS = (
    (HTTP_PATTERN, IdentifierKind.URL),
    (TORRENT_PATTERN, IdentifierKind.TORRENT_FILE),
    (INFO_HASH_PATTERN, IdentifierKind.INFO_HASH),
    (MAGNET_PATTERN, IdentifierKind.MAGNET),
)


def classify(identifier: str) -> IdentifierKind:
    for pattern, kind in _CLASSIFIERS:
        if pattern.search(identifier):
            return kind
    raise InvalidTorrentIdentifier(f"invalid torrent id: {identifier!r}")


def fetch_metainfo(url: str) -> bytes:
    """Downloads a .torrent body. Blocking; run it off the event loop."""
    try:
        resp = requests.get(url, timeout=FETCH_TIMEOUT_SECONDS)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RemoteFetchError(f"error getting torrent from URL: {e}") from e
    return resp.content


async def add_torrent(engine, identifier: str):
    """
    Classifies the identifier and adds it to the engine.

    The returned torrent may not have its metadata yet (bare info-hashes and
    magnets resolve later); await torrent.wait_info() before touching files.
    """
    identifier = identifier.strip()
    kind = classify(identifier)
    logger.info(f"Adding torrent ({kind.value}): {identifier}")

    if kind is IdentifierKind.URL:
        data = await run_in_threadpool(fetch_metainfo, identifier)
        try:
            return engine.add_metainfo(data)
        except (RuntimeError, ValueError) as e:
            raise RemoteFetchError(f"error loading torrent metadata: {e}") from e

    try:
        if kind is IdentifierKind.TORRENT_FILE:
            return await run_in_threadpool(engine.add_torrent_file, identifier)
        if kind is IdentifierKind.INFO_HASH:
            return engine.add_info_hash(identifier)
        return engine.add_magnet(identifier)
    except (RuntimeError, ValueError, OSError) as e:
        raise InvalidTorrentIdentifier(f"error adding torrent {identifier!r}: {e}") from e
