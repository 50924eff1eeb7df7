import asyncio
import logging

from fastapi import HTTPException, Request

from torrentgate.errors import GatewayError, TorrentNotFound
from torrentgate.playlist import wrap_torrent

logger = logging.getLogger(__name__)

DISCONNECT_POLL_INTERVAL = 0.25

# Non-standard "client closed request"; the client is gone, nobody reads it.
CLIENT_CLOSED_REQUEST = 499


def get_torrent_or_404(request: Request, info_hash: str):
    torrent = request.app.state.engine.torrent(info_hash)
    if torrent is None:
        raise HTTPException(status_code=TorrentNotFound.status_code, detail="Torrent not found")
    return torrent


async def wait_for_info(torrent, request: Request) -> None:
    """
    Waits until the torrent's metadata is available, giving up when the client
    disconnects. Read the request body before calling this.
    """
    waiter = asyncio.ensure_future(torrent.wait_info())
    try:
        while True:
            done, _ = await asyncio.wait({waiter}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                waiter.result()
                return
            if await request.is_disconnected():
                logger.info(f"Client went away while waiting for metadata of {torrent.info_hash}")
                raise HTTPException(status_code=CLIENT_CLOSED_REQUEST, detail="Client closed request")
    finally:
        if not waiter.done():
            waiter.cancel()


async def project(torrent, request: Request):
    """Waits for metadata, then builds the torrent's file list and playlist."""
    await wait_for_info(torrent, request)
    state = request.app.state
    try:
        address = state.resolver.resolve()
    except GatewayError as e:
        logger.error(f"Error building playlist: {e}")
        raise HTTPException(status_code=e.status_code, detail=f"Error building playlist: {e}")
    return wrap_torrent(torrent, address, state.settings.port)
