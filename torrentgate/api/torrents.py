import asyncio
import json
import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool

from torrentgate.api.deps import get_torrent_or_404, project
from torrentgate.errors import GatewayError, PersistenceDeleteError, PersistenceWriteError, PieceDeleteError
from torrentgate.ingest import add_torrent
from torrentgate.persistence import remove_torrent_file, save_torrent_file
from torrentgate.playlist import PLAYLIST_MEDIA_TYPE

router = APIRouter()
logger = logging.getLogger(__name__)


def _save_descriptor(settings, torrent) -> None:
    try:
        save_torrent_file(settings, torrent)
    except PersistenceWriteError as e:
        logger.error(str(e))


@router.api_route("", methods=["GET", "HEAD"])
async def list_torrents(request: Request):
    """Returns every active torrent with its files and playlist, sorted by name."""
    torrents = request.app.state.engine.torrents()
    infos = await asyncio.gather(*(project(t, request) for t in torrents))
    infos = sorted(infos, key=lambda info: info.name)

    body = json.dumps([info.model_dump(by_alias=True) for info in infos]).encode()
    if request.method == "HEAD":
        return Response(
            status_code=200,
            headers={"Content-Length": str(len(body))},
            media_type="application/json",
        )
    return Response(content=body, media_type="application/json")


@router.post("")
async def create_torrent(request: Request):
    """
    Adds a torrent from the raw body (magnet, info-hash, .torrent path or URL)
    and answers with its playlist once the metadata is known.
    """
    settings = request.app.state.settings
    body = await request.body()
    identifier = body.decode("utf-8", errors="replace")

    try:
        torrent = await add_torrent(request.app.state.engine, identifier)
    except GatewayError as e:
        logger.error(f"Error adding torrent: {e}")
        raise HTTPException(status_code=e.status_code, detail=f"Error adding torrent: {e}")

    info = await project(torrent, request)

    background = None
    if settings.resume_torrents:
        background = BackgroundTask(_save_descriptor, settings, torrent)
    return Response(content=info.playlist, media_type=PLAYLIST_MEDIA_TYPE, background=background)


@router.get("/{info_hash}")
async def get_torrent_playlist(info_hash: str, request: Request):
    """Returns the playlist of one active torrent."""
    torrent = get_torrent_or_404(request, info_hash)
    info = await project(torrent, request)
    return Response(content=info.playlist, media_type=PLAYLIST_MEDIA_TYPE)


@router.delete("/{info_hash}", status_code=204)
async def remove_torrent(
    info_hash: str,
    request: Request,
    delete_files: bool = Query(False, alias="deleteFiles"),
):
    """Drops a torrent; with deleteFiles also purges its cached pieces and saved descriptor."""
    state = request.app.state
    settings = state.settings
    torrent = get_torrent_or_404(request, info_hash)

    delete_data = delete_files or settings.delete_data_on_torrent_drop
    name = torrent.name
    piece_hashes = torrent.piece_hashes() if delete_data and torrent.has_info() else None

    try:
        state.engine.remove(torrent, delete_files=delete_data)
    except Exception as e:
        logger.error(f"Error removing torrent from session: {e}", exc_info=True)

    if delete_data:
        if piece_hashes is None:
            logger.info(f"Skip deleting data of {info_hash}: torrent info not available")
        else:
            try:
                removed = await run_in_threadpool(state.cache.purge, piece_hashes)
                logger.info(f"Deleted {removed} cached pieces of {name}")
            except PieceDeleteError as e:
                logger.error(f"Error deleting torrent data: {e}")

        try:
            remove_torrent_file(settings, name)
        except PersistenceDeleteError as e:
            logger.error(str(e))

    return Response(status_code=204)
