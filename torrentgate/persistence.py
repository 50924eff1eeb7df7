import asyncio
import logging
from pathlib import Path

from torrentgate.config import Settings
from torrentgate.errors import PersistenceDeleteError, PersistenceWriteError
from torrentgate.ingest import add_torrent

logger = logging.getLogger(__name__)


def torrent_file_path(settings: Settings, name: str) -> Path:
    safe_name = name.replace("/", "_").replace("\\", "_")
    return settings.torrents_dir / f"{safe_name}.torrent"


def save_torrent_file(settings: Settings, torrent) -> Path:
    """Writes the torrent's descriptor so it can be resumed after a restart."""
    path = torrent_file_path(settings, torrent.name)
    try:
        settings.torrents_dir.mkdir(parents=True, exist_ok=True, mode=0o777)
        path.write_bytes(torrent.metainfo())
    except (OSError, ValueError) as e:
        raise PersistenceWriteError(f"error writing torrent file {path}: {e}") from e
    logger.info(f"Saved torrent file: {path}")
    return path


def remove_torrent_file(settings: Settings, name: str) -> None:
    path = torrent_file_path(settings, name)
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        raise PersistenceDeleteError(f"error deleting torrent file {path}: {e}") from e
    logger.info(f"Deleted torrent file: {path}")


async def resume_all(settings: Settings, engine) -> int:
    """
    Re-adds every saved descriptor concurrently. Individual failures are
    logged; returns the number of torrents resumed.
    """
    try:
        saved = sorted(p for p in settings.torrents_dir.iterdir() if p.is_file())
    except FileNotFoundError:
        return 0
    except OSError as e:
        logger.error(f"Error retrieving saved torrents: {e}")
        return 0

    results = await asyncio.gather(
        *(add_torrent(engine, str(path)) for path in saved),
        return_exceptions=True,
    )

    resumed = 0
    for path, result in zip(saved, results):
        if isinstance(result, Exception):
            logger.error(f"Error resuming torrent {path.name}: {result}")
        else:
            resumed += 1
    logger.info(f"Resumed {resumed}/{len(saved)} saved torrents")
    return resumed
