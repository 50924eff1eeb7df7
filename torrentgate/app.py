import logging
import os
import signal
import sys
from typing import Callable, List, Optional

import requests
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from torrentgate.api import control, streaming, torrents
from torrentgate.config import SHUTDOWN_TIMEOUT_SECONDS, Settings, parse_args
from torrentgate.netaddr import LocalAddressResolver
from torrentgate.persistence import resume_all
from torrentgate.piece_cache import PieceCache

logger = logging.getLogger(__name__)


def _interrupt_self() -> None:
    # uvicorn turns SIGINT into its graceful shutdown
    os.kill(os.getpid(), signal.SIGINT)


def create_app(
    settings: Settings,
    engine,
    resolver: Optional[LocalAddressResolver] = None,
    cache: Optional[PieceCache] = None,
    request_shutdown: Optional[Callable[[], None]] = None,
) -> FastAPI:
    # --- App Initialization ---
    app = FastAPI(title="torrentgate")
    app.state.settings = settings
    app.state.engine = engine
    app.state.resolver = resolver or LocalAddressResolver(settings.prefer_address_prefix)
    app.state.cache = cache or PieceCache(settings.database_path)
    app.state.request_shutdown = request_shutdown or _interrupt_self

    # --- CORS Middleware ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Event Handlers ---
    @app.on_event("startup")
    async def startup_event():
        """
        On startup, create the download directory, start the engine and resume
        saved torrents.
        """
        download_path = settings.download_dir
        try:
            download_path.mkdir(parents=True, exist_ok=True, mode=0o777)
            logger.info(f"Download path: {download_path.absolute()}")

            test_file = download_path / ".write_test"
            test_file.touch()
            test_file.unlink()
        except PermissionError as e:
            logger.error(f"Permission denied creating directories: {e}")
        except OSError as e:
            logger.error(f"Error creating directories: {e}")

        app.state.cache.open()
        engine.start()
        logger.info("Torrent client started")

        if settings.resume_torrents:
            await resume_all(settings, engine)

    @app.on_event("shutdown")
    async def shutdown_event():
        """On shutdown, stop the engine and close (or delete) the piece cache."""
        await engine.close()
        if settings.delete_database_on_exit:
            try:
                app.state.cache.delete_database()
            except OSError as e:
                logger.error(f"Error deleting database: {e}")
        else:
            app.state.cache.close()

    # --- API Routers ---
    app.include_router(torrents.router, prefix="/torrents", tags=["torrents"])
    app.include_router(streaming.router, prefix="/torrents", tags=["streaming"])
    app.include_router(control.router, tags=["control"])
    if settings.profiling:
        app.include_router(control.debug_router, prefix="/debug", tags=["debug"])

    return app


def gateway_already_running(port: int) -> bool:
    try:
        requests.get(f"http://127.0.0.1:{port}/torrents", timeout=0.25)
    except requests.ConnectionError:
        return False
    except requests.Timeout:
        # Something accepted the connection but is slow to answer.
        return True
    return True


# --- Main Entry Point ---
def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    settings = parse_args(argv)

    if gateway_already_running(settings.port):
        logger.error(f"Server already listening on port {settings.port}")
        sys.exit(1)

    from torrentgate.engine import TorrentEngine

    engine = TorrentEngine(settings)
    app = create_app(settings, engine)

    config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=settings.port,
        log_level="info",
        timeout_graceful_shutdown=SHUTDOWN_TIMEOUT_SECONDS,
    )
    server = uvicorn.Server(config)
    app.state.request_shutdown = lambda: setattr(server, "should_exit", True)

    logger.info(f"Starting torrentgate on http://0.0.0.0:{settings.port}")
    try:
        server.run()
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        sys.exit(1)
    logger.info("Server shutdown successfully")


if __name__ == "__main__":
    main()
