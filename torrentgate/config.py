import argparse
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

# --- Defaults ---
DEFAULT_PORT = 6969
DEFAULT_MAX_CONNS = 200
DEFAULT_READAHEAD = 32 * 1024 * 1024  # 32 MB
SHUTDOWN_TIMEOUT_SECONDS = 9
TORRENTS_DIRNAME = "torrents"
DATABASE_FILENAME = "torrents.db"

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    download_dir: Path = Path(tempfile.gettempdir())
    listen_addr: str = "0.0.0.0:0"
    local_addr: str = ""
    max_conns_per_torrent: int = DEFAULT_MAX_CONNS
    port: int = DEFAULT_PORT
    readahead: int = DEFAULT_READAHEAD
    responsive: bool = False
    resume_torrents: bool = True
    profiling: bool = False
    delete_data_on_torrent_drop: bool = False
    delete_database_on_exit: bool = False
    disable_utp: bool = True
    prefer_address_prefix: str = "192."

    @property
    def torrents_dir(self) -> Path:
        return self.download_dir / TORRENTS_DIRNAME

    @property
    def database_path(self) -> Path:
        return self.download_dir / DATABASE_FILENAME


def str2bool(value) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {value!r}")


def _env(name: str, default):
    return os.getenv(name, default)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser("torrentgate", description="Stream torrents over HTTP")

    def flag(name, help):
        # Accepts "--name", "--name=true" and "--name=false".
        dest = name.replace("-", "_")
        env_default = str2bool(_env(dest.upper(), Settings.model_fields[dest].default))
        ap.add_argument(f"--{name}", type=str2bool, nargs="?", const=True, default=env_default, help=help)

    ap.add_argument(
        "--download-dir",
        type=Path,
        default=Path(_env("DOWNLOAD_DIR", tempfile.gettempdir())),
        help="Directory where downloaded files are stored",
    )
    ap.add_argument(
        "--listen-addr",
        default=_env("LISTEN_ADDR", "0.0.0.0:0"),
        help="Address to listen for incoming peer connections",
    )
    ap.add_argument(
        "--local-addr",
        default=_env("LOCAL_ADDR", ""),
        help="Interface to use for outgoing peer connections",
    )
    ap.add_argument(
        "--max-conns-per-torrent",
        type=int,
        default=int(_env("MAX_CONNS_PER_TORRENT", DEFAULT_MAX_CONNS)),
        help="Maximum connections per torrent",
    )
    ap.add_argument("--port", type=int, default=int(_env("PORT", DEFAULT_PORT)), help="HTTP server port")
    ap.add_argument(
        "--readahead",
        type=int,
        default=int(_env("READAHEAD", DEFAULT_READAHEAD)),
        help="Bytes ahead of read to prioritize. Negative uses the engine default.",
    )
    ap.add_argument(
        "--prefer-address-prefix",
        default=_env("PREFER_ADDRESS_PREFIX", "192."),
        help="Prefer a local address starting with this prefix when building stream URLs",
    )
    flag("responsive", "Reads return as soon as possible without waiting for the whole span")
    flag("resume-torrents", "Resume previous torrents on startup")
    flag("profiling", "Add debug handlers for profiling")
    flag("delete-data-on-torrent-drop", "Delete a torrent's data after it is dropped")
    flag("delete-database-on-exit", "Delete the piece cache database before exiting")
    flag("disable-utp", "Disables uTP")
    return ap


def parse_args(argv: Optional[List[str]] = None) -> Settings:
    args = build_parser().parse_args(argv)
    settings = Settings(**vars(args))
    settings.download_dir = settings.download_dir.resolve()
    logger.info(f"[CONFIG] DOWNLOAD_DIR: {settings.download_dir}")
    return settings
