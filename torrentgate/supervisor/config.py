import sys
import tempfile
from typing import List

from pydantic import BaseModel, Field

from torrentgate.config import DEFAULT_MAX_CONNS, DEFAULT_PORT, DEFAULT_READAHEAD

# Options forwarded to the gateway process as --kebab-case=value flags.
GATEWAY_KEYS = (
    "delete_database_on_exit",
    "delete_data_on_torrent_drop",
    "disable_utp",
    "download_dir",
    "max_conns_per_torrent",
    "port",
    "readahead",
    "responsive",
    "resume_torrents",
    "profiling",
)


class SupervisorConfig(BaseModel):
    # --- Gateway ---
    delete_database_on_exit: bool = False
    delete_data_on_torrent_drop: bool = False
    disable_utp: bool = True
    download_dir: str = tempfile.gettempdir()
    max_conns_per_torrent: int = DEFAULT_MAX_CONNS
    port: int = DEFAULT_PORT
    readahead: int = DEFAULT_READAHEAD
    responsive: bool = False
    resume_torrents: bool = True
    profiling: bool = False

    # --- Supervisor ---
    start_client_on_launch: bool = True
    close_client_on_exit: bool = True
    close_client_on_no_torrent_files: bool = False
    gateway_command: List[str] = Field(default_factory=lambda: [sys.executable, "-m", "torrentgate"])

    def client_args(self) -> List[str]:
        args = []
        for key in GATEWAY_KEYS:
            value = getattr(self, key)
            if isinstance(value, bool):
                value = "true" if value else "false"
            args.append(f"--{key.replace('_', '-')}={value}")
        return args
