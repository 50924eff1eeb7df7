import logging
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import requests

from torrentgate.supervisor.config import SupervisorConfig

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 0.25
POLL_TIMEOUT = 5
ADD_TIMEOUT = 120
ADD_RETRIES = 10
ADD_RETRY_DELAY = 1


@dataclass
class SupervisorState:
    client_running: bool = False
    launched_by_us: bool = False
    # info-hash -> {"Name", "Files", "Length"}, replaced wholesale by each poll
    torrents: Dict[str, dict] = field(default_factory=dict)


class GatewayClient:
    """Starts, stops and talks to the gateway process on behalf of the player."""

    def __init__(
        self,
        config: SupervisorConfig,
        state: Optional[SupervisorState] = None,
        session: Optional[requests.Session] = None,
        spawn: Callable[..., object] = subprocess.Popen,
    ):
        self.config = config
        self.state = state or SupervisorState()
        self.session = session or requests.Session()
        self._spawn = spawn

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.config.port}"

    # --- Lifecycle ---
    def is_running(self) -> bool:
        try:
            self.session.get(f"{self.base_url}/torrents", timeout=HEALTH_TIMEOUT)
        except requests.ConnectionError:
            return False
        except requests.Timeout:
            # Accepted the connection, just slow to list its torrents.
            return True
        except requests.RequestException as e:
            logger.debug(f"Health check failed: {e}")
            return False
        return True

    def start(self) -> bool:
        """Makes sure a gateway is running. Returns False if it could not be started."""
        # A gateway we just spawned may still be booting and refuse the probe.
        if self.state.client_running:
            return True
        if self.is_running():
            logger.debug("Client is already running")
            self.state.client_running = True
            return True

        args = [*self.config.gateway_command, *self.config.client_args()]
        try:
            self._spawn(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to start client: {e}")
            return False

        logger.info("Started torrent server")
        self.state.client_running = True
        self.state.launched_by_us = True
        return True

    def close(self) -> None:
        if not (self.state.client_running and self.state.launched_by_us):
            return
        try:
            self.session.get(f"{self.base_url}/exit", timeout=POLL_TIMEOUT)
        except requests.RequestException as e:
            logger.debug(f"Exit request failed: {e}")
        logger.info("Closed torrent server")
        self.state.client_running = False
        self.state.launched_by_us = False

    # --- State sync ---
    def update_status(self) -> bool:
        """Replaces the tracked torrents with the gateway's current list."""
        if not self.state.client_running:
            return False
        try:
            resp = self.session.get(f"{self.base_url}/torrents", timeout=POLL_TIMEOUT)
            resp.raise_for_status()
            torrents = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.debug(f"Status poll failed, treating client as stopped: {e}")
            self.state.client_running = False
            return False

        self.state.torrents = {
            t["InfoHash"]: {"Name": t["Name"], "Files": t.get("Files") or [], "Length": t.get("Length", 0)}
            for t in torrents
        }
        return True

    # --- Torrent operations ---
    def add(self, identifier: str) -> Optional[str]:
        """Submits an identifier and returns the playlist text, or None."""
        if not self.state.client_running:
            logger.error("Server must be online to add torrents")
            return None

        url = f"{self.base_url}/torrents"
        for attempt in range(ADD_RETRIES + 1):
            try:
                resp = self.session.post(url, data=identifier.encode("utf-8"), timeout=(HEALTH_TIMEOUT * 4, ADD_TIMEOUT))
                break
            except requests.ConnectionError:
                # The gateway may still be binding its port.
                if attempt == ADD_RETRIES:
                    logger.error(f"Unable to reach server to add {identifier}")
                    return None
                time.sleep(ADD_RETRY_DELAY)
            except requests.RequestException as e:
                logger.error(f"Error adding {identifier}: {e}")
                return None

        if resp.status_code != 200 or not resp.text:
            logger.debug(f"Unable to get playlist for {identifier}: {resp.status_code} {resp.text}")
            return None
        return resp.text

    def remove(self, info_hash: str, delete_files: bool = False) -> bool:
        if not self.state.client_running:
            logger.error("Server must be online to remove torrents")
            return False
        if info_hash not in self.state.torrents:
            logger.error(f"Torrent {info_hash} does not exist")
            return False

        params = {"deleteFiles": "true"} if delete_files else None
        threading.Thread(target=self._delete, args=(info_hash, params), daemon=True).start()
        del self.state.torrents[info_hash]
        return True

    def _delete(self, info_hash: str, params: Optional[dict]) -> None:
        try:
            self.session.delete(f"{self.base_url}/torrents/{info_hash}", params=params, timeout=POLL_TIMEOUT)
        except requests.RequestException as e:
            logger.error(f"Error removing torrent {info_hash}: {e}")
