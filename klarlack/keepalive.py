"""Background keep-alive for an idle management connection.

varnishd (or a firewall in between) may drop connections that stay idle.
KeepAlive pings through the client's command engine every few seconds and
stops by itself once the connection it was started for is gone.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

from .config import KEEP_ALIVE_INTERVAL
from .errors import VarnishError

if TYPE_CHECKING:
    from .client import VarnishClient

logger = logging.getLogger(__name__)


class KeepAlive:
    """Pinger thread bound to one connection of a client.

    A stopped KeepAlive is never restarted; the client creates a new one
    for every new connection.
    """

    def __init__(self, client: "VarnishClient", interval: float = KEEP_ALIVE_INTERVAL):
        self._client = client
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("KeepAlive can only be started once")
        self._thread = threading.Thread(
            target=self._run, name="klarlack-keepalive", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Ask the thread to exit at its next check."""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the thread, unless called from the thread itself."""
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout)
        if thread.is_alive():
            logger.debug("Keep-alive thread still busy, abandoning it")

    def _run(self) -> None:
        logger.debug(f"Keep-alive started (interval={self.interval}s)")
        try:
            while not self._stop_event.is_set():
                if not self._client._keepalive_ping(self):
                    break
                if self._stop_event.wait(self.interval):
                    break
        except VarnishError as e:
            # The next foreground command notices the dead connection and
            # reconnects with a fresh KeepAlive.
            logger.warning(f"Keep-alive ping failed, stopping: {e}")
        finally:
            self._stop_event.set()
            logger.debug("Keep-alive stopped")
