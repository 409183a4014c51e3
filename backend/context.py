"""
Engine context shared by every long-running component.

Holds this device's identity, its grab state, the peer registry and the
stop signal observed by the background loops.
"""

import asyncio
import logging
from pathlib import Path

from config import SERVICE_PORT, SHARED_DIR
from discovery.grab import GrabState
from discovery.identity import get_local_ip
from discovery.models import DeviceIdentity
from discovery.registry import PeerRegistry

logger = logging.getLogger(__name__)


class EngineContext:
    """State for one running engine, with a single teardown call."""

    def __init__(
        self,
        identity: DeviceIdentity,
        shared_dir: Path | str = SHARED_DIR,
        service_port: int = SERVICE_PORT,
    ) -> None:
        self.identity = identity
        self.grab = GrabState()
        self.peers = PeerRegistry()
        self.shared_dir = Path(shared_dir)
        self.service_port = service_port
        self._stop = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def wait_stopped(self, timeout: float | None = None) -> bool:
        """Wait for shutdown. Returns True if it was signalled within ``timeout``."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def shutdown(self) -> None:
        """Signal all background loops to stop. Safe to call more than once."""
        if not self._stop.is_set():
            logger.info("Shutdown requested")
            self._stop.set()

    def device_info(self) -> dict:
        """Identity, address and grab state as reported to the shell."""
        is_holding, held_file = self.grab.snapshot()
        return {
            "id": self.identity.id,
            "name": self.identity.name,
            "ip": get_local_ip(),
            "servicePort": self.service_port,
            "isHolding": is_holding,
            "heldFile": held_file,
        }
