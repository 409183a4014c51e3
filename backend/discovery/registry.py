"""Peer registry: discovered peers keyed by device id."""

from __future__ import annotations

import logging
import time
from enum import Enum

from discovery.locks import ReadWriteLock
from discovery.models import Peer

logger = logging.getLogger(__name__)


class PeerChange(str, Enum):
    """Outcome of reconciling a beacon into the registry."""
    FOUND = "peer_found"
    GRAB_UPDATE = "grab_update"
    LOST = "peer_lost"


class PeerRegistry:
    """Thread-safe store of discovered peers.

    Entries are overwritten on every beacon (last writer wins) and are never
    removed unless :meth:`expire` is called.
    """

    def __init__(self) -> None:
        self._peers: dict[str, Peer] = {}
        self._lock = ReadWriteLock()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._peers)

    def upsert(self, peer: Peer) -> None:
        with self._lock.write():
            self._peers[peer.id] = peer

    def get(self, peer_id: str) -> Peer | None:
        with self._lock.read():
            peer = self._peers.get(peer_id)
            return peer.model_copy() if peer else None

    def list(self) -> list[Peer]:
        """Return a snapshot of all known peers."""
        with self._lock.read():
            return [p.model_copy() for p in self._peers.values()]

    def reconcile(self, peer: Peer) -> PeerChange | None:
        """Store ``peer`` and report whether it is new or changed its grab state.

        Look-up and store happen under a single write lock, so two beacons
        from the same device can never both be reported as new.
        """
        with self._lock.write():
            existing = self._peers.get(peer.id)
            self._peers[peer.id] = peer

        if existing is None:
            return PeerChange.FOUND
        if existing.grab_differs(peer):
            return PeerChange.GRAB_UPDATE
        return None

    def expire(self, max_age: float, now: float | None = None) -> list[Peer]:
        """Remove and return peers not seen for ``max_age`` seconds."""
        now = time.monotonic() if now is None else now
        with self._lock.write():
            stale = [p for p in self._peers.values() if now - p.last_seen > max_age]
            for peer in stale:
                del self._peers[peer.id]

        for peer in stale:
            logger.info(f"Peer lost: {peer.name} ({peer.ip})")
        return stale
