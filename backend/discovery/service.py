"""
UDP-based LAN discovery service.

Broadcasts a beacon carrying this device's grab state once per interval and
listens for beacons from other engines on the same LAN, reconciling them
into the peer registry.
"""

import asyncio
import logging
import socket

from config import (
    BEACON_INTERVAL,
    BROADCAST_ADDR,
    DISCOVERY_PORT,
    LISTENER_READ_TIMEOUT,
    MAX_DATAGRAM_SIZE,
    PEER_TIMEOUT,
)
from context import EngineContext
from discovery.models import BeaconPacket, Peer
from discovery.registry import PeerChange

logger = logging.getLogger(__name__)


class BeaconSendProtocol(asyncio.DatagramProtocol):
    """Outgoing side of the broadcast socket. Send errors are only logged."""

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Beacon send error: {exc}")


class BeaconReceiveProtocol(asyncio.DatagramProtocol):
    """Queues received datagrams for the listener loop."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.queue.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        logger.debug(f"Receive error: {exc}")


class BeaconBroadcaster:
    """Sends this device's beacon to the broadcast address until stopped."""

    def __init__(
        self,
        context: EngineContext,
        broadcast_addr: str = BROADCAST_ADDR,
        port: int = DISCOVERY_PORT,
        interval: float = BEACON_INTERVAL,
    ) -> None:
        self.context = context
        self.broadcast_addr = broadcast_addr
        self.port = port
        self.interval = interval

    def build_beacon(self) -> BeaconPacket:
        is_holding, held_file = self.context.grab.snapshot()
        return BeaconPacket(
            device_id=self.context.identity.id,
            device_name=self.context.identity.name,
            service_port=self.context.service_port,
            is_holding=is_holding,
            held_file=held_file,
        )

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as e:
            logger.error(f"Failed to create broadcast socket, beacon disabled: {e}")
            return
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setblocking(False)
            sock.bind(("", 0))
            transport, _ = await loop.create_datagram_endpoint(BeaconSendProtocol, sock=sock)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to create broadcast socket, beacon disabled: {e}")
            return

        logger.info(f"Beacon started, broadcasting every {self.interval}s")
        try:
            while not self.context.stopping:
                try:
                    data = self.build_beacon().to_bytes()
                except ValueError as e:
                    logger.warning(f"Failed to encode beacon: {e}")
                else:
                    transport.sendto(data, (self.broadcast_addr, self.port))

                await self.context.wait_stopped(self.interval)
        finally:
            transport.close()
            logger.info("Beacon stopped")


class BeaconListener:
    """Receives beacons and reconciles them into the peer registry."""

    def __init__(
        self,
        context: EngineContext,
        host: str = "0.0.0.0",
        port: int = DISCOVERY_PORT,
        read_timeout: float = LISTENER_READ_TIMEOUT,
    ) -> None:
        self.context = context
        self.host = host
        self.port = port
        self.read_timeout = read_timeout
        self._sock: socket.socket | None = None
        self._on_peer_change: list = []  # callbacks: async def fn(change, peer)

    def on_peer_change(self, callback) -> None:
        """Register a callback for peer found / grab update events."""
        self._on_peer_change.append(callback)

    def open(self) -> None:
        """Bind the discovery socket. Raises OSError if the port is unavailable."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    pass
            sock.setblocking(False)
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise
        self._sock = sock
        self.port = sock.getsockname()[1]

    async def run(self) -> None:
        if self._sock is None:
            try:
                self.open()
            except OSError as e:
                logger.error(
                    f"Failed to start listener on port {self.port}, "
                    f"discovery disabled: {e}"
                )
                return

        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.create_datagram_endpoint(
                BeaconReceiveProtocol, sock=self._sock,
            )
        except OSError as e:
            logger.error(f"Failed to start listener on port {self.port}, discovery disabled: {e}")
            self._sock.close()
            self._sock = None
            return

        logger.info(f"Listener started on port {self.port}")
        try:
            while not self.context.stopping:
                try:
                    data, addr = await asyncio.wait_for(protocol.queue.get(), self.read_timeout)
                except asyncio.TimeoutError:
                    continue

                await self.handle_datagram(data[:MAX_DATAGRAM_SIZE], addr[0])
        finally:
            transport.close()
            self._sock = None
            logger.info("Listener stopped")

    async def handle_datagram(self, data: bytes, ip: str) -> PeerChange | None:
        """Reconcile one received datagram. Malformed and self packets are dropped."""
        try:
            beacon = BeaconPacket.from_bytes(data)
        except ValueError as e:
            logger.debug(f"Ignoring invalid discovery packet from {ip}: {e}")
            return None

        if beacon.device_id == self.context.identity.id:
            return None

        peer = Peer.from_beacon(beacon, ip)
        change = self.context.peers.reconcile(peer)

        if change is PeerChange.FOUND:
            logger.info(f"Discovered peer: {peer.name} ({peer.ip})")
        elif change is PeerChange.GRAB_UPDATE:
            logger.info(
                f"Grab update from {peer.name}: holding={peer.is_holding} "
                f"file={peer.held_file!r}"
            )
        if change is not None:
            await self.emit(change, peer)
        return change

    async def emit(self, change: PeerChange, peer: Peer) -> None:
        for cb in self._on_peer_change:
            try:
                await cb(change, peer)
            except Exception as e:
                logger.error(f"Peer event callback error: {e}")


class DiscoveryService:
    """Runs the broadcaster, the listener and the optional stale-peer sweep."""

    def __init__(
        self,
        context: EngineContext,
        broadcaster: BeaconBroadcaster | None = None,
        listener: BeaconListener | None = None,
        peer_timeout: float | None = PEER_TIMEOUT,
    ) -> None:
        self.context = context
        self.broadcaster = broadcaster or BeaconBroadcaster(context)
        self.listener = listener or BeaconListener(context)
        self.peer_timeout = peer_timeout
        self._tasks: list[asyncio.Task] = []

    def on_peer_change(self, callback) -> None:
        """Register a callback: async fn(change: PeerChange, peer: Peer)."""
        self.listener.on_peer_change(callback)

    async def start(self) -> None:
        """Start the discovery loops. Socket failures degrade, they do not raise."""
        logger.info(f"Starting discovery on UDP port {self.listener.port}")
        self._tasks = [
            asyncio.create_task(self.broadcaster.run(), name="beacon-broadcaster"),
            asyncio.create_task(self.listener.run(), name="beacon-listener"),
        ]
        if self.peer_timeout:
            self._tasks.append(
                asyncio.create_task(self._cleanup_loop(), name="peer-expiry")
            )
        for task in self._tasks:
            task.add_done_callback(self._log_crash)

    @staticmethod
    def _log_crash(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Discovery task {task.get_name()} crashed: {exc!r}")

    async def stop(self) -> None:
        """Signal shutdown and wait for the loops to finish."""
        self.context.shutdown()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
        logger.info("Discovery service stopped")

    async def _cleanup_loop(self) -> None:
        """Remove peers that haven't been seen within ``peer_timeout``."""
        while not await self.context.wait_stopped(self.peer_timeout):
            for peer in self.context.peers.expire(self.peer_timeout):
                await self.listener.emit(PeerChange.LOST, peer)
