"""
Command interface: the boundary between the engine and the external shell.

Commands arrive as lines from any async line source and are applied in
order. DOWNLOAD runs as its own task so the read loop never waits on the
network. Results and peer changes leave through the event channel.
"""

import asyncio
import json
import logging
import sys
import threading
from collections.abc import AsyncIterator
from typing import TextIO

from commands.channel import EventChannel
from commands.models import Command, CommandName, Event, EventTag, parse_command
from context import EngineContext
from discovery.identity import get_local_ip
from discovery.models import Peer
from discovery.registry import PeerChange
from transfer.downloader import DownloadError, download

logger = logging.getLogger(__name__)

_PEER_EVENT_TAGS = {
    PeerChange.FOUND: EventTag.PEER_FOUND,
    PeerChange.GRAB_UPDATE: EventTag.GRAB_UPDATE,
    PeerChange.LOST: EventTag.PEER_LOST,
}


class CommandInterface:
    """Parses command lines and dispatches them against the engine context."""

    def __init__(self, context: EngineContext, events: EventChannel, downloader=download) -> None:
        self.context = context
        self.events = events
        self._download = downloader
        self._downloads: set[asyncio.Task] = set()
        self._handlers = {
            CommandName.GRAB: self._grab,
            CommandName.RELEASE: self._release,
            CommandName.DOWNLOAD: self._start_download,
            CommandName.GET_IP: self._get_ip,
            CommandName.LIST_FILES: self._list_files,
            CommandName.LIST_PEERS: self._list_peers,
            CommandName.GET_INFO: self._get_info,
        }

    async def run(self, lines: AsyncIterator[str]) -> None:
        """Apply every line from ``lines`` until the source is exhausted."""
        async for line in lines:
            await self.handle_line(line)
        logger.info("Command input closed")

    async def handle_line(self, line: str) -> None:
        command = parse_command(line)
        if command is None:
            return

        try:
            handler = self._handlers[CommandName(command.name)]
        except ValueError:
            logger.warning(f"Unknown command: {command.name}")
            return
        await handler(command)

    async def on_peer_change(self, change: PeerChange, peer: Peer) -> None:
        """Discovery callback: forward peer changes as events."""
        await self.events.publish(Event.for_peer(_PEER_EVENT_TAGS[change], peer))

    async def wait_downloads(self) -> None:
        """Wait for all in-flight downloads to finish."""
        if self._downloads:
            await asyncio.gather(*self._downloads, return_exceptions=True)

    # --- Handlers ---

    async def _grab(self, command: Command) -> None:
        if not command.argument:
            logger.warning("GRAB requires a filename")
            return
        self.context.grab.set_grab(command.argument)

    async def _release(self, command: Command) -> None:
        self.context.grab.clear_grab()

    async def _start_download(self, command: Command) -> None:
        url, _, dest_path = command.argument.partition(" ")
        dest_path = dest_path.strip()
        if not url or not dest_path:
            logger.warning("DOWNLOAD requires <url> <destPath>")
            return

        task = asyncio.create_task(self._run_download(url, dest_path))
        self._downloads.add(task)
        task.add_done_callback(self._downloads.discard)

    async def _run_download(self, url: str, dest_path: str) -> None:
        try:
            await self._download(url, dest_path)
        except DownloadError as e:
            logger.error(f"Download failed: {e}")
            payload = json.dumps({"path": dest_path, "error": str(e)})
            await self.events.publish(Event(tag=EventTag.DOWNLOAD_FAILED, payload=payload))
        else:
            await self.events.publish(
                Event(tag=EventTag.DOWNLOAD_COMPLETE, payload=dest_path)
            )

    async def _get_ip(self, command: Command) -> None:
        await self.events.publish(Event(tag=EventTag.LOCAL_IP, payload=get_local_ip()))

    async def _list_files(self, command: Command) -> None:
        shared_dir = self.context.shared_dir
        try:
            names = sorted(p.name for p in shared_dir.iterdir() if p.is_file())
        except OSError as e:
            logger.warning(f"Cannot list shared directory {shared_dir}: {e}")
            return
        for name in names:
            await self.events.publish(Event(tag=EventTag.FILE, payload=name))

    async def _list_peers(self, command: Command) -> None:
        for peer in self.context.peers.list():
            await self.events.publish(Event.for_peer(EventTag.PEER, peer))

    async def _get_info(self, command: Command) -> None:
        info = json.dumps(self.context.device_info())
        await self.events.publish(Event(tag=EventTag.DEVICE_INFO, payload=info))


async def read_lines(stream: TextIO = sys.stdin) -> AsyncIterator[str]:
    """Yield lines from a blocking text stream without blocking the event loop.

    The stream is read on a daemon thread so a pending read never holds up
    process exit.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[str | None] = asyncio.Queue()

    def _reader() -> None:
        try:
            for line in stream:
                loop.call_soon_threadsafe(queue.put_nowait, line)
            loop.call_soon_threadsafe(queue.put_nowait, None)
        except (OSError, ValueError) as e:
            logger.warning(f"Command input error: {e}")
            loop.call_soon_threadsafe(queue.put_nowait, None)
        except RuntimeError:
            # Event loop already closed during shutdown.
            pass

    threading.Thread(target=_reader, name="command-reader", daemon=True).start()
    while (line := await queue.get()) is not None:
        yield line
