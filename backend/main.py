"""
AirShare engine entry point.

Starts discovery, the HTTP file server and the command interface, then runs
until SIGINT/SIGTERM. Events go to stdout, one per line; logs go to stderr.
"""

import argparse
import asyncio
import logging
import signal
import socket
import sys

import uvicorn
from fastapi import FastAPI

from api.routes import init_routes, prepare_shared_dir, router
from commands.channel import EventChannel, LineWriter
from commands.interface import CommandInterface, read_lines
from config import PEER_TIMEOUT, SERVICE_HOST, SERVICE_PORT, SHARED_DIR
from context import EngineContext
from discovery.identity import get_local_ip, new_identity
from discovery.service import DiscoveryService

logger = logging.getLogger(__name__)


def create_app(context: EngineContext) -> FastAPI:
    """Build the file server app for ``context``."""
    app = FastAPI(title="AirShare Engine", version="1.0.0")
    init_routes(context)
    app.include_router(router)
    return app


def bind_server_socket(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock


async def run_engine(args: argparse.Namespace) -> None:
    context = EngineContext(
        new_identity(args.name),
        shared_dir=args.shared_dir,
        service_port=SERVICE_PORT,
    )
    prepare_shared_dir(context.shared_dir, demo=not args.no_demo)

    events = EventChannel()
    events.subscribe(LineWriter(sys.stdout))
    commands = CommandInterface(context, events)
    discovery = DiscoveryService(context, peer_timeout=args.peer_timeout)
    discovery.on_peer_change(commands.on_peer_change)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, context.shutdown)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers.
            pass

    logger.info(f"Device ID: {context.identity.id}")
    logger.info(f"Device Name: {context.identity.name}")
    logger.info(f"Local IP: {get_local_ip()}")

    await discovery.start()

    server = None
    server_task = None
    try:
        sock = bind_server_socket(SERVICE_HOST, context.service_port)
    except OSError as e:
        logger.error(f"Failed to bind file server on port {context.service_port}: {e}")
    else:
        config = uvicorn.Config(
            create_app(context),
            lifespan="off",
            log_config=None,
            access_log=False,
        )
        server = uvicorn.Server(config)
        server_task = asyncio.create_task(server.serve(sockets=[sock]), name="file-server")
        # The server exits on its own when it catches a signal.
        server_task.add_done_callback(lambda _: context.shutdown())
        logger.info(f"File server listening on port {context.service_port}")

    command_task = asyncio.create_task(commands.run(read_lines(sys.stdin)), name="commands")
    logger.info("AirShare engine running. Waiting for commands...")

    try:
        await context.wait_stopped()
    finally:
        logger.info("Shutting down...")
        if server is not None:
            server.should_exit = True
            await asyncio.gather(server_task, return_exceptions=True)
        await discovery.stop()
        command_task.cancel()
        await asyncio.gather(command_task, return_exceptions=True)
        await commands.wait_downloads()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AirShare discovery and handoff engine")
    parser.add_argument("--name", help="device name to announce (default: host name)")
    parser.add_argument(
        "--shared-dir", default=str(SHARED_DIR),
        help="directory served by the file server (default: %(default)s)",
    )
    parser.add_argument(
        "--peer-timeout", type=float, default=PEER_TIMEOUT,
        help="forget peers silent for this many seconds (default: never)",
    )
    parser.add_argument(
        "--no-demo", action="store_true",
        help="do not create demo.txt in the shared directory",
    )
    parser.add_argument("--log-level", default="INFO", help="logging level (default: %(default)s)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    # --- Logging --- (stderr; stdout carries the event stream)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        asyncio.run(run_engine(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
