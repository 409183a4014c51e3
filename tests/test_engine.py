"""Tests for the engine context and entry point helpers."""

import asyncio
import socket

import pytest

from conftest import make_context
from main import bind_server_socket, parse_args


class TestEngineContext:

    @pytest.mark.asyncio
    async def test_wait_stopped_times_out(self):
        ctx = make_context()
        assert await ctx.wait_stopped(0.01) is False
        assert ctx.stopping is False

    @pytest.mark.asyncio
    async def test_shutdown_wakes_waiters(self):
        ctx = make_context()
        waiter = asyncio.create_task(ctx.wait_stopped())
        await asyncio.sleep(0)
        ctx.shutdown()
        assert await asyncio.wait_for(waiter, timeout=1) is True

    def test_shutdown_is_idempotent(self):
        ctx = make_context()
        ctx.shutdown()
        ctx.shutdown()
        assert ctx.stopping

    def test_device_info(self):
        ctx = make_context(device_id="dev", name="desk", port=8080)
        info = ctx.device_info()
        assert info["id"] == "dev"
        assert info["name"] == "desk"
        assert info["servicePort"] == 8080
        assert (info["isHolding"], info["heldFile"]) == (False, "")


class TestEntryPoint:

    def test_defaults(self):
        args = parse_args([])
        assert args.name is None
        assert args.shared_dir == "shared"
        assert args.peer_timeout is None
        assert args.no_demo is False

    def test_overrides(self):
        args = parse_args(["--name", "den", "--shared-dir", "/srv/share", "--peer-timeout", "30", "--no-demo"])
        assert args.name == "den"
        assert args.shared_dir == "/srv/share"
        assert args.peer_timeout == 30.0
        assert args.no_demo is True

    def test_bind_conflict_raises(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen()
        try:
            with pytest.raises(OSError):
                bind_server_socket("127.0.0.1", blocker.getsockname()[1])
        finally:
            blocker.close()
