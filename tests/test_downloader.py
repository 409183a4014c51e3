"""Tests for the HTTP downloader."""

import os

import httpx
import pytest

from main import create_app
from transfer.downloader import BadRemoteStatusError, DownloadError, download


class BrokenStream(httpx.AsyncByteStream):
    """Yields some bytes, then fails like a dropped connection."""

    async def __aiter__(self):
        yield b"partial-"
        raise httpx.ReadError("connection reset")


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDownload:

    @pytest.mark.asyncio
    async def test_writes_exact_bytes(self, tmp_path):
        body = os.urandom(200_000)
        dest = tmp_path / "out.bin"

        async with mock_client(lambda request: httpx.Response(200, content=body)) as client:
            written = await download("http://peer/file/blob.bin", dest, client=client, chunk_size=4096)

        assert written == len(body)
        assert dest.read_bytes() == body

    @pytest.mark.asyncio
    async def test_overwrites_existing_file(self, tmp_path):
        dest = tmp_path / "out.txt"
        dest.write_text("old content that is longer")

        async with mock_client(lambda request: httpx.Response(200, content=b"new")) as client:
            await download("http://peer/file/x", dest, client=client)

        assert dest.read_bytes() == b"new"

    @pytest.mark.asyncio
    async def test_bad_status_creates_nothing(self, tmp_path):
        dest = tmp_path / "out.pdf"

        async with mock_client(lambda request: httpx.Response(404, text="File not found")) as client:
            with pytest.raises(BadRemoteStatusError) as exc_info:
                await download("http://peer/file/missing.pdf", dest, client=client)

        assert exc_info.value.status_code == 404
        assert "404 Not Found" in str(exc_info.value)
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_connection_error(self, tmp_path):
        def refuse(request):
            raise httpx.ConnectError("connection refused")

        async with mock_client(refuse) as client:
            with pytest.raises(DownloadError, match="failed to download"):
                await download("http://peer/file/x", tmp_path / "x", client=client)

    @pytest.mark.asyncio
    async def test_failure_midway_leaves_partial_file(self, tmp_path):
        dest = tmp_path / "partial.bin"

        async with mock_client(lambda request: httpx.Response(200, stream=BrokenStream())) as client:
            with pytest.raises(DownloadError):
                await download("http://peer/file/x", dest, client=client, chunk_size=4)

        assert dest.read_bytes() == b"partial-"

    @pytest.mark.asyncio
    async def test_unwritable_destination(self, tmp_path):
        dest = tmp_path / "no-such-dir" / "out.txt"

        async with mock_client(lambda request: httpx.Response(200, content=b"data")) as client:
            with pytest.raises(DownloadError, match="failed to write file"):
                await download("http://peer/file/x", dest, client=client)

    @pytest.mark.asyncio
    async def test_from_file_server(self, context, shared_dir, tmp_path):
        body = b"quarterly numbers\n" * 1000
        (shared_dir / "report.pdf").write_bytes(body)
        dest = tmp_path / "out.pdf"

        transport = httpx.ASGITransport(app=create_app(context))
        async with httpx.AsyncClient(transport=transport) as client:
            written = await download("http://peer-a:8080/file/report.pdf", dest, client=client)

        assert written == len(body)
        assert dest.read_bytes() == body
