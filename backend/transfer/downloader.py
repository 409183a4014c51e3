"""
HTTP downloader used to fetch a held file from a peer's file server.

The body is streamed straight into the destination path. A failure midway
leaves whatever was already written in place; there is no temporary file
and no cleanup.
"""

import asyncio
import logging
import os

import httpx

from config import DOWNLOAD_CHUNK_SIZE

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """A download could not be completed."""


class BadRemoteStatusError(DownloadError):
    """The remote file server answered with a non-success status."""

    def __init__(self, status_code: int, reason: str) -> None:
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"bad status: {status_code} {reason}".rstrip())


async def download(
    url: str,
    destination_path: str | os.PathLike,
    client: httpx.AsyncClient | None = None,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> int:
    """
    Fetch ``url`` and write the response body to ``destination_path``.

    Args:
        url: Full URL of the remote file, e.g. ``http://ip:8080/file/name``.
        destination_path: Local file to create or overwrite.
        client: Optional shared client; a short-lived one is used otherwise.
        chunk_size: Read size while streaming the body.

    Returns:
        The number of bytes written.

    Raises:
        BadRemoteStatusError: The server answered with a non-2xx status.
            The destination file is not created in that case.
        DownloadError: Connection, protocol or local I/O failure.
    """
    logger.info(f"Downloading {url} -> {destination_path}")
    owns_client = client is None
    if owns_client:
        # No timeout: in-flight downloads run to completion or failure.
        client = httpx.AsyncClient(timeout=None)

    written = 0
    try:
        async with client.stream("GET", url) as response:
            if not response.is_success:
                raise BadRemoteStatusError(response.status_code, response.reason_phrase)

            with open(destination_path, "wb") as f:
                async for chunk in response.aiter_bytes(chunk_size):
                    await asyncio.to_thread(f.write, chunk)
                    written += len(chunk)
    except httpx.HTTPError as e:
        raise DownloadError(f"failed to download: {e}") from e
    except OSError as e:
        raise DownloadError(f"failed to write file: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    logger.info(f"Downloaded successfully: {destination_path} ({written} bytes)")
    return written
