"""HTTP routes for the file server."""

import logging
import os
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse, PlainTextResponse

from config import DEMO_FILE_CONTENT, DEMO_FILE_NAME

logger = logging.getLogger(__name__)

router = APIRouter()

# Injected by main.py at startup
_context = None


def init_routes(context) -> None:
    """Inject the engine context into the routes module."""
    global _context
    _context = context


def prepare_shared_dir(shared_dir: Path, demo: bool = True) -> None:
    """Create the shared directory and, optionally, a demo file inside it."""
    try:
        shared_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create shared dir {shared_dir}: {e}")
        return

    demo_path = shared_dir / DEMO_FILE_NAME
    if demo and not demo_path.exists():
        try:
            demo_path.write_text(DEMO_FILE_CONTENT)
            logger.info(f"Created {DEMO_FILE_NAME} in shared folder")
        except OSError as e:
            logger.error(f"Failed to create demo file: {e}")


def resolve_shared_file(shared_dir: Path, name: str) -> tuple[str, Path]:
    """Map a requested name to a path inside ``shared_dir``.

    Only the base name is used, so ``../x`` and ``a/b/x`` both resolve to
    ``shared_dir/x``. Raises HTTPException(400) if nothing is left.
    """
    filename = os.path.basename(name.replace("\\", "/"))
    if filename in ("", ".", ".."):
        raise HTTPException(status_code=400, detail="Invalid filename")
    return filename, shared_dir / filename


# --- File serving ---

@router.get("/file/{name:path}")
async def serve_file(name: str):
    """Serve a file from the shared directory as an attachment."""
    filename, file_path = resolve_shared_file(_context.shared_dir, name)
    if not file_path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    logger.info(f"Serving file: {filename}")
    return FileResponse(
        file_path,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/health")
async def health():
    return PlainTextResponse("OK")


# --- Device info ---

@router.get("/api/device")
async def device_info():
    """Return this device's identity and grab state."""
    return _context.device_info()
