"""
Device identity and local address helpers.

The identity is ephemeral: a restart yields a new device id.
"""

import logging
import socket
import uuid

from config import UNKNOWN_DEVICE_NAME
from discovery.models import DeviceIdentity

logger = logging.getLogger(__name__)


def new_identity(name: str | None = None) -> DeviceIdentity:
    """Create a fresh identity, named after the host unless ``name`` is given."""
    if not name:
        try:
            name = socket.gethostname() or UNKNOWN_DEVICE_NAME
        except OSError as e:
            logger.warning(f"Could not read host name: {e}")
            name = UNKNOWN_DEVICE_NAME

    identity = DeviceIdentity(id=str(uuid.uuid4()), name=name)
    logger.info(f"Initialized identity {identity.id} ({identity.name})")
    return identity


def get_local_ip() -> str:
    """Return the first non-loopback IPv4 address of this host, or 127.0.0.1."""
    try:
        _, _, ips = socket.gethostbyname_ex(socket.gethostname())
    except OSError as e:
        logger.debug(f"Error resolving local IPs: {e}")
        return "127.0.0.1"

    for ip in ips:
        if not ip.startswith("127."):
            return ip
    return "127.0.0.1"
