"""Application-wide configuration constants."""

from pathlib import Path

# --- Identity ---
UNKNOWN_DEVICE_NAME = "Unknown"  # used when the host name cannot be read

# --- Networking ---
DISCOVERY_PORT = 9988  # UDP
BROADCAST_ADDR = "255.255.255.255"
SERVICE_PORT = 8080  # HTTP file server
SERVICE_HOST = "0.0.0.0"
BEACON_INTERVAL = 1.0  # seconds
LISTENER_READ_TIMEOUT = 2.0  # seconds
MAX_DATAGRAM_SIZE = 4096

# Peers are kept forever unless the engine is started with --peer-timeout.
PEER_TIMEOUT = None

# --- Files ---
SHARED_DIR = Path("./shared")
DEMO_FILE_NAME = "demo.txt"
DEMO_FILE_CONTENT = "Hello from AirShare!\nThis is a demo file for testing P2P transfer.\n"
DOWNLOAD_CHUNK_SIZE = 65536  # 64 KB
