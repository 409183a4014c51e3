"""Models for the line-oriented command and event channel."""

from enum import Enum

from pydantic import BaseModel

from discovery.models import Peer


class CommandName(str, Enum):
    """Commands accepted on the input stream, one per line."""
    GRAB = "GRAB"
    RELEASE = "RELEASE"
    DOWNLOAD = "DOWNLOAD"
    GET_IP = "GET_IP"
    LIST_FILES = "LIST_FILES"
    LIST_PEERS = "LIST_PEERS"
    GET_INFO = "GET_INFO"


class EventTag(str, Enum):
    """Tags that prefix every line on the output stream."""
    PEER_FOUND = "[PEER_FOUND]"
    GRAB_UPDATE = "[GRAB_UPDATE]"
    PEER_LOST = "[PEER_LOST]"
    PEER = "[PEER]"
    DOWNLOAD_COMPLETE = "[DOWNLOAD_COMPLETE]"
    DOWNLOAD_FAILED = "[DOWNLOAD_FAILED]"
    LOCAL_IP = "[LOCAL_IP]"
    FILE = "[FILE]"
    DEVICE_INFO = "[DEVICE_INFO]"


class Command(BaseModel):
    """A parsed command line: the command word and the rest of the line."""
    name: str
    argument: str = ""


class Event(BaseModel):
    """A single output line: a tag followed by a JSON object or a plain value."""
    tag: EventTag
    payload: str = ""

    @classmethod
    def for_peer(cls, tag: EventTag, peer: Peer) -> "Event":
        return cls(tag=tag, payload=peer.to_json())

    def to_line(self) -> str:
        return f"{self.tag.value} {self.payload}".rstrip()

    @classmethod
    def from_line(cls, line: str) -> "Event":
        """Parse an output line. Raises ValueError for an unknown tag."""
        tag, _, payload = line.strip().partition(" ")
        return cls(tag=EventTag(tag), payload=payload)


def parse_command(line: str) -> Command | None:
    """Split a command line into its word and argument. Blank lines give None."""
    line = line.strip()
    if not line:
        return None
    name, _, argument = line.partition(" ")
    return Command(name=name, argument=argument.strip())
