"""Pydantic models for peer discovery."""

import time

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DeviceIdentity(BaseModel):
    """This device's identity for the lifetime of the process."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class BeaconPacket(BaseModel):
    """The JSON payload broadcast over UDP."""
    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(alias="deviceId", min_length=1)
    device_name: str = Field(alias="deviceName")
    service_port: int = Field(alias="servicePort")
    is_holding: bool = Field(default=False, alias="isHolding")
    held_file: str = Field(default="", alias="heldFile")

    @model_validator(mode="after")
    def _check_grab(self) -> "BeaconPacket":
        if self.is_holding != bool(self.held_file):
            raise ValueError("heldFile must be set if and only if isHolding is true")
        return self

    def to_bytes(self) -> bytes:
        exclude = None if self.held_file else {"held_file"}
        return self.model_dump_json(by_alias=True, exclude=exclude).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "BeaconPacket":
        """Decode a datagram. Raises ValueError (or a subclass) on bad input."""
        return cls.model_validate_json(data)


class Peer(BaseModel):
    """Represents a discovered device on the LAN."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    ip: str
    name: str
    is_holding: bool = Field(default=False, alias="isHolding")
    held_file: str = Field(default="", alias="heldFile")
    last_seen: float = Field(default_factory=time.monotonic, exclude=True)

    @classmethod
    def from_beacon(cls, beacon: BeaconPacket, ip: str) -> "Peer":
        """Build a peer from a beacon; ``ip`` is the observed source address."""
        return cls(
            id=beacon.device_id,
            ip=ip,
            name=beacon.device_name,
            is_holding=beacon.is_holding,
            held_file=beacon.held_file,
        )

    def grab_differs(self, other: "Peer") -> bool:
        return (self.is_holding, self.held_file) != (other.is_holding, other.held_file)

    def to_json(self) -> str:
        """Encode for the event stream; ``heldFile`` is omitted when empty."""
        exclude = None if self.held_file else {"held_file"}
        return self.model_dump_json(by_alias=True, exclude=exclude)
