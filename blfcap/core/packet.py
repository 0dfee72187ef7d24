# MIT License
# blfcap/core/packet.py - link-layer frames and capture packets
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Protocol


class LinkType(IntEnum):
    ETHERNET = 1
    FLEXRAY = 210
    CAN_SOCKETCAN = 227


class Direction(IntEnum):
    """Values of the two direction bits in the pcapng epb_flags option."""

    INBOUND = 1
    OUTBOUND = 2


@dataclass(frozen=True)
class EncodedFrame:
    """What an encoder returns: bytes on the wire for one link type."""

    link_type: LinkType
    data: bytes
    direction: Optional[Direction] = None


@dataclass(frozen=True)
class EncodedPacket:
    link_type: LinkType
    interface_name: str
    timestamp_resolution: int  # ticks per second
    seconds: int
    nanoseconds: int
    data: bytes
    direction: Optional[Direction] = None

    @property
    def captured_length(self) -> int:
        return len(self.data)

    @property
    def original_length(self) -> int:
        return len(self.data)


class PacketWriter(Protocol):
    def write_packet(self, packet: EncodedPacket) -> None: ...
