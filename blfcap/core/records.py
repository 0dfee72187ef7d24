# MIT License
# blfcap/core/records.py - typed bus records produced by the BLF reader
#
# One frozen dataclass per BLF object kind we understand. Field names follow
# the BLF object layout loosely; only what the encoders need is kept, plus the
# few fields the reader has to carry for completeness (e.g. the CAN-FD 64 crc).
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Tuple


class ObjectType(IntEnum):
    CAN_MESSAGE = 1
    CAN_ERROR = 2
    LOG_CONTAINER = 10
    FLEXRAY_DATA = 29
    FLEXRAY_SYNC = 30
    FLEXRAY_CYCLE = 40
    FLEXRAY_MESSAGE = 41
    FLEXRAY_STATUS = 45
    FR_ERROR = 47
    FR_STATUS = 48
    FR_STARTCYCLE = 49
    FR_RCVMESSAGE = 50
    FR_RCVMESSAGE_EX = 66
    ETHERNET_FRAME = 71
    CAN_ERROR_EXT = 73
    CAN_MESSAGE2 = 86
    CAN_FD_MESSAGE = 100
    CAN_FD_MESSAGE_64 = 101
    CAN_FD_ERROR_64 = 104
    ETHERNET_FRAME_EX = 120
    ETHERNET_FRAME_FORWARDED = 121


@dataclass(frozen=True)
class SourceRecord:
    """Common object header: channel, raw timestamp ticks, resolution tag."""

    channel: int
    timestamp: int
    resolution: int

    object_type: ClassVar[int] = 0


@dataclass(frozen=True)
class UnknownRecord(SourceRecord):
    type_id: int = 0


@dataclass(frozen=True)
class ReadFailure:
    """A reader problem surfaced in-band; recoverable ones end the stream quietly."""

    reason: str
    recoverable: bool = True
    offset: int = 0


# ---------- CAN ----------

@dataclass(frozen=True)
class CanMessage(SourceRecord):
    # arbitration_id keeps the BLF layout: bit 31 = extended id
    flags: int = 0
    dlc: int = 0
    arbitration_id: int = 0
    data: bytes = b""

    object_type: ClassVar[int] = ObjectType.CAN_MESSAGE


@dataclass(frozen=True)
class CanMessage2(CanMessage):
    frame_length: int = 0
    bit_count: int = 0

    object_type: ClassVar[int] = ObjectType.CAN_MESSAGE2


@dataclass(frozen=True)
class CanErrorFrame(SourceRecord):
    length: int = 0

    object_type: ClassVar[int] = ObjectType.CAN_ERROR


@dataclass(frozen=True)
class CanErrorFrameExt(CanErrorFrame):
    error_flags: int = 0
    ecc: int = 0
    position: int = 0
    arbitration_id: int = 0

    object_type: ClassVar[int] = ObjectType.CAN_ERROR_EXT


@dataclass(frozen=True)
class CanFdErrorFrame64(SourceRecord):
    dlc: int = 0

    object_type: ClassVar[int] = ObjectType.CAN_FD_ERROR_64


@dataclass(frozen=True)
class CanFdMessage(SourceRecord):
    flags: int = 0
    dlc: int = 0
    arbitration_id: int = 0
    fd_flags: int = 0
    valid_data_bytes: int = 0
    data: bytes = b""

    object_type: ClassVar[int] = ObjectType.CAN_FD_MESSAGE


@dataclass(frozen=True)
class CanFdMessage64(SourceRecord):
    # single combined flag word: bit4 RTR, bit6/7 tx, bit13 BRS, bit14 ESI
    flags: int = 0
    dlc: int = 0
    arbitration_id: int = 0
    valid_data_bytes: int = 0
    crc: int = 0
    data: bytes = b""

    object_type: ClassVar[int] = ObjectType.CAN_FD_MESSAGE_64


# ---------- Ethernet ----------

@dataclass(frozen=True)
class EthernetFrame(SourceRecord):
    source_address: bytes = b"\x00" * 6
    destination_address: bytes = b"\x00" * 6
    direction: int = 0
    ether_type: int = 0
    tpid: int = 0
    tci: int = 0
    payload: bytes = b""

    object_type: ClassVar[int] = ObjectType.ETHERNET_FRAME


@dataclass(frozen=True)
class EthernetFrameEx(SourceRecord):
    # frame_checksum is kept as the four bytes found in the file
    flags: int = 0
    hardware_channel: int = 0
    frame_checksum: bytes = b"\x00" * 4
    direction: int = 0
    frame_data: bytes = b""

    object_type: ClassVar[int] = ObjectType.ETHERNET_FRAME_EX


@dataclass(frozen=True)
class EthernetFrameForwarded(EthernetFrameEx):
    object_type: ClassVar[int] = ObjectType.ETHERNET_FRAME_FORWARDED


# ---------- FlexRay ----------

@dataclass(frozen=True)
class FlexRayData(SourceRecord):
    mux: int = 0
    length: int = 0
    message_id: int = 0
    crc: int = 0
    direction: int = 0
    data: bytes = b""

    object_type: ClassVar[int] = ObjectType.FLEXRAY_DATA


@dataclass(frozen=True)
class FlexRaySync(FlexRayData):
    cycle: int = 0

    object_type: ClassVar[int] = ObjectType.FLEXRAY_SYNC


@dataclass(frozen=True)
class FlexRayCycleStart(SourceRecord):
    """Legacy (V6) start-of-cycle event."""

    direction: int = 0
    cluster_time: int = 0
    data: bytes = b""

    object_type: ClassVar[int] = ObjectType.FLEXRAY_CYCLE


@dataclass(frozen=True)
class FlexRayMessage(SourceRecord):
    """Legacy (V6) message; frame_state uses the V6 bit numbering."""

    direction: int = 0
    frame_id: int = 0
    header_crc: int = 0
    frame_state: int = 0
    cycle: int = 0
    data: bytes = b""

    object_type: ClassVar[int] = ObjectType.FLEXRAY_MESSAGE


@dataclass(frozen=True)
class FlexRayStatusEvent(SourceRecord):
    """FLEXRAY_STATUS: decoded for completeness, never encoded."""

    raw: bytes = b""

    object_type: ClassVar[int] = ObjectType.FLEXRAY_STATUS


@dataclass(frozen=True)
class FlexRayError(SourceRecord):
    channel_mask: int = 0
    cycle: int = 0
    tag: int = 0
    data: Tuple[int, ...] = (0, 0, 0, 0)

    object_type: ClassVar[int] = ObjectType.FR_ERROR


@dataclass(frozen=True)
class FlexRayStatus(SourceRecord):
    channel_mask: int = 0
    cycle: int = 0
    tag: int = 0
    data: Tuple[int, ...] = (0, 0)

    object_type: ClassVar[int] = ObjectType.FR_STATUS


@dataclass(frozen=True)
class FlexRayStartCycle(SourceRecord):
    channel_mask: int = 0
    direction: int = 0
    cycle: int = 0
    data: bytes = b""

    object_type: ClassVar[int] = ObjectType.FR_STARTCYCLE


@dataclass(frozen=True)
class FlexRayReceiveMsg(SourceRecord):
    channel_mask: int = 0
    direction: int = 0
    frame_id: int = 0
    header_crc1: int = 0
    header_crc2: int = 0
    byte_count: int = 0
    cycle: int = 0
    frame_flags: int = 0
    data: bytes = b""

    object_type: ClassVar[int] = ObjectType.FR_RCVMESSAGE


@dataclass(frozen=True)
class FlexRayReceiveMsgEx(FlexRayReceiveMsg):
    frame_crc: int = 0

    object_type: ClassVar[int] = ObjectType.FR_RCVMESSAGE_EX
