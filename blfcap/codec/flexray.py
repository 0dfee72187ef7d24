# MIT License
# blfcap/codec/flexray.py - FlexRay records -> LINKTYPE_FLEXRAY measurement records
#
# Frame record layout:
#   [0]     measurement header: TI (bits 0..6, 1=frame 2=symbol), CH (bit 7, 1=channel B)
#   [1]     error flags
#   [2..6]  FlexRay frame header, 40 bits big-endian:
#             reserved|ppi|null|sync|startup (5) | frame id (11) | payload len (7)
#             | header crc (11) | cycle count (6)
#   [7..]   payload, 0..254 bytes
# Symbol record layout:
#   [0]     measurement header
#   [1]     symbol length
from __future__ import annotations

import struct
from enum import IntEnum
from typing import Optional

from blfcap.core.packet import EncodedFrame, LinkType
from blfcap.core.records import (
    FlexRayCycleStart,
    FlexRayData,
    FlexRayError,
    FlexRayMessage,
    FlexRayReceiveMsg,
    FlexRayReceiveMsgEx,
    FlexRayStartCycle,
    FlexRayStatus,
    FlexRaySync,
)

FRAME_HEADER_OFFSET = 2
FRAME_HEADER_LEN = 5
PAYLOAD_OFFSET = FRAME_HEADER_OFFSET + FRAME_HEADER_LEN  # 7
MAX_PAYLOAD_LEN = 254
FRAME_BUFFER_LEN = PAYLOAD_OFFSET + MAX_PAYLOAD_LEN  # 261
START_CYCLE_BUFFER_LEN = 19
SYMBOL_BUFFER_LEN = 2

CHANNEL_B_BIT = 0x80

# frame header indicator bits (the 5 bits above the frame id)
HF_STARTUP = 0x01
HF_SYNC = 0x02
HF_NOT_NULL = 0x04  # null frame indicator: set means "carries data"
HF_PREAMBLE = 0x08
HF_RESERVED = 0x10

# error flags byte
EF_CODING_ERROR = 0x02
EF_FCRC_ERROR = 0x10

# symbol-length location inside FR_STATUS data, per logging hardware tag
STATUS_TAG_BUSDOCTOR = 3
STATUS_TAG_VN_INTERFACE = 5


class FlexRayPacketType(IntEnum):
    FRAME = 1
    SYMBOL = 2


def _has(value: int, pos: int) -> bool:
    return bool(value & (1 << pos))


def measurement_header(packet_type: FlexRayPacketType, channel_mask: int = 0) -> int:
    header = int(packet_type) & 0x7F
    if channel_mask in (2, 3):
        header |= CHANNEL_B_BIT
    return header


def select_header_crc(channel_mask: int, crc1: int, crc2: int) -> int:
    if channel_mask == 1:
        return crc1
    if channel_mask in (2, 3):
        return crc2
    return 0


def header_flags_from_frame_state(frame_state: int) -> int:
    """V6 FLEXRAY_MESSAGE frame state bits."""
    flags = 0
    if _has(frame_state, 0):
        flags |= HF_PREAMBLE
    if _has(frame_state, 1):
        flags |= HF_SYNC
    if _has(frame_state, 2):
        flags |= HF_RESERVED
    if not _has(frame_state, 3):
        flags |= HF_NOT_NULL
    if _has(frame_state, 4):
        flags |= HF_STARTUP
    return flags


def header_flags_from_frame_flags(frame_flags: int) -> int:
    """FR_RCVMESSAGE(_EX) frame flag bits; numbered differently from frame state."""
    flags = 0
    if not _has(frame_flags, 0):
        flags |= HF_NOT_NULL
    if _has(frame_flags, 2):
        flags |= HF_SYNC
    if _has(frame_flags, 3):
        flags |= HF_STARTUP
    if _has(frame_flags, 4):
        flags |= HF_PREAMBLE
    if _has(frame_flags, 5):
        flags |= HF_RESERVED
    return flags


def header_value(
    header_flags: int,
    payload_length: int,
    cycle_count: int = 0,
    frame_id: int = 0,
    header_crc: int = 0,
) -> int:
    value = ((header_flags & 0x1F) << 35) | ((payload_length & 0x7F) << 17)
    # zero means "absent"; the wire format cannot tell the two apart
    if cycle_count:
        value |= cycle_count & 0x3F
    if frame_id:
        value |= (frame_id & 0x7FF) << 24
    if header_crc:
        value |= (header_crc & 0x7FF) << 6
    return value


def header_bytes(value: int) -> bytes:
    """Low 40 bits of the 64-bit header, network order."""
    return struct.pack(">Q", value & 0xFFFFFFFFFFFFFFFF)[3:]


def pack_header(
    header_flags: int,
    payload_length: int,
    cycle_count: int = 0,
    frame_id: int = 0,
    header_crc: int = 0,
) -> bytes:
    return header_bytes(header_value(header_flags, payload_length, cycle_count, frame_id, header_crc))


def _frame_record(
    *,
    buffer_len: Optional[int],
    payload: bytes,
    header_flags: int,
    channel_mask: int = 0,
    error_flags: int = 0,
    cycle_count: int = 0,
    frame_id: int = 0,
    header_crc: int = 0,
) -> bytes:
    # buffer_len=None -> sized by the payload (FR_RCVMESSAGE_EX)
    if buffer_len is not None:
        payload = payload[:buffer_len - PAYLOAD_OFFSET]
    payload = bytes(payload)

    out = bytearray(PAYLOAD_OFFSET + len(payload))
    out[0] = measurement_header(FlexRayPacketType.FRAME, channel_mask)
    out[1] = error_flags
    out[FRAME_HEADER_OFFSET:PAYLOAD_OFFSET] = pack_header(
        header_flags, len(payload) // 2, cycle_count, frame_id, header_crc
    )
    out[PAYLOAD_OFFSET:] = payload
    return bytes(out)


def encode_flexray_data(obj: FlexRayData) -> EncodedFrame:
    data = _frame_record(buffer_len=FRAME_BUFFER_LEN, payload=obj.data, header_flags=HF_NOT_NULL)
    return EncodedFrame(LinkType.FLEXRAY, data)


def encode_flexray_sync(obj: FlexRaySync) -> EncodedFrame:
    data = _frame_record(
        buffer_len=FRAME_BUFFER_LEN,
        payload=obj.data,
        header_flags=HF_NOT_NULL | HF_SYNC,
        cycle_count=obj.cycle,
        frame_id=obj.message_id,
        header_crc=obj.crc,
    )
    return EncodedFrame(LinkType.FLEXRAY, data)


def encode_flexray_cycle_start(obj: FlexRayCycleStart) -> EncodedFrame:
    data = _frame_record(buffer_len=FRAME_BUFFER_LEN, payload=obj.data, header_flags=HF_NOT_NULL)
    return EncodedFrame(LinkType.FLEXRAY, data)


def encode_flexray_message(obj: FlexRayMessage) -> EncodedFrame:
    data = _frame_record(
        buffer_len=FRAME_BUFFER_LEN,
        payload=obj.data,
        header_flags=header_flags_from_frame_state(obj.frame_state),
        cycle_count=obj.cycle,
        frame_id=obj.frame_id,
        header_crc=obj.header_crc,
    )
    return EncodedFrame(LinkType.FLEXRAY, data)


def encode_fr_error(obj: FlexRayError) -> EncodedFrame:
    data = _frame_record(
        buffer_len=PAYLOAD_OFFSET,
        payload=b"",
        header_flags=HF_NOT_NULL,
        channel_mask=obj.channel_mask,
        error_flags=EF_CODING_ERROR,
        cycle_count=obj.cycle,
    )
    return EncodedFrame(LinkType.FLEXRAY, data)


def encode_fr_status(obj: FlexRayStatus) -> EncodedFrame:
    symbol = bytearray(SYMBOL_BUFFER_LEN)
    symbol[0] = measurement_header(FlexRayPacketType.SYMBOL, obj.channel_mask)
    if obj.tag == STATUS_TAG_BUSDOCTOR and len(obj.data) > 1:
        symbol[1] = obj.data[1] & 0xFF
    elif obj.tag == STATUS_TAG_VN_INTERFACE and obj.data:
        symbol[1] = obj.data[0] & 0xFF
    return EncodedFrame(LinkType.FLEXRAY, bytes(symbol))


def encode_fr_start_cycle(obj: FlexRayStartCycle) -> EncodedFrame:
    data = _frame_record(
        buffer_len=START_CYCLE_BUFFER_LEN,
        payload=obj.data,
        header_flags=HF_NOT_NULL,
        channel_mask=obj.channel_mask,
        cycle_count=obj.cycle,
    )
    return EncodedFrame(LinkType.FLEXRAY, data)


def _receive_msg_record(obj: FlexRayReceiveMsg, buffer_len: Optional[int]) -> bytes:
    return _frame_record(
        buffer_len=buffer_len,
        payload=obj.data,
        header_flags=header_flags_from_frame_flags(obj.frame_flags),
        channel_mask=obj.channel_mask,
        error_flags=EF_FCRC_ERROR if _has(obj.frame_flags, 6) else 0,
        cycle_count=obj.cycle,
        frame_id=obj.frame_id,
        header_crc=select_header_crc(obj.channel_mask, obj.header_crc1, obj.header_crc2),
    )


def encode_fr_receive_msg(obj: FlexRayReceiveMsg) -> EncodedFrame:
    return EncodedFrame(LinkType.FLEXRAY, _receive_msg_record(obj, FRAME_BUFFER_LEN))


def encode_fr_receive_msg_ex(obj: FlexRayReceiveMsgEx) -> EncodedFrame:
    return EncodedFrame(LinkType.FLEXRAY, _receive_msg_record(obj, None))
