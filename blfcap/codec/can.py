# MIT License
# blfcap/codec/can.py - CAN / CAN-FD records -> LINKTYPE_CAN_SOCKETCAN frames
#
# SocketCAN layout (72 B scratch):
#   [0..3]  can_id, big-endian; bit31 EFF, bit30 RTR, bit29 ERR, 29-bit id below
#   [4]     len
#   [5]     FD flags: bit0 BRS, bit1 ESI
#   [6..7]  reserved
#   [8..]   data (up to 64 B)
from __future__ import annotations

import struct
from typing import Union

from blfcap.core.packet import Direction, EncodedFrame, LinkType
from blfcap.core.records import (
    CanErrorFrame,
    CanFdErrorFrame64,
    CanFdMessage,
    CanFdMessage64,
    CanMessage,
)

HEADER_LEN = 8
MAX_DATA_LEN = 64
ERROR_FRAME_LEN = 8

CAN_ID_MASK = 0x1FFFFFFF
CAN_EFF_FLAG = 0x80000000

_EXT = 0x80
_RTR = 0x40
_ERR = 0x20
_BRS = 0x01
_ESI = 0x02


def _has(value: int, pos: int) -> bool:
    return bool(value & (1 << pos))


class CanFrame:
    def __init__(self) -> None:
        self.raw = bytearray(HEADER_LEN + MAX_DATA_LEN)

    def _set_bit(self, offset: int, mask: int, on: bool) -> None:
        if on:
            self.raw[offset] |= mask
        else:
            self.raw[offset] &= ~mask & 0xFF

    @property
    def id(self) -> int:
        return struct.unpack_from(">I", self.raw, 0)[0] & CAN_ID_MASK

    @id.setter
    def id(self, value: int) -> None:
        # keep EXT/RTR/ERR already set in the top byte
        flags = self.raw[0] & 0xE0
        struct.pack_into(">I", self.raw, 0, value & 0xFFFFFFFF)
        self.raw[0] |= flags

    @property
    def ext(self) -> bool:
        return bool(self.raw[0] & _EXT)

    @ext.setter
    def ext(self, value: bool) -> None:
        self._set_bit(0, _EXT, value)

    @property
    def rtr(self) -> bool:
        return bool(self.raw[0] & _RTR)

    @rtr.setter
    def rtr(self, value: bool) -> None:
        self._set_bit(0, _RTR, value)

    @property
    def err(self) -> bool:
        return bool(self.raw[0] & _ERR)

    @err.setter
    def err(self, value: bool) -> None:
        self._set_bit(0, _ERR, value)

    @property
    def brs(self) -> bool:
        return bool(self.raw[5] & _BRS)

    @brs.setter
    def brs(self, value: bool) -> None:
        self._set_bit(5, _BRS, value)

    @property
    def esi(self) -> bool:
        return bool(self.raw[5] & _ESI)

    @esi.setter
    def esi(self, value: bool) -> None:
        self._set_bit(5, _ESI, value)

    @property
    def length(self) -> int:
        return self.raw[4]

    @length.setter
    def length(self, value: int) -> None:
        # never claim more than the 64 data bytes the frame can carry
        self.raw[4] = max(0, min(value, MAX_DATA_LEN))

    @property
    def data(self) -> bytes:
        return bytes(self.raw[HEADER_LEN:HEADER_LEN + self.length])

    @data.setter
    def data(self, value: bytes) -> None:
        chunk = bytes(value[:MAX_DATA_LEN])
        self.raw[HEADER_LEN:HEADER_LEN + len(chunk)] = chunk

    @property
    def size(self) -> int:
        return self.length + HEADER_LEN

    def to_bytes(self) -> bytes:
        return bytes(self.raw[:self.size])


def _set_identifier(can: CanFrame, arbitration_id: int) -> None:
    can.id = arbitration_id & CAN_ID_MASK
    can.ext = bool(arbitration_id & CAN_EFF_FLAG)


def encode_can_message(obj: CanMessage) -> EncodedFrame:
    """CAN_MESSAGE and CAN_MESSAGE2."""
    can = CanFrame()
    _set_identifier(can, obj.arbitration_id)
    can.rtr = _has(obj.flags, 7)
    can.length = obj.dlc
    can.data = obj.data

    direction = Direction.OUTBOUND if _has(obj.flags, 0) else Direction.INBOUND
    return EncodedFrame(LinkType.CAN_SOCKETCAN, can.to_bytes(), direction)


def encode_can_error(obj: Union[CanErrorFrame, CanFdErrorFrame64]) -> EncodedFrame:
    """CAN_ERROR, CAN_ERROR_EXT and CAN_FD_ERROR_64 all map to the same error frame."""
    can = CanFrame()
    can.err = True
    can.length = ERROR_FRAME_LEN
    return EncodedFrame(LinkType.CAN_SOCKETCAN, can.to_bytes())


def encode_can_fd_message(obj: CanFdMessage) -> EncodedFrame:
    can = CanFrame()
    _set_identifier(can, obj.arbitration_id)
    can.rtr = _has(obj.flags, 7)
    can.esi = _has(obj.fd_flags, 2)
    can.brs = _has(obj.fd_flags, 1)
    can.length = obj.valid_data_bytes
    can.data = obj.data

    direction = Direction.OUTBOUND if _has(obj.flags, 0) else Direction.INBOUND
    return EncodedFrame(LinkType.CAN_SOCKETCAN, can.to_bytes(), direction)


def encode_can_fd_message_64(obj: CanFdMessage64) -> EncodedFrame:
    can = CanFrame()
    _set_identifier(can, obj.arbitration_id)
    can.rtr = _has(obj.flags, 4)
    can.esi = _has(obj.flags, 14)
    can.brs = _has(obj.flags, 13)
    can.length = obj.valid_data_bytes
    can.data = obj.data
    # TODO: obj.crc has no slot in the SocketCAN header; emit it once a pcapng
    # option for the CAN-FD CRC is agreed on.

    tx = _has(obj.flags, 6) or _has(obj.flags, 7)
    direction = Direction.OUTBOUND if tx else Direction.INBOUND
    return EncodedFrame(LinkType.CAN_SOCKETCAN, can.to_bytes(), direction)
