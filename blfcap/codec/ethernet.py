# MIT License
# blfcap/codec/ethernet.py - Ethernet records -> LINKTYPE_ETHERNET frames
from __future__ import annotations

import struct
from typing import Optional

from blfcap.core.packet import Direction, EncodedFrame, LinkType
from blfcap.core.records import EthernetFrame, EthernetFrameEx

MAX_FRAME_LEN = 1518
HEADER_LEN = 14
VLAN_TAG_LEN = 4
FCS_PRESENT_BIT = 3

_DIRECTIONS = {0: Direction.INBOUND, 1: Direction.OUTBOUND}


def direction_from_record(value: int) -> Optional[Direction]:
    return _DIRECTIONS.get(value)


def encode_ethernet_frame(obj: EthernetFrame) -> EncodedFrame:
    """
    ETHERNET_FRAME carries the header fields separately; rebuild
    dst(6) | src(6) | [tpid(2) tci(2)] | type(2) | payload.
    """
    eth = bytearray(MAX_FRAME_LEN)
    eth[0:6] = bytes(obj.destination_address[:6]).ljust(6, b"\x00")
    eth[6:12] = bytes(obj.source_address[:6]).ljust(6, b"\x00")

    header_len = HEADER_LEN
    if obj.tpid:
        header_len += VLAN_TAG_LEN
        struct.pack_into(">HH", eth, 12, obj.tpid & 0xFFFF, obj.tci & 0xFFFF)

    struct.pack_into(">H", eth, header_len - 2, obj.ether_type & 0xFFFF)

    payload = bytes(obj.payload[:MAX_FRAME_LEN - header_len])
    eth[header_len:header_len + len(payload)] = payload

    return EncodedFrame(
        LinkType.ETHERNET,
        bytes(eth[:header_len + len(payload)]),
        direction_from_record(obj.direction),
    )


def encode_ethernet_frame_ex(obj: EthernetFrameEx) -> EncodedFrame:
    """ETHERNET_FRAME_EX / ETHERNET_FRAME_FORWARDED: frame is already assembled."""
    eth = bytearray(obj.frame_data)
    if obj.flags & (1 << FCS_PRESENT_BIT):
        # appended exactly as stored in the record
        eth += bytes(obj.frame_checksum[:4])
    return EncodedFrame(LinkType.ETHERNET, bytes(eth), direction_from_record(obj.direction))
