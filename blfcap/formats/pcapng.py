# MIT License
# blfcap/formats/pcapng.py - PCAPNG writer (SHB + IDB per interface + EPB)
from __future__ import annotations

import pathlib
import struct
from typing import BinaryIO, Dict, List, Optional, Tuple, Union

from blfcap import __version__
from blfcap.core.packet import Direction, EncodedPacket

BT_SHB = 0x0A0D0D0A
BT_IDB = 0x00000001
BT_EPB = 0x00000006
BYTE_ORDER_MAGIC = 0x1A2B3C4D

OPT_ENDOFOPT = 0
SHB_USERAPPL = 4
IF_NAME = 2
IF_TSRESOL = 9
EPB_FLAGS = 2

NANOS_PER_SEC = 1_000_000_000


def _pad4(data: bytes) -> bytes:
    return data + b"\x00" * (-len(data) % 4)


def _option(code: int, value: bytes) -> bytes:
    return struct.pack("<HH", code, len(value)) + _pad4(value)


def _options(opts: List[bytes]) -> bytes:
    if not opts:
        return b""
    return b"".join(opts) + struct.pack("<HH", OPT_ENDOFOPT, 0)


def _block(block_type: int, body: bytes) -> bytes:
    body = _pad4(body)
    total = len(body) + 12
    return struct.pack("<II", block_type, total) + body + struct.pack("<I", total)


def tsresol_exponent(ticks_per_second: int) -> int:
    """if_tsresol value for a decimal resolution (10**n ticks per second)."""
    exp = 0
    value = 1
    while value < ticks_per_second:
        value *= 10
        exp += 1
    if value != ticks_per_second or exp > 0x7F:
        raise ValueError(f"resolution {ticks_per_second} ticks/s is not a power of ten")
    return exp


class PcapngWriter:
    """
    Single-section PCAPNG file.
      - SHB written on open (little-endian, section length unknown)
      - one IDB per distinct (link type, name, resolution), written on first use
      - one EPB per packet; direction in epb_flags when known
    """

    def __init__(self, path: Union[str, pathlib.Path], *, snaplen: int = 0, emit_direction: bool = True):
        self.snaplen = snaplen
        self.emit_direction = emit_direction
        self._interfaces: Dict[Tuple[int, str, int], int] = {}
        self._fp: BinaryIO = open(path, "wb")
        self._fp.write(self._section_header())

    @staticmethod
    def _section_header() -> bytes:
        body = struct.pack("<IHHq", BYTE_ORDER_MAGIC, 1, 0, -1)
        body += _options([_option(SHB_USERAPPL, f"blfcap {__version__}".encode("utf-8"))])
        return _block(BT_SHB, body)

    def _interface_id(self, link_type: int, name: str, resolution: int) -> int:
        key = (int(link_type), name, resolution)
        iface = self._interfaces.get(key)
        if iface is not None:
            return iface

        opts = [_option(IF_NAME, name.encode("utf-8"))]
        opts.append(_option(IF_TSRESOL, bytes([tsresol_exponent(resolution)])))
        body = struct.pack("<HHI", int(link_type), 0, self.snaplen) + _options(opts)
        self._fp.write(_block(BT_IDB, body))

        iface = len(self._interfaces)
        self._interfaces[key] = iface
        return iface

    def write_packet(self, packet: EncodedPacket) -> None:
        iface = self._interface_id(packet.link_type, packet.interface_name, packet.timestamp_resolution)

        res = packet.timestamp_resolution
        ts = packet.seconds * res + packet.nanoseconds * res // NANOS_PER_SEC

        data = packet.data
        if self.snaplen and len(data) > self.snaplen:
            data = data[:self.snaplen]

        opts: List[bytes] = []
        direction: Optional[Direction] = packet.direction if self.emit_direction else None
        if direction is not None:
            opts.append(_option(EPB_FLAGS, struct.pack("<I", int(direction))))

        body = struct.pack(
            "<IIIII",
            iface,
            (ts >> 32) & 0xFFFFFFFF,
            ts & 0xFFFFFFFF,
            len(data),
            packet.original_length,
        )
        body += _pad4(data) + _options(opts)
        self._fp.write(_block(BT_EPB, body))

    @property
    def interface_count(self) -> int:
        return len(self._interfaces)

    def close(self) -> None:
        self._fp.flush()
        self._fp.close()

    def __enter__(self) -> "PcapngWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
