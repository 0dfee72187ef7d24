# MIT License
# blfcap/formats/blf.py - Vector BLF reader -> typed records
#
# File:       LOGG header (statistics incl. measurement start SYSTEMTIME), padded to header_size
# Objects:    LOBJ base header {signature, header_size, header_version, object_size, object_type}
#             + v1 {flags u32, client u16, version u16, timestamp u64}
#             | v2 {flags u32, ts_status u8, rsv u8, version u16, timestamp u64, orig ts u64}
#             + body; file-level objects padded to 4 bytes.
# Containers: LOG_CONTAINER {method u16, 6x, uncompressed size u32, 4x} + data
#             (method 0 = stored, 2 = zlib); inner objects may span containers.
from __future__ import annotations

import pathlib
import struct
import zlib
from typing import BinaryIO, Callable, Dict, Iterator, Union

from blfcap.core.records import (
    CanErrorFrame,
    CanErrorFrameExt,
    CanFdErrorFrame64,
    CanFdMessage,
    CanFdMessage64,
    CanMessage,
    CanMessage2,
    EthernetFrame,
    EthernetFrameEx,
    EthernetFrameForwarded,
    FlexRayCycleStart,
    FlexRayData,
    FlexRayError,
    FlexRayMessage,
    FlexRayReceiveMsg,
    FlexRayReceiveMsgEx,
    FlexRayStartCycle,
    FlexRayStatus,
    FlexRayStatusEvent,
    FlexRaySync,
    ObjectType,
    ReadFailure,
    SourceRecord,
    UnknownRecord,
)
from blfcap.core.timestamps import SystemTime

FILE_SIGNATURE = b"LOGG"
OBJ_SIGNATURE = b"LOBJ"

FILE_HEADER_STRUCT = struct.Struct("<4sLBBBBBBBBQQLL8H8H")
OBJ_HEADER_BASE_STRUCT = struct.Struct("<4sHHLL")
OBJ_HEADER_V1_STRUCT = struct.Struct("<LHHQ")
OBJ_HEADER_V2_STRUCT = struct.Struct("<LBBHQ8x")
LOG_CONTAINER_STRUCT = struct.Struct("<H6xL4x")

NO_COMPRESSION = 0
ZLIB_DEFLATE = 2

# bodies
CAN_MSG_STRUCT = struct.Struct("<HBBL8s")
CAN_MSG2_EXTRA_STRUCT = struct.Struct("<LBB2x")
CAN_ERROR_STRUCT = struct.Struct("<HH")
CAN_ERROR_EXT_STRUCT = struct.Struct("<HHLBBBxLL")
CAN_FD_MSG_STRUCT = struct.Struct("<HBBLLBBB5x64s")
CAN_FD_MSG_64_STRUCT = struct.Struct("<BBBBLLLLLLLHBBL")
CAN_FD_ERROR_64_STRUCT = struct.Struct("<BB")
ETHERNET_FRAME_STRUCT = struct.Struct("<6sH6sHHHHH8x")
ETHERNET_FRAME_EX_STRUCT = struct.Struct("<HHHHQ4sHHL4x")
FLEXRAY_DATA_STRUCT = struct.Struct("<HBBHHBx2x12s")
FLEXRAY_SYNC_STRUCT = struct.Struct("<HBBHHBx2x11sB")
FLEXRAY_V6_START_CYCLE_STRUCT = struct.Struct("<HBBLLLL2s2x")
FLEXRAY_V6_MESSAGE_STRUCT = struct.Struct("<HBBLLLLHHHBBBx2x64s")
FR_ERROR_STRUCT = struct.Struct("<HHHBxLLL4L4x")
FR_STATUS_STRUCT = struct.Struct("<HHHBxLLLLL2L")
FR_START_CYCLE_STRUCT = struct.Struct("<HHHBBLLH12s")
FR_RCV_MSG_STRUCT = struct.Struct("<HHHHLLHHHHHHLLLL254s")
FR_RCV_MSG_EX_STRUCT = struct.Struct("<HHHHLLHHHHHHLLLLLLHHH26x104x")


class BlfFormatError(Exception):
    """The input is not a BLF file (bad signature or short file header)."""


class _ObjectError(Exception):
    """One object could not be decoded; ends the stream."""


Decoder = Callable[[int, int, bytes], SourceRecord]


def _unpack(st: struct.Struct, body: bytes, offset: int = 0) -> tuple:
    try:
        return st.unpack_from(body, offset)
    except struct.error as e:
        raise _ObjectError(f"object body too short ({len(body)} B)") from e


# ---------- CAN ----------

def _can_message(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, flags, dlc, can_id, data = _unpack(CAN_MSG_STRUCT, body)
    return CanMessage(channel, ts, res, flags=flags, dlc=dlc, arbitration_id=can_id, data=data)


def _can_message2(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, flags, dlc, can_id, data = _unpack(CAN_MSG_STRUCT, body)
    frame_length, bit_count = _unpack(CAN_MSG2_EXTRA_STRUCT, body, CAN_MSG_STRUCT.size)
    return CanMessage2(channel, ts, res, flags=flags, dlc=dlc, arbitration_id=can_id, data=data,
                       frame_length=frame_length, bit_count=bit_count)


def _can_error(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, length = _unpack(CAN_ERROR_STRUCT, body)
    return CanErrorFrame(channel, ts, res, length=length)


def _can_error_ext(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, length, flags, ecc, position, _dlc, _frame_ns, can_id = _unpack(CAN_ERROR_EXT_STRUCT, body)
    return CanErrorFrameExt(channel, ts, res, length=length, error_flags=flags, ecc=ecc,
                            position=position, arbitration_id=can_id)


def _can_fd_message(ts: int, res: int, body: bytes) -> SourceRecord:
    (channel, flags, dlc, can_id, _frame_length, _bit_count,
     fd_flags, valid_bytes, data) = _unpack(CAN_FD_MSG_STRUCT, body)
    return CanFdMessage(channel, ts, res, flags=flags, dlc=dlc, arbitration_id=can_id,
                        fd_flags=fd_flags, valid_data_bytes=valid_bytes, data=data)


def _can_fd_message_64(ts: int, res: int, body: bytes) -> SourceRecord:
    (channel, dlc, valid_bytes, _tx_count, can_id, _frame_length, flags, _btr_arb, _btr_data,
     _brs_ns, _crc_del_ns, _bit_count, _dir, _ext_offset, crc) = _unpack(CAN_FD_MSG_64_STRUCT, body)
    start = CAN_FD_MSG_64_STRUCT.size
    data = body[start:start + valid_bytes]
    return CanFdMessage64(channel, ts, res, flags=flags, dlc=dlc, arbitration_id=can_id,
                          valid_data_bytes=valid_bytes, crc=crc, data=data)


def _can_fd_error_64(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, dlc = _unpack(CAN_FD_ERROR_64_STRUCT, body)
    return CanFdErrorFrame64(channel, ts, res, dlc=dlc)


# ---------- Ethernet ----------

def _ethernet_frame(ts: int, res: int, body: bytes) -> SourceRecord:
    src, channel, dst, direction, ether_type, tpid, tci, length = _unpack(ETHERNET_FRAME_STRUCT, body)
    start = ETHERNET_FRAME_STRUCT.size
    return EthernetFrame(channel, ts, res, source_address=src, destination_address=dst,
                         direction=direction, ether_type=ether_type, tpid=tpid, tci=tci,
                         payload=body[start:start + length])


def _ethernet_frame_ex_fields(body: bytes) -> dict:
    (_struct_len, flags, channel, hw_channel, _duration, checksum,
     direction, frame_length, _handle) = _unpack(ETHERNET_FRAME_EX_STRUCT, body)
    start = ETHERNET_FRAME_EX_STRUCT.size
    return dict(channel=channel, flags=flags, hardware_channel=hw_channel, frame_checksum=checksum,
                direction=direction, frame_data=body[start:start + frame_length])


def _ethernet_frame_ex(ts: int, res: int, body: bytes) -> SourceRecord:
    return EthernetFrameEx(timestamp=ts, resolution=res, **_ethernet_frame_ex_fields(body))


def _ethernet_frame_forwarded(ts: int, res: int, body: bytes) -> SourceRecord:
    return EthernetFrameForwarded(timestamp=ts, resolution=res, **_ethernet_frame_ex_fields(body))


# ---------- FlexRay ----------
# Fixed-size data arrays are cut to the valid byte count when the object has one.

def _flexray_data(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, mux, length, msg_id, crc, direction, data = _unpack(FLEXRAY_DATA_STRUCT, body)
    return FlexRayData(channel, ts, res, mux=mux, length=length, message_id=msg_id, crc=crc,
                       direction=direction, data=data[:length])


def _flexray_sync(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, mux, length, msg_id, crc, direction, data, cycle = _unpack(FLEXRAY_SYNC_STRUCT, body)
    return FlexRaySync(channel, ts, res, mux=mux, length=length, message_id=msg_id, crc=crc,
                       direction=direction, data=data[:length], cycle=cycle)


def _flexray_cycle(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, direction, _low, _tick, _overflow, _client, cluster_time, data = _unpack(
        FLEXRAY_V6_START_CYCLE_STRUCT, body)
    return FlexRayCycleStart(channel, ts, res, direction=direction, cluster_time=cluster_time, data=data)


def _flexray_message(ts: int, res: int, body: bytes) -> SourceRecord:
    (channel, direction, _low, _tick, _overflow, _client, _cluster_time, frame_id, header_crc,
     frame_state, length, cycle, _bitmask, data) = _unpack(FLEXRAY_V6_MESSAGE_STRUCT, body)
    return FlexRayMessage(channel, ts, res, direction=direction, frame_id=frame_id,
                          header_crc=header_crc, frame_state=frame_state, cycle=cycle,
                          data=data[:length])


def _flexray_status(ts: int, res: int, body: bytes) -> SourceRecord:
    channel = _unpack(struct.Struct("<H"), body)[0]
    return FlexRayStatusEvent(channel, ts, res, raw=bytes(body))


def _fr_error(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, _version, mask, cycle, _client, _cluster, tag, *data = _unpack(FR_ERROR_STRUCT, body)
    return FlexRayError(channel, ts, res, channel_mask=mask, cycle=cycle, tag=tag, data=tuple(data))


def _fr_status(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, _version, mask, cycle, _client, _cluster, _wus, _sync, tag, *data = _unpack(
        FR_STATUS_STRUCT, body)
    return FlexRayStatus(channel, ts, res, channel_mask=mask, cycle=cycle, tag=tag, data=tuple(data))


def _fr_start_cycle(ts: int, res: int, body: bytes) -> SourceRecord:
    channel, _version, mask, direction, cycle, _client, _cluster, _nm_size, data = _unpack(
        FR_START_CYCLE_STRUCT, body)
    return FlexRayStartCycle(channel, ts, res, channel_mask=mask, direction=direction, cycle=cycle,
                             data=data)


def _fr_rcv_msg(ts: int, res: int, body: bytes) -> SourceRecord:
    (channel, _version, mask, direction, _client, _cluster, frame_id, crc1, crc2, byte_count,
     _data_count, cycle, _tag, _data, frame_flags, _app, data) = _unpack(FR_RCV_MSG_STRUCT, body)
    return FlexRayReceiveMsg(channel, ts, res, channel_mask=mask, direction=direction,
                             frame_id=frame_id, header_crc1=crc1, header_crc2=crc2,
                             byte_count=byte_count, cycle=cycle, frame_flags=frame_flags,
                             data=data[:byte_count])


def _fr_rcv_msg_ex(ts: int, res: int, body: bytes) -> SourceRecord:
    (channel, _version, mask, direction, _client, _cluster, frame_id, crc1, crc2, byte_count,
     data_count, cycle, _tag, _data, frame_flags, _app, frame_crc, _frame_ns, _frame_id1,
     _pdu_offset, _log_mask) = _unpack(FR_RCV_MSG_EX_STRUCT, body)
    start = FR_RCV_MSG_EX_STRUCT.size
    return FlexRayReceiveMsgEx(channel, ts, res, channel_mask=mask, direction=direction,
                               frame_id=frame_id, header_crc1=crc1, header_crc2=crc2,
                               byte_count=byte_count, cycle=cycle, frame_flags=frame_flags,
                               data=body[start:start + data_count], frame_crc=frame_crc)


DECODERS: Dict[int, Decoder] = {
    ObjectType.CAN_MESSAGE: _can_message,
    ObjectType.CAN_MESSAGE2: _can_message2,
    ObjectType.CAN_ERROR: _can_error,
    ObjectType.CAN_ERROR_EXT: _can_error_ext,
    ObjectType.CAN_FD_MESSAGE: _can_fd_message,
    ObjectType.CAN_FD_MESSAGE_64: _can_fd_message_64,
    ObjectType.CAN_FD_ERROR_64: _can_fd_error_64,
    ObjectType.ETHERNET_FRAME: _ethernet_frame,
    ObjectType.ETHERNET_FRAME_EX: _ethernet_frame_ex,
    ObjectType.ETHERNET_FRAME_FORWARDED: _ethernet_frame_forwarded,
    ObjectType.FLEXRAY_DATA: _flexray_data,
    ObjectType.FLEXRAY_SYNC: _flexray_sync,
    ObjectType.FLEXRAY_CYCLE: _flexray_cycle,
    ObjectType.FLEXRAY_MESSAGE: _flexray_message,
    ObjectType.FLEXRAY_STATUS: _flexray_status,
    ObjectType.FR_ERROR: _fr_error,
    ObjectType.FR_STATUS: _fr_status,
    ObjectType.FR_STARTCYCLE: _fr_start_cycle,
    ObjectType.FR_RCVMESSAGE: _fr_rcv_msg,
    ObjectType.FR_RCVMESSAGE_EX: _fr_rcv_msg_ex,
}


def decode_object(obj: bytes) -> SourceRecord:
    """One complete LOBJ (base header included) -> record."""
    _sig, header_size, header_version, obj_size, obj_type = _unpack(OBJ_HEADER_BASE_STRUCT, obj)
    base = OBJ_HEADER_BASE_STRUCT.size
    if header_version == 1:
        flags, _client, _version, timestamp = _unpack(OBJ_HEADER_V1_STRUCT, obj, base)
    elif header_version == 2:
        flags, _status, _rsv, _version, timestamp = _unpack(OBJ_HEADER_V2_STRUCT, obj, base)
    else:
        return UnknownRecord(0, 0, 0, type_id=obj_type)

    decoder = DECODERS.get(obj_type)
    if decoder is None:
        return UnknownRecord(0, timestamp, flags, type_id=obj_type)
    return decoder(timestamp, flags, obj[header_size:obj_size])


class BlfReader:
    """
    Sequential BLF reader.
      start_time : measurement start (SystemTime)
      records()  : yields SourceRecord, ending with at most one ReadFailure
    """

    def __init__(self, path: Union[str, pathlib.Path]):
        self.path = pathlib.Path(path)
        self._fp: BinaryIO = open(self.path, "rb")
        try:
            self._read_file_header()
        except Exception:
            self._fp.close()
            raise
        self._tail = b""

    def _read_file_header(self) -> None:
        raw = self._fp.read(FILE_HEADER_STRUCT.size)
        if len(raw) < FILE_HEADER_STRUCT.size:
            raise BlfFormatError(f"{self.path}: file header truncated")
        fields = FILE_HEADER_STRUCT.unpack(raw)
        if fields[0] != FILE_SIGNATURE:
            raise BlfFormatError(f"{self.path}: unexpected signature {fields[0]!r}")
        header_size = fields[1]
        self.application_id = fields[2]
        self.file_size = fields[10]
        self.uncompressed_size = fields[11]
        self.object_count = fields[12]
        self.start_time = SystemTime(*fields[14:22])
        self.stop_time = SystemTime(*fields[22:30])
        self._fp.seek(max(header_size, FILE_HEADER_STRUCT.size))

    # ---------- iteration ----------

    def records(self) -> Iterator[Union[SourceRecord, ReadFailure]]:
        while True:
            offset = self._fp.tell()
            base = self._fp.read(OBJ_HEADER_BASE_STRUCT.size)
            if not base:
                break
            if len(base) < OBJ_HEADER_BASE_STRUCT.size:
                yield ReadFailure("truncated object header", recoverable=True, offset=offset)
                return
            signature, _hsize, _hver, obj_size, obj_type = OBJ_HEADER_BASE_STRUCT.unpack(base)
            if signature != OBJ_SIGNATURE:
                yield ReadFailure(f"bad object signature {signature!r}", recoverable=False, offset=offset)
                return
            rest = self._fp.read(max(0, obj_size - OBJ_HEADER_BASE_STRUCT.size))
            if len(base) + len(rest) < obj_size:
                yield ReadFailure("truncated object", recoverable=True, offset=offset)
                return
            # file-level padding
            self._fp.read(obj_size % 4)

            obj = base + rest
            if obj_type == ObjectType.LOG_CONTAINER:
                failure = yield from self._read_container(obj, offset)
            else:
                failure = yield from self._decode_one(obj, offset)
            if failure is not None:
                yield failure
                return

        if self._tail.find(OBJ_SIGNATURE) >= 0:
            yield ReadFailure("object cut short at end of file", recoverable=True, offset=self._fp.tell())

    def _decode_one(self, obj: bytes, offset: int):
        try:
            record = decode_object(obj)
        except _ObjectError as e:
            return ReadFailure(str(e), recoverable=True, offset=offset)
        yield record
        return None

    def _read_container(self, obj: bytes, offset: int):
        try:
            method, _size = LOG_CONTAINER_STRUCT.unpack_from(obj, OBJ_HEADER_BASE_STRUCT.size)
        except struct.error:
            return ReadFailure("truncated log container", recoverable=True, offset=offset)
        payload = obj[OBJ_HEADER_BASE_STRUCT.size + LOG_CONTAINER_STRUCT.size:]
        if method == ZLIB_DEFLATE:
            try:
                payload = zlib.decompress(payload)
            except zlib.error as e:
                return ReadFailure(f"corrupt compressed block: {e}", recoverable=True, offset=offset)
        elif method != NO_COMPRESSION:
            return ReadFailure(f"unknown compression method {method}", recoverable=False, offset=offset)

        data = self._tail + payload
        pos = 0
        while True:
            # inner objects may be preceded by up to 4 bytes of padding
            found = data.find(OBJ_SIGNATURE, pos, pos + 8)
            if found < 0:
                if pos + 8 <= len(data):
                    return ReadFailure("could not find next object", recoverable=False, offset=offset)
                break
            pos = found
            if pos + OBJ_HEADER_BASE_STRUCT.size > len(data):
                break
            obj_size = OBJ_HEADER_BASE_STRUCT.unpack_from(data, pos)[3]
            if obj_size < OBJ_HEADER_BASE_STRUCT.size:
                return ReadFailure(f"invalid object size {obj_size}", recoverable=False, offset=offset)
            if pos + obj_size > len(data):
                # continues in the next container
                break
            failure = yield from self._decode_one(data[pos:pos + obj_size], offset)
            if failure is not None:
                return failure
            pos += obj_size
        self._tail = data[pos:]
        return None

    # ---------- lifecycle ----------

    def close(self) -> None:
        self._fp.close()

    def __enter__(self) -> "BlfReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
