# tests/formats/test_blf_reader.py
# MIT License
from __future__ import annotations

from pathlib import Path

import pytest

from blfcap.core.records import (
    CanErrorFrame,
    CanFdMessage64,
    CanMessage,
    EthernetFrame,
    EthernetFrameEx,
    FlexRayReceiveMsg,
    ObjectType,
    ReadFailure,
    UnknownRecord,
)
from blfcap.formats.blf import BlfFormatError, BlfReader
from blfcap.tests.blf_builder import (
    START,
    blf_file,
    can_error,
    can_fd_message_64,
    can_message,
    concat,
    container,
    ethernet_frame,
    ethernet_frame_ex,
    fr_rcv_msg,
    obj,
    padded,
)


def _read(tmp_path: Path, raw: bytes) -> list:
    path = tmp_path / "in.blf"
    path.write_bytes(raw)
    with BlfReader(path) as reader:
        return list(reader.records())


def _can(ts: int, can_id: int = 0x123) -> bytes:
    return obj(ObjectType.CAN_MESSAGE, can_message(can_id=can_id, data=bytes(range(8))), timestamp=ts)


def test_file_header_statistics(tmp_path):
    path = tmp_path / "in.blf"
    path.write_bytes(blf_file())
    with BlfReader(path) as reader:
        assert reader.start_time == START
        assert reader.start_time.milliseconds == 250
        assert list(reader.records()) == []


def test_not_a_blf_file(tmp_path):
    path = tmp_path / "in.blf"
    path.write_bytes(b"PK\x03\x04" + b"\x00" * 200)
    with pytest.raises(BlfFormatError):
        BlfReader(path)


def test_short_file_header(tmp_path):
    path = tmp_path / "in.blf"
    path.write_bytes(b"LOGG\x90\x00")
    with pytest.raises(BlfFormatError, match="truncated"):
        BlfReader(path)


def test_plain_objects(tmp_path):
    items = _read(tmp_path, blf_file(padded(_can(123)), padded(_can(456, can_id=0x80000042))))

    assert [type(i) for i in items] == [CanMessage, CanMessage]
    first, second = items
    assert (first.channel, first.timestamp, first.resolution) == (1, 123, 2)
    assert first.arbitration_id == 0x123
    assert first.data == bytes(range(8))
    assert second.arbitration_id == 0x80000042


def test_zlib_container(tmp_path):
    inner = concat([padded(_can(1)), padded(_can(2)), padded(_can(3))])
    items = _read(tmp_path, blf_file(container(inner)))
    assert [i.timestamp for i in items] == [1, 2, 3]


def test_stored_container(tmp_path):
    items = _read(tmp_path, blf_file(container(padded(_can(9)), compress=False)))
    assert len(items) == 1
    assert items[0].timestamp == 9


def test_object_split_across_containers(tmp_path):
    inner = concat([padded(_can(1)), padded(_can(2))])
    cut = len(inner) - 20
    items = _read(tmp_path, blf_file(container(inner[:cut]), container(inner[cut:])))
    assert [i.timestamp for i in items] == [1, 2]
    assert all(isinstance(i, CanMessage) for i in items)


def test_plain_and_container_objects_mix(tmp_path):
    raw = blf_file(padded(_can(1)), container(padded(_can(2))), padded(_can(3)))
    assert [i.timestamp for i in _read(tmp_path, raw)] == [1, 2, 3]


def test_truncated_object_is_recoverable(tmp_path):
    items = _read(tmp_path, blf_file(padded(_can(1)), _can(2)[:20]))
    assert isinstance(items[0], CanMessage)
    failure = items[-1]
    assert isinstance(failure, ReadFailure)
    assert failure.recoverable
    assert len(items) == 2


def test_bad_signature_is_not_recoverable(tmp_path):
    broken = b"JUNK" + _can(2)[4:]
    items = _read(tmp_path, blf_file(padded(_can(1)), padded(broken), padded(_can(3))))
    assert len(items) == 2
    assert isinstance(items[1], ReadFailure)
    assert not items[1].recoverable
    assert items[1].offset == 144 + 48


def test_container_cut_at_end_of_file(tmp_path):
    inner = padded(_can(1))
    items = _read(tmp_path, blf_file(container(inner[:30])))
    assert len(items) == 1
    assert isinstance(items[0], ReadFailure)
    assert items[0].recoverable


def test_short_body_is_reported(tmp_path):
    items = _read(tmp_path, blf_file(padded(obj(ObjectType.CAN_MESSAGE, b"\x01\x00")), padded(_can(5))))
    assert len(items) == 1
    assert isinstance(items[0], ReadFailure)
    assert "too short" in items[0].reason


def test_unknown_type_passes_through(tmp_path):
    items = _read(tmp_path, blf_file(padded(obj(999, b"\x00" * 8, timestamp=4)), padded(_can(5))))
    unknown, can = items
    assert isinstance(unknown, UnknownRecord)
    assert unknown.type_id == 999
    assert can.timestamp == 5


def test_v2_object_header(tmp_path):
    raw = blf_file(padded(obj(ObjectType.CAN_ERROR, can_error(channel=4), timestamp=77, flags=1, version=2)))
    (rec,) = _read(tmp_path, raw)
    assert isinstance(rec, CanErrorFrame)
    assert (rec.channel, rec.timestamp, rec.resolution) == (4, 77, 1)


def test_can_fd_64_data_and_crc(tmp_path):
    body = can_fd_message_64(flags=1 << 13, can_id=0x42, data=b"\x01\x02\x03", crc=0x1ABCD)
    (rec,) = _read(tmp_path, blf_file(padded(obj(ObjectType.CAN_FD_MESSAGE_64, body))))
    assert isinstance(rec, CanFdMessage64)
    assert rec.valid_data_bytes == 3
    assert rec.data == b"\x01\x02\x03"
    assert rec.crc == 0x1ABCD
    assert rec.flags == 1 << 13


def test_ethernet_objects(tmp_path):
    plain = ethernet_frame(channel=2, tpid=0x8100, tci=7, payload=b"\xaa\xbb\xcc")
    ex = ethernet_frame_ex(channel=3, flags=0x8, checksum=b"\x01\x02\x03\x04", frame=b"\x00" * 60)
    raw = blf_file(
        padded(obj(ObjectType.ETHERNET_FRAME, plain)),
        padded(obj(ObjectType.ETHERNET_FRAME_EX, ex)),
    )
    eth, eth_ex = _read(tmp_path, raw)

    assert isinstance(eth, EthernetFrame)
    assert eth.channel == 2
    assert eth.destination_address == b"\xff" * 6
    assert (eth.tpid, eth.tci) == (0x8100, 7)
    assert eth.payload == b"\xaa\xbb\xcc"

    assert isinstance(eth_ex, EthernetFrameEx)
    assert eth_ex.channel == 3
    assert eth_ex.frame_checksum == b"\x01\x02\x03\x04"
    assert eth_ex.frame_data == b"\x00" * 60


def test_fr_receive_msg_keeps_valid_bytes(tmp_path):
    body = fr_rcv_msg(channel=1, mask=2, frame_id=12, crc2=0x55, data=b"\x10" * 16, byte_count=10)
    (rec,) = _read(tmp_path, blf_file(padded(obj(ObjectType.FR_RCVMESSAGE, body))))
    assert isinstance(rec, FlexRayReceiveMsg)
    assert rec.channel_mask == 2
    assert rec.header_crc2 == 0x55
    assert rec.data == b"\x10" * 10
