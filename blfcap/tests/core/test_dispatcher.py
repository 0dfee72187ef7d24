# tests/core/test_dispatcher.py
# MIT License
from __future__ import annotations

import logging
from typing import List

import pytest

from blfcap.core.dispatcher import (
    STOP_CORRUPT,
    STOP_END_OF_STREAM,
    STOP_READ_FAILURE,
    ConversionAborted,
    Dispatcher,
)
from blfcap.core.packet import Direction, EncodedPacket, LinkType
from blfcap.core.records import (
    CanErrorFrame,
    CanMessage,
    EthernetFrameEx,
    FlexRayStatusEvent,
    FlexRayStatus,
    ObjectType,
    ReadFailure,
    UnknownRecord,
)
from blfcap.core.timestamps import TimestampResolver


class FakeWriter:
    def __init__(self) -> None:
        self.packets: List[EncodedPacket] = []

    def write_packet(self, packet: EncodedPacket) -> None:
        self.packets.append(packet)


@pytest.fixture
def writer() -> FakeWriter:
    return FakeWriter()


def _can(ts: int = 0, res: int = 2, channel: int = 1, **kw) -> CanMessage:
    return CanMessage(channel=channel, timestamp=ts, resolution=res, dlc=1, arbitration_id=0x10,
                      data=b"\x01", **kw)


def test_can_error_end_to_end(writer):
    d = Dispatcher(writer, TimestampResolver(0))
    rec = CanErrorFrame(channel=3, timestamp=5, resolution=1, length=6)
    stats = d.run([rec])

    assert stats.packets == 1
    (pkt,) = writer.packets
    assert pkt.link_type == LinkType.CAN_SOCKETCAN
    assert pkt.interface_name == "3"
    assert pkt.timestamp_resolution == 100_000
    assert (pkt.seconds, pkt.nanoseconds) == (0, 50_000)
    assert pkt.data == bytes([0x20, 0, 0, 0, 8, 0, 0, 0]) + bytes(8)
    assert pkt.captured_length == pkt.original_length == 16


def test_timestamps_add_start_epoch(writer):
    d = Dispatcher(writer, TimestampResolver(1_000_000_000_000_000_000))
    d.run([_can(ts=1_500_000_000)])
    pkt = writer.packets[0]
    assert (pkt.seconds, pkt.nanoseconds) == (1_000_000_001, 500_000_000)
    assert pkt.timestamp_resolution == 1_000_000_000


def test_packets_keep_source_order(writer):
    recs = [_can(ts=30), _can(ts=10), _can(ts=20)]
    Dispatcher(writer, TimestampResolver()).run(recs)
    assert [p.nanoseconds for p in writer.packets] == [30, 10, 20]


def test_unsupported_resolution_is_dropped_by_default(writer, caplog):
    d = Dispatcher(writer, TimestampResolver())
    with caplog.at_level(logging.WARNING, logger="blfcap"):
        stats = d.run([_can(res=3), _can(ts=7)])

    assert stats.dropped == 1
    assert stats.packets == 1
    assert writer.packets[0].nanoseconds == 7
    assert "resolution" in caplog.text


def test_unsupported_resolution_can_abort(writer):
    d = Dispatcher(writer, TimestampResolver(), abort_on_unsupported_resolution=True)
    with pytest.raises(ConversionAborted):
        d.run([_can(ts=1), _can(res=0), _can(ts=2)])
    assert len(writer.packets) == 1


def test_skipped_kinds_are_counted(writer):
    recs = [
        FlexRayStatusEvent(channel=1, timestamp=0, resolution=2, raw=b"\x00"),
        UnknownRecord(channel=1, timestamp=0, resolution=2, type_id=999),
        UnknownRecord(channel=1, timestamp=0, resolution=2, type_id=999),
        _can(),
    ]
    stats = Dispatcher(writer, TimestampResolver()).run(recs)

    assert stats.records == 4
    assert stats.packets == 1
    assert stats.skipped == 3
    assert stats.skipped_by_type == {int(ObjectType.FLEXRAY_STATUS): 1, 999: 2}


def test_skip_happens_before_resolution_check(writer):
    # a kind we never encode must not be reported as a bad timestamp
    rec = UnknownRecord(channel=1, timestamp=0, resolution=9, type_id=5)
    stats = Dispatcher(writer, TimestampResolver(), abort_on_unsupported_resolution=True).run([rec])
    assert stats.skipped == 1
    assert stats.dropped == 0


@pytest.mark.parametrize(
    "failure, reason",
    [
        (ReadFailure("truncated object", recoverable=True, offset=400), STOP_READ_FAILURE),
        (ReadFailure("bad signature", recoverable=False, offset=400), STOP_CORRUPT),
    ],
)
def test_read_failure_stops_but_keeps_written_packets(writer, failure, reason):
    stats = Dispatcher(writer, TimestampResolver()).run([_can(ts=1), failure, _can(ts=2)])
    assert stats.stop_reason == reason
    assert stats.failure is failure
    assert stats.packets == 1
    assert len(writer.packets) == 1


def test_clean_end_of_stream(writer):
    stats = Dispatcher(writer, TimestampResolver()).run([])
    assert stats.stop_reason == STOP_END_OF_STREAM
    assert stats.failure is None
    assert writer.packets == []


def test_direction_can_be_suppressed(writer):
    tx = _can(flags=0x01)
    Dispatcher(writer, TimestampResolver()).run([tx])
    Dispatcher(writer, TimestampResolver(), emit_direction=False).run([tx])
    assert writer.packets[0].direction == Direction.OUTBOUND
    assert writer.packets[1].direction is None


def test_interfaces_follow_link_type_and_channel(writer):
    recs = [
        _can(channel=1),
        EthernetFrameEx(channel=1, timestamp=0, resolution=2, frame_data=b"\x00" * 14),
        FlexRayStatus(channel=2, timestamp=0, resolution=2, channel_mask=1, tag=5, data=(3, 0)),
    ]
    Dispatcher(writer, TimestampResolver()).run(recs)
    keys = [(p.link_type, p.interface_name) for p in writer.packets]
    assert keys == [(LinkType.CAN_SOCKETCAN, "1"), (LinkType.ETHERNET, "1"), (LinkType.FLEXRAY, "2")]


def test_encoder_lookup_is_by_exact_type():
    assert Dispatcher.encoder_for(FlexRayStatusEvent(channel=0, timestamp=0, resolution=2)) is None
    assert Dispatcher.encoder_for(_can()) is not None
