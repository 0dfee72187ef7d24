# MIT License
# blfcap/core/dispatcher.py - record kind -> encoder, timestamps, hand-off to the writer
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Type, Union

from blfcap.codec import can, ethernet, flexray
from blfcap.core.packet import EncodedFrame, EncodedPacket, PacketWriter
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
    ReadFailure,
    SourceRecord,
    UnknownRecord,
)
from blfcap.core.timestamps import TimestampResolver, UnsupportedResolution, ticks_per_second

log = logging.getLogger("blfcap.dispatcher")

Encoder = Callable[[SourceRecord], EncodedFrame]

# None marks kinds we read but deliberately never encode
ENCODERS: Dict[Type[SourceRecord], Optional[Encoder]] = {
    CanMessage: can.encode_can_message,
    CanMessage2: can.encode_can_message,
    CanErrorFrame: can.encode_can_error,
    CanErrorFrameExt: can.encode_can_error,
    CanFdErrorFrame64: can.encode_can_error,
    CanFdMessage: can.encode_can_fd_message,
    CanFdMessage64: can.encode_can_fd_message_64,
    EthernetFrame: ethernet.encode_ethernet_frame,
    EthernetFrameEx: ethernet.encode_ethernet_frame_ex,
    EthernetFrameForwarded: ethernet.encode_ethernet_frame_ex,
    FlexRayData: flexray.encode_flexray_data,
    FlexRaySync: flexray.encode_flexray_sync,
    FlexRayCycleStart: flexray.encode_flexray_cycle_start,
    FlexRayMessage: flexray.encode_flexray_message,
    # no reliable reference file or documentation for this layout
    FlexRayStatusEvent: None,
    FlexRayError: flexray.encode_fr_error,
    FlexRayStatus: flexray.encode_fr_status,
    FlexRayStartCycle: flexray.encode_fr_start_cycle,
    FlexRayReceiveMsg: flexray.encode_fr_receive_msg,
    FlexRayReceiveMsgEx: flexray.encode_fr_receive_msg_ex,
}

STOP_END_OF_STREAM = "end_of_stream"
STOP_READ_FAILURE = "read_failure"
STOP_CORRUPT = "corrupt"


class ConversionAborted(RuntimeError):
    """Raised when the run is stopped by policy (unsupported timestamp resolution)."""


@dataclass
class ConversionStats:
    records: int = 0
    packets: int = 0
    skipped: int = 0
    dropped: int = 0
    skipped_by_type: Dict[int, int] = field(default_factory=dict)
    stop_reason: str = STOP_END_OF_STREAM
    failure: Optional[ReadFailure] = None


class Dispatcher:
    """
    Feeds a record stream through the encoders into a packet writer.
    - one record at a time, nothing carried over except the resolver epoch
    - unsupported/unknown kinds are skipped, not errors
    - a ReadFailure ends the stream; packets already written are kept
    """

    def __init__(
        self,
        writer: PacketWriter,
        resolver: TimestampResolver,
        *,
        abort_on_unsupported_resolution: bool = False,
        emit_direction: bool = True,
    ):
        self.writer = writer
        self.resolver = resolver
        self.abort_on_unsupported_resolution = abort_on_unsupported_resolution
        self.emit_direction = emit_direction

    @staticmethod
    def encoder_for(record: SourceRecord) -> Optional[Encoder]:
        return ENCODERS.get(type(record))

    def encode(self, record: SourceRecord) -> Optional[EncodedPacket]:
        """
        Record -> packet, or None for kinds that are skipped.
        Raises UnsupportedResolution before any encoding happens.
        """
        encoder = self.encoder_for(record)
        if encoder is None:
            return None

        tps = ticks_per_second(record.resolution)
        ts = self.resolver.resolve(record.timestamp, record.resolution)
        frame = encoder(record)
        return EncodedPacket(
            link_type=frame.link_type,
            interface_name=str(record.channel),
            timestamp_resolution=tps,
            seconds=ts.seconds,
            nanoseconds=ts.nanoseconds,
            data=frame.data,
            direction=frame.direction if self.emit_direction else None,
        )

    def _skip(self, stats: ConversionStats, record: SourceRecord) -> None:
        kind = record.type_id if isinstance(record, UnknownRecord) else int(record.object_type)
        stats.skipped += 1
        stats.skipped_by_type[kind] = stats.skipped_by_type.get(kind, 0) + 1
        log.debug("skipping object type %d on channel %d", kind, record.channel)

    def run(self, items: Iterable[Union[SourceRecord, ReadFailure]]) -> ConversionStats:
        stats = ConversionStats()
        for item in items:
            if isinstance(item, ReadFailure):
                stats.failure = item
                stats.stop_reason = STOP_READ_FAILURE if item.recoverable else STOP_CORRUPT
                log.warning("stopping at offset %d: %s", item.offset, item.reason)
                break

            stats.records += 1
            try:
                packet = self.encode(item)
            except UnsupportedResolution as e:
                if self.abort_on_unsupported_resolution:
                    raise ConversionAborted(str(e)) from e
                stats.dropped += 1
                log.warning("dropping object type %d: %s", int(item.object_type), e)
                continue

            if packet is None:
                self._skip(stats, item)
                continue

            self.writer.write_packet(packet)
            stats.packets += 1

        log.info(
            "%d records read, %d packets written, %d skipped, %d dropped (%s)",
            stats.records, stats.packets, stats.skipped, stats.dropped, stats.stop_reason,
        )
        return stats
