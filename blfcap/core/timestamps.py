# MIT License
# blfcap/core/timestamps.py - BLF tick counts -> absolute capture timestamps
from __future__ import annotations

import calendar
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple

NANOS_PER_SEC = 1_000_000_000


class TimestampResolution(IntEnum):
    """Resolution tag as stored in the BLF object flags."""

    TEN_MICROS = 1
    ONE_NANOS = 2


class UnsupportedResolution(ValueError):
    """Raised when a record carries a resolution tag we cannot scale."""

    def __init__(self, tag: int):
        super().__init__(f"timestamp resolution tag {tag!r} is neither 10us nor 1ns")
        self.tag = tag


class SystemTime(NamedTuple):
    """Win32 SYSTEMTIME as recorded in the BLF file statistics."""

    year: int
    month: int
    day_of_week: int
    day: int
    hour: int
    minute: int
    second: int
    milliseconds: int


class PacketTimestamp(NamedTuple):
    seconds: int
    nanoseconds: int


def ticks_per_second(tag: int) -> int:
    if tag == TimestampResolution.TEN_MICROS:
        return 100_000
    if tag == TimestampResolution.ONE_NANOS:
        return NANOS_PER_SEC
    raise UnsupportedResolution(tag)


def start_epoch_ns(start: SystemTime, *, utc: bool = False) -> int:
    """
    Measurement start -> nanoseconds since the Unix epoch.
    Millisecond precision; the wall-clock fields are read as local time
    unless utc=True.
    """
    if start.year == 0 or not 1 <= start.month <= 12:
        # statistics never filled in by the logger, or garbage
        return 0
    fields = (start.year, start.month, start.day, start.hour, start.minute, start.second, 0, 0, -1)
    if utc:
        secs = calendar.timegm(fields)
    else:
        secs = int(time.mktime(fields))
    return (secs * 1000 + start.milliseconds) * 1000 * 1000


@dataclass(frozen=True)
class TimestampResolver:
    start_epoch_ns: int = 0

    def absolute_ns(self, ticks: int, tag: int) -> int:
        tps = ticks_per_second(tag)
        return ticks * (NANOS_PER_SEC // tps) + self.start_epoch_ns

    def resolve(self, ticks: int, tag: int) -> PacketTimestamp:
        sec, nsec = divmod(self.absolute_ns(ticks, tag), NANOS_PER_SEC)
        return PacketTimestamp(sec, nsec)
