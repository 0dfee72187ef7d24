# MIT License
# blfcap/cli.py - `blfcap SOURCE.blf DEST.pcapng`
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from blfcap import __version__
from blfcap.core.config import ConfigValidationError, ConverterConfig
from blfcap.core.dispatcher import STOP_CORRUPT, ConversionAborted, Dispatcher
from blfcap.core.log import setup_logger
from blfcap.core.timestamps import TimestampResolver, start_epoch_ns
from blfcap.formats.blf import BlfFormatError, BlfReader
from blfcap.formats.pcapng import PcapngWriter

EXIT_OK = 0
EXIT_OPEN_FAILED = 1
EXIT_ABORTED = 3
EXIT_BAD_CONFIG = 4
EXIT_CORRUPT_INPUT = 5


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="blfcap",
        description="Convert a Vector BLF bus log (CAN, CAN-FD, Ethernet, FlexRay) to PCAPNG",
    )
    p.add_argument("infile", help="source .blf file")
    p.add_argument("outfile", help="destination .pcapng file")
    p.add_argument("--config", help="YAML configuration file (default: per-user config if present)")
    p.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                   help="override the configured log level")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = ConverterConfig.load(args.config)
    except (ConfigValidationError, OSError) as e:
        sys.stderr.write(f"[config] invalid: {e}\n")
        return EXIT_BAD_CONFIG

    level = getattr(logging, args.log_level) if args.log_level else config.level
    try:
        log = setup_logger(level=level, log_file=config.log_file)
    except OSError as e:
        sys.stderr.write(f"[config] invalid: log_file: {e}\n")
        return EXIT_BAD_CONFIG
    log.debug("configuration %s", config.to_dict())

    try:
        reader = BlfReader(args.infile)
    except (OSError, BlfFormatError) as e:
        sys.stderr.write(f"Unable to open: {args.infile} ({e})\n")
        return EXIT_OPEN_FAILED

    with reader:
        try:
            writer = PcapngWriter(args.outfile, snaplen=config.snaplen, emit_direction=config.emit_direction)
        except OSError as e:
            sys.stderr.write(f"Unable to open: {args.outfile} ({e})\n")
            return EXIT_OPEN_FAILED

        with writer:
            resolver = TimestampResolver(start_epoch_ns(reader.start_time, utc=config.utc_start_time))
            log.debug("measurement start %s -> %d ns", tuple(reader.start_time), resolver.start_epoch_ns)
            dispatcher = Dispatcher(
                writer,
                resolver,
                abort_on_unsupported_resolution=config.abort_on_unsupported_resolution,
                emit_direction=config.emit_direction,
            )
            try:
                stats = dispatcher.run(reader.records())
            except ConversionAborted as e:
                log.error("conversion aborted: %s", e)
                return EXIT_ABORTED
            log.debug("%d capture interfaces", writer.interface_count)

    if stats.stop_reason == STOP_CORRUPT:
        return EXIT_CORRUPT_INPUT
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
