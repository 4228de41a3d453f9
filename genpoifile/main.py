#!/usr/bin/env python3
"""Generate a POI file for import in mapping applications from BookOfQuests dumps."""

import argparse, logging, os, pathlib, sys, threading, time
from datetime import datetime
from typing import List, Optional

from geodex.boq import CHANNEL_CAPACITY, stream_cells
from geodex.errors import ConfigError
from genpoifile.converter import BOQConverter

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_TIMEOUT = 2


def time_track(start: float, name: str) -> None:
    logger.info("%s took %.2fs", name, time.time() - start)


def default_map_name() -> str:
    return f"PogoPlanner {datetime.now():%Y-%m-%d %H:%M}"


def convert(files: List[str], output: Optional[pathlib.Path], map_name: str,
            capacity: int = CHANNEL_CAPACITY, timeout: Optional[float] = None) -> int:
    """Stream every file through a BOQConverter and write the KML. Returns an exit code."""
    start = time.time()
    cancel = threading.Event()
    timer = None
    if timeout:
        timer = threading.Timer(timeout, cancel.set)
        timer.daemon = True
        timer.start()

    try:
        try:
            stream = stream_cells(files, capacity=capacity, cancel=cancel)
        except ConfigError as e:
            logger.error("got invalid boq files: %s", e)
            return EXIT_FAILED

        bc = BOQConverter(map_name)
        with stream:
            for cell in stream:
                bc.process_cell(cell)
    finally:
        if timer is not None:
            timer.cancel()

    time_track(start, "boq parsing")

    if output is None:
        bc.generate_kml(sys.stdout.buffer)
        sys.stdout.flush()
    else:
        with open(output, "wb") as f:
            bc.generate_kml(f)

    logger.info("processed BOQ data: %d files with %d cells containing %d POIs with %d gyms, %d stops",
                len(files), bc.cell_count, bc.poi_count, bc.gym_count, bc.stop_count)
    if bc.skipped:
        logger.warning("skipped %d POIs with invalid coordinates", bc.skipped)

    if stream.error is not None:
        logger.error("boq runner failed! %s", stream.error)
        return EXIT_FAILED
    if stream.cancelled:
        logger.warning("boq parsing stopped after %.1fs timeout; output is incomplete", timeout)
        return EXIT_TIMEOUT
    return EXIT_OK


def cli() -> int:
    ap = argparse.ArgumentParser(
        prog="genpoifile",
        description="Get Pokestop and Gym data from BookOfQuests dumps and generate a KML file.")
    ap.add_argument("-b", "--boq", action="append", required=True, metavar="FILE",
                    help="BookOfQuests JSON file (repeat for several files)")
    ap.add_argument("-o", "--output", type=pathlib.Path, help="write KML here instead of stdout")
    ap.add_argument("--name", default=None, help="map name shown in the KML document")
    ap.add_argument("--buffer", type=int, default=CHANNEL_CAPACITY,
                    help="number of cells the parser may read ahead")
    ap.add_argument("--timeout", type=float, default=None, help="stop parsing after this many seconds")
    ap.add_argument("--log-level", default=os.environ.get("BOQ_LOG_LEVEL", "INFO"),
                    choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = ap.parse_args()

    if args.buffer < 1:
        ap.error("--buffer must be at least 1")

    logging.basicConfig(level=args.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return convert(args.boq, args.output, args.name or default_map_name(),
                   capacity=args.buffer, timeout=args.timeout)


if __name__ == "__main__":
    sys.exit(cli())
