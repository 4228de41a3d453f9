#!/usr/bin/env python3
"""
Streaming reader for BookOfQuests stop dumps.

A dump looks like::

    {"<s2 cell id>": [{"name": ..., "loc": {...}}, ...], "<s2 cell id>": [...], ...}

``BOQDB.run`` walks one or more dumps token by token in a worker thread and
puts every array on a bounded queue as a ``Cell``. The last item it ever
puts is ``END``; after that ``run_error`` holds the first error (or None).
"""
import logging, os, queue, stat, threading
from contextlib import closing
from typing import BinaryIO, Callable, Iterable, Iterator, List, Optional, Tuple

from geodex.errors import BOQError, ConfigError, ParseError, SourceIOError
from geodex.models import Cell
from geodex.streaming_parser import TokenCursor

logger = logging.getLogger(__name__)

CHANNEL_CAPACITY = int(os.environ.get("BOQ_CHANNEL_CAPACITY", "4"))

# "{" and the first key come before the first array. After each array comes
# either the next key or the closing "}".
LEADING_TOKENS = 2
TRAILING_TOKENS = 1


class _EndOfStream:
    def __repr__(self):
        return "END"


END = _EndOfStream()


def check_files(paths: Iterable) -> List[str]:
    """
    Return ``paths`` as strings, or raise ConfigError for the first entry
    that is not an existing regular file.
    """
    checked = []
    for path in paths:
        try:
            path = os.fspath(path)
        except TypeError as e:
            raise ConfigError(f"{path!r} is not a file path") from e
        try:
            st = os.stat(path)
        except OSError as e:
            raise ConfigError(f"'{path}' is not accessible: {e.strerror or e}") from e
        if not stat.S_ISREG(st.st_mode):
            raise ConfigError(f"'{path}' is not a file")
        checked.append(path)
    if not checked:
        raise ConfigError("no input files given")
    return checked


class FileSequencer:
    """Ordered list of source files read as one logical stream."""

    def __init__(self, paths: Iterable):
        if isinstance(paths, (str, bytes, os.PathLike)):
            raise ConfigError(f"expected a list of paths, got a single path {paths!r}")
        self.paths = check_files(paths)

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator[Tuple[str, BinaryIO]]:
        return self.iter_open()

    def iter_open(self, stop: Optional[Callable[[], bool]] = None) -> Iterator[Tuple[str, BinaryIO]]:
        """
        Yield ``(path, handle)`` one file at a time.

        Each handle is closed before the next file is opened, or when the
        generator is closed early. ``stop`` is asked before every open.
        """
        for path in self.paths:
            if stop is not None and stop():
                return
            try:
                handle = open(path, "rb")
            except OSError as e:
                raise SourceIOError(f"open failed: {e.strerror or e}", path=path) from e
            with handle:
                logger.debug(f"opened {path}")
                yield path, handle


class BOQDB:
    """Read-only wrapper for one or more Book Of Quests stops JSON files."""

    def __init__(self, files: Iterable, output: queue.Queue, cancel: threading.Event):
        self.files = FileSequencer(files)
        if output.maxsize < 1:
            raise ValueError("output queue must be bounded (maxsize >= 1)")
        self.output = output
        self.cancel = cancel
        self.run_error: Optional[Exception] = None
        self.cells_sent = 0
        self.cancelled = False

    def _fail(self, err: Exception) -> None:
        if self.run_error is None:
            self.run_error = err
        else:
            logger.debug("ignoring follow-up error: %s", err)

    def _signal_done(self) -> None:
        logger.info("boq parser done signal")
        self.output.put(END)

    def run(self) -> None:
        """Parse all files. Never raises; check ``run_error`` after END."""
        self.run_error = None
        self.cells_sent = 0
        self.cancelled = False
        logger.info("starting boq parser: files=%s", self.files.paths)
        try:
            if self._run_files():
                logger.info("boq parser returns ok")
            else:
                self.cancelled = True
        except ParseError as e:
            logger.error("cell decode failed: %s", e)
            self._fail(e)
        except BOQError as e:
            logger.error("boq parser failed: %s", e)
            self._fail(e)
        except Exception as e:
            logger.exception("boq parser crashed")
            self._fail(e)
        finally:
            self._signal_done()

    def _run_files(self) -> bool:
        opened = 0
        with closing(self.files.iter_open(stop=self.cancel.is_set)) as files:
            for path, handle in files:
                opened += 1
                if not self._run_file(path, handle):
                    return False
        if opened < len(self.files):
            logger.info("boq parser cancelled before opening %s", self.files.paths[opened])
            return False
        return True

    def _run_file(self, path: str, handle: BinaryIO) -> bool:
        cursor = TokenCursor(handle, path=path)
        index = 0
        try:
            head = cursor.skip_tokens(LEADING_TOKENS)
            if head[0][0] != "start_map":
                raise ParseError(f"expected an object at top level, got {head[0][0]}", path=path)

            while cursor.more():
                if self.cancel.is_set():
                    logger.info("boq parser cancelled in %s after %d cells", path, index)
                    return False

                cell = Cell.from_json(cursor.decode_next(), source=path, index=index)
                # blocks while the queue is full
                self.output.put(cell)
                self.cells_sent += 1
                index += 1

                cursor.skip_tokens(TRAILING_TOKENS)
        except OSError as e:
            raise SourceIOError(f"read failed: {e}", path=path) from e
        logger.debug("%s: %d cells", path, index)
        return True


class CellStream:
    """
    Consumer side of a ``BOQDB`` run.

    Iterating yields cells in file and document order and stops at END.
    Once the stream is exhausted ``error`` holds the producer's first error.
    """

    def __init__(self, producer: BOQDB, thread: Optional[threading.Thread] = None):
        self.producer = producer
        self._thread = thread
        self._finished = False

    def __iter__(self) -> "CellStream":
        return self

    def __next__(self) -> Cell:
        if self._finished:
            raise StopIteration
        item = self.producer.output.get()
        if item is END:
            self._finished = True
            if self._thread is not None:
                self._thread.join()
            raise StopIteration
        return item

    def __enter__(self) -> "CellStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def cancelled(self) -> bool:
        """True if the producer stopped early because cancel was set."""
        return self._finished and self.producer.cancelled

    @property
    def error(self) -> Optional[Exception]:
        if not self._finished:
            raise RuntimeError("stream is still active; error is available after END")
        return self.producer.run_error

    def raise_for_error(self) -> None:
        err = self.error
        if err is not None:
            raise err

    def close(self) -> None:
        """Cancel the producer and drain until END so it can never block on a full queue."""
        if self._finished:
            return
        self.producer.cancel.set()
        for _ in self:
            pass


def stream_cells(files: Iterable, capacity: int = CHANNEL_CAPACITY,
                 cancel: Optional[threading.Event] = None) -> CellStream:
    """
    Validate ``files``, start a producer thread and return its CellStream.

    Use the stream in a ``with`` block or call ``close()`` when leaving it
    early. A stream dropped before END leaves the producer blocked on the
    full queue.
    """
    if capacity < 1:
        raise ValueError("capacity must be at least 1")
    if cancel is None:
        cancel = threading.Event()
    db = BOQDB(files, queue.Queue(maxsize=capacity), cancel)
    thread = threading.Thread(target=db.run, name="boq-parser", daemon=True)
    thread.start()
    return CellStream(db, thread)
