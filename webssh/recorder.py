"""Session recording in asciicast v2 format.

The file starts with a JSON header line followed by one JSON array per event:
``[elapsed_seconds, code, text]`` where code is ``"o"`` (output), ``"i"``
(input) or ``"r"`` (resize, text is ``"COLSxROWS"``).
"""

from __future__ import annotations

import codecs
import enum
import json
import logging
import threading
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TextIO

logger = logging.getLogger(__name__)


class RecordType(enum.Enum):
    OUTPUT = "o"
    INPUT = "i"
    RESIZE = "r"


class Recorder:
    """Append-only asciicast writer shared by both directions of a session.

    Callers hold the lock around each write (``with recorder:`` or
    ``lock()``/``unlock()``) so chunks from the two pumps never interleave.
    """

    def __init__(
        self,
        stream: TextIO,
        width: int = 80,
        height: int = 24,
        command: str | None = None,
        term: str = "xterm-256color",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stream = stream
        self._clock = clock
        self._lock = threading.Lock()
        self._decoders: dict[RecordType, codecs.IncrementalDecoder] = {}
        self._closed = False

        header: dict = {
            "version": 2,
            "width": width,
            "height": height,
            "timestamp": int(datetime.now(UTC).timestamp()),
            "env": {"TERM": term},
        }
        if command:
            header["command"] = command
        self._stream.write(json.dumps(header) + "\n")
        self._start = self._clock()

    @classmethod
    def create(
        cls,
        directory: Path,
        width: int = 80,
        height: int = 24,
        command: str | None = None,
        term: str = "xterm-256color",
    ) -> Recorder:
        """Open a new ``.cast`` file under *directory*."""
        directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        path = directory / f"{stamp}-{uuid.uuid4().hex[:8]}.cast"
        logger.info("Recording session to %s", path)
        stream = path.open("w", encoding="utf-8")
        return cls(stream, width=width, height=height, command=command, term=term)

    def lock(self) -> None:
        self._lock.acquire()

    def unlock(self) -> None:
        self._lock.release()

    def __enter__(self) -> Recorder:
        self.lock()
        return self

    def __exit__(self, *exc) -> None:
        self.unlock()

    @property
    def closed(self) -> bool:
        return self._closed

    def write_data(self, kind: RecordType, data: bytes | str) -> None:
        if self._closed:
            return
        if isinstance(data, bytes):
            # Multibyte characters may straddle two chunks of the same stream.
            decoder = self._decoders.get(kind)
            if decoder is None:
                decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
                self._decoders[kind] = decoder
            data = decoder.decode(data)
        if not data:
            return
        elapsed = round(self._clock() - self._start, 6)
        self._stream.write(json.dumps([elapsed, kind.value, data]) + "\n")
        self._stream.flush()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._stream.close()
