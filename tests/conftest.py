from __future__ import annotations

import asyncio
import base64
import io
import json

import pytest

from webssh.config import config
from webssh.connection import MessageType
from webssh.errors import ConnectionClosed, TerminalClosed
from webssh.recorder import Recorder


class FakePty:
    """In-memory PTY: tests feed output and inspect what the session wrote."""

    def __init__(self) -> None:
        self._pending = bytearray()
        self._ready = asyncio.Event()
        self._read_error: BaseException | None = None
        self.written: list[bytes] = []
        self.resizes: list[tuple[int, int]] = []
        self.write_error: BaseException | None = None
        self.resize_error: BaseException | None = None
        self.close_error: BaseException | None = None
        self.closed = False
        self.close_calls = 0

    def feed(self, data: bytes) -> None:
        self._pending += data
        self._ready.set()

    def fail_reads(self, error: BaseException) -> None:
        self._read_error = error
        self._ready.set()

    async def read(self, size: int) -> bytes:
        while True:
            if self.closed:
                raise TerminalClosed("PTY closed")
            if self._read_error is not None:
                raise self._read_error
            if self._pending:
                data = bytes(self._pending[:size])
                del self._pending[:size]
                return data
            self._ready.clear()
            await self._ready.wait()

    async def write(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.written.append(data)

    async def resize(self, rows: int, cols: int) -> None:
        if self.resize_error is not None:
            raise self.resize_error
        self.resizes.append((rows, cols))

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self._ready.set()
        if self.close_error is not None:
            raise self.close_error


class FakeProcess:
    pid = 4242

    def __init__(self) -> None:
        self.returncode: int | None = None
        self.kill_calls = 0
        self.kill_error: BaseException | None = None
        self._exited = asyncio.Event()

    def exit(self, code: int) -> None:
        self.returncode = code
        self._exited.set()

    def kill(self) -> None:
        self.kill_calls += 1
        if self.kill_error is not None:
            raise self.kill_error
        if self.returncode is None:
            self.exit(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


class FakeConnection:
    """Client connection backed by a queue of inbound messages."""

    _EOF = object()

    def __init__(self) -> None:
        self._inbound: asyncio.Queue = asyncio.Queue()
        self.sent: list[tuple[MessageType, bytes]] = []
        self.reads = 0
        self.write_error: BaseException | None = None
        self.close_error: BaseException | None = None
        self.closed = False
        self.close_calls = 0

    def push(self, message: bytes, kind: MessageType = MessageType.TEXT) -> None:
        self._inbound.put_nowait((kind, message))

    def disconnect(self) -> None:
        self._inbound.put_nowait(self._EOF)

    async def read_message(self) -> tuple[MessageType, bytes]:
        self.reads += 1
        if self.closed:
            raise ConnectionClosed("connection closed")
        item = await self._inbound.get()
        if item is self._EOF:
            raise ConnectionClosed("client disconnected (code 1000)")
        return item

    async def write_message(self, kind: MessageType, data: bytes) -> None:
        if self.closed:
            raise ConnectionClosed("connection closed")
        if self.write_error is not None:
            raise self.write_error
        self.sent.append((kind, data))

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self._inbound.put_nowait(self._EOF)
        if self.close_error is not None:
            raise self.close_error

    @property
    def output(self) -> bytes:
        return b"".join(data for _, data in self.sent)


def data_frame(data: bytes) -> bytes:
    return b"1" + base64.b64encode(data)


def resize_frame(payload: dict | str) -> bytes:
    if isinstance(payload, dict):
        payload = json.dumps(payload)
    return b"2" + base64.b64encode(payload.encode())


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll *predicate* until it is true or fail after *timeout* seconds."""

    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_pty():
    return FakePty()


@pytest.fixture
def fake_process():
    return FakeProcess()


@pytest.fixture
def fake_conn():
    return FakeConnection()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cast_stream():
    return io.StringIO()


@pytest.fixture
def recorder(cast_stream, clock):
    return Recorder(cast_stream, width=80, height=24, clock=clock)


@pytest.fixture
def restore_config():
    """Undo any changes a test makes to the global settings object."""
    saved = config.model_dump()
    yield config
    for key, value in saved.items():
        setattr(config, key, value)
