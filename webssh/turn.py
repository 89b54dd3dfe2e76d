"""One terminal session: a PTY-backed process wired to a client connection.

Output flows PTY -> client in a background task started by ``Turn.create``.
Input flows client -> PTY in ``Turn.loop_read``, which the caller drives.
Whichever side fails first closes the whole session.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import BinaryIO

from .codec import MSG_DATA, MSG_RESIZE, ResizeCommand, decode, split_frame
from .connection import Connection, MessageType
from .errors import ConnectionClosed, LoopReadExit, ProtocolError, TerminalClosed, TurnError
from .recorder import Recorder, RecordType
from .terminal import Process, PseudoTerminal, spawn

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class Turn:
    def __init__(
        self,
        pty: PseudoTerminal,
        process: Process,
        conn: Connection,
        recorder: Recorder | None = None,
    ) -> None:
        self.pty = pty
        self.process = process
        self.conn = conn
        self.recorder = recorder
        self._closed = False
        self._output_task: asyncio.Task | None = None

    @classmethod
    async def create(
        cls,
        conn: Connection,
        command: str,
        args: Sequence[str] = (),
        recorder: Recorder | None = None,
        env: Mapping[str, str] | None = None,
        rows: int = 24,
        cols: int = 80,
    ) -> Turn:
        """Spawn *command* on a new PTY and start forwarding its output."""
        pty, process = await spawn(command, args, env=env, rows=rows, cols=cols)
        turn = cls(pty, process, conn, recorder)
        turn.start()
        return turn

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        self._output_task = asyncio.create_task(self._pipe_output())

    async def _pipe_output(self) -> None:
        try:
            while True:
                try:
                    data = await self.pty.read(READ_CHUNK_SIZE)
                except TerminalClosed:
                    logger.info("PTY closed")
                    break
                except OSError as e:
                    logger.error("Error reading from PTY: %s", e)
                    break

                try:
                    await self.conn.write_message(MessageType.BINARY, data)
                except ConnectionClosed as e:
                    logger.error("Error writing to WebSocket: %s", e)
                    break

                self._record(RecordType.OUTPUT, data)
        except Exception:
            logger.exception("Output pump failed")
        finally:
            await self.shutdown()

    async def loop_read(self, log_buff: BinaryIO, cancel: asyncio.Event) -> None:
        """Feed client frames to the PTY until *cancel* is set or an error occurs.

        Always raises: LoopReadExit on cancellation, another TurnError on
        failure. The session is closed before the error reaches the caller.
        """
        try:
            while True:
                if cancel.is_set():
                    raise LoopReadExit("LoopRead exit")
                await self._read_frame(log_buff)
        finally:
            await self.shutdown()

    async def _read_frame(self, log_buff: BinaryIO) -> None:
        try:
            _, message = await self.conn.read_message()
        except ConnectionClosed as e:
            logger.error("Error reading WebSocket message: %s", e)
            raise

        frame = split_frame(message)
        if frame is None:
            return
        kind, payload = frame
        body = decode(payload)

        if kind == MSG_RESIZE:
            try:
                size = ResizeCommand.parse(body)
            except ProtocolError as e:
                logger.error("Failed to unmarshal resize message: %s", e)
                raise
            if not size.is_valid():
                return
            try:
                await self.pty.resize(size.rows, size.columns)
            except (OSError, TurnError) as e:
                logger.error("Failed to resize PTY: %s", e)
                raise TurnError(f"failed to resize PTY: {e}") from e
            self._record(RecordType.RESIZE, f"{size.columns}x{size.rows}")

        elif kind == MSG_DATA:
            try:
                await self.pty.write(body)
            except (OSError, TurnError) as e:
                logger.error("PTY write error: %s", e)
                raise TurnError(f"PTY write err: {e}") from e

            try:
                log_buff.write(body)
            except (OSError, ValueError) as e:
                logger.error("Log buffer write error: %s", e)
                raise TurnError(f"logBuff write err: {e}") from e

            self._record(RecordType.INPUT, body)

    def _record(self, kind: RecordType, data: bytes | str) -> None:
        if self.recorder is None:
            return
        try:
            with self.recorder:
                self.recorder.write_data(kind, data)
        except (OSError, ValueError) as e:
            logger.error("Recorder write error: %s", e)
            raise TurnError(f"recorder write err: {e}") from e

    async def wait(self) -> int:
        """Block until the process exits and return its exit status."""
        return await self.process.wait()

    async def close(self) -> None:
        """Kill the process, close the PTY, then close the connection.

        Safe to call more than once and from either pump. Every release is
        attempted; the first failure is raised after all of them ran.
        """
        if self._closed:
            return
        self._closed = True

        first_error: BaseException | None = None

        try:
            self.process.kill()
        except Exception as e:
            logger.error("Failed to kill process: %s", e)
            first_error = e

        try:
            self.pty.close()
        except Exception as e:
            logger.error("Failed to close PTY: %s", e)
            first_error = first_error or e

        try:
            await self.conn.close()
        except Exception as e:
            logger.error("Failed to close WebSocket: %s", e)
            first_error = first_error or e

        if first_error is not None:
            raise first_error

    async def shutdown(self) -> None:
        """Close the session, logging a failure instead of raising it."""
        try:
            await self.close()
        except Exception:
            logger.debug("Turn close reported an error", exc_info=True)
