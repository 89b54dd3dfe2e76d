"""Dial mode: connect out to a relay and serve a terminal over that socket."""

from __future__ import annotations

import asyncio
import io
import logging

import websockets

from .config import AppConfig
from .connection import WebsocketsConnection
from .errors import LoopReadExit, SpawnError, TurnError
from .recorder import Recorder
from .terminal import clean_env
from .turn import Turn

logger = logging.getLogger(__name__)


class Dialer:
    """Serves one terminal session per outgoing WebSocket connection."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self._turn: Turn | None = None
        self._cancel: asyncio.Event | None = None
        self._close_task: asyncio.Task | None = None
        self._running = False

    async def run(self) -> None:
        """Reconnect loop with exponential backoff."""
        self._running = True
        delay = self.config.reconnect_min

        while self._running:
            try:
                logger.info("Connecting to %s ...", self.config.dial_url)
                async with websockets.connect(
                    self.config.dial_url,
                    max_size=2**20,
                    ping_interval=30,
                    ping_timeout=10,
                ) as ws:
                    delay = self.config.reconnect_min  # reset on success
                    logger.info("Connected to %s", self.config.dial_url)
                    await self._serve(ws)

            except SpawnError as e:
                logger.error("Terminal spawn failed, stopping: %s", e)
                return
            except websockets.ConnectionClosed as e:
                logger.warning("Connection closed: %s", e)
            except (OSError, websockets.InvalidHandshake) as e:
                logger.warning("Connection failed: %s", e)

            if not self._running:
                break

            logger.info("Reconnecting in %.0fs...", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.config.reconnect_max)

    def stop(self) -> None:
        self._running = False
        if self._cancel is not None:
            self._cancel.set()
        if self._turn is not None:
            # A blocked read only returns once the socket goes away.
            self._close_task = asyncio.get_running_loop().create_task(self._turn.shutdown())

    async def _serve(self, ws: websockets.ClientConnection) -> None:
        recorder = None
        if self.config.record:
            recorder = Recorder.create(
                self.config.recordings_path,
                command=" ".join([self.config.command, *self.config.args]),
                term=self.config.term,
            )

        log_buff = io.BytesIO()
        self._cancel = asyncio.Event()
        try:
            self._turn = await Turn.create(
                WebsocketsConnection(ws),
                self.config.command,
                self.config.args,
                recorder=recorder,
                env=clean_env(self.config.term),
            )
            await self._turn.loop_read(log_buff, self._cancel)
        except SpawnError:
            raise
        except LoopReadExit:
            logger.info("Terminal session cancelled")
        except TurnError as e:
            logger.info("Terminal session ended: %s", e)
        finally:
            if self._turn is not None:
                exit_code = await self._turn.wait()
                logger.info(
                    "Terminal process exited with %s after %d input bytes",
                    exit_code, len(log_buff.getvalue()),
                )
            self._turn = None
            self._cancel = None
            if recorder:
                recorder.close()
