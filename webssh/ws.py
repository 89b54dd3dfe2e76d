from __future__ import annotations

import asyncio
import io
import logging

from fastapi import APIRouter, Query, WebSocket

from .config import config
from .connection import StarletteConnection
from .errors import LoopReadExit, SpawnError, TurnError
from .recorder import Recorder
from .terminal import clean_env
from .turn import Turn

logger = logging.getLogger(__name__)
router = APIRouter()

# Cancel events of the sessions currently being served
_active_sessions: set[asyncio.Event] = set()


def cancel_all_sessions() -> int:
    """Ask every running input loop to stop. Returns how many were signalled."""
    for cancel in _active_sessions:
        cancel.set()
    return len(_active_sessions)


@router.websocket("/ws/terminal")
async def terminal_ws(
    websocket: WebSocket,
    rows: int = Query(24, ge=1, le=1000),
    cols: int = Query(80, ge=1, le=1000),
):
    await websocket.accept()
    conn = StarletteConnection(websocket)

    recorder = None
    if config.record:
        recorder = Recorder.create(
            config.recordings_path,
            width=cols,
            height=rows,
            command=" ".join([config.command, *config.args]),
            term=config.term,
        )

    try:
        turn = await Turn.create(
            conn,
            config.command,
            config.args,
            recorder=recorder,
            env=clean_env(config.term),
            rows=rows,
            cols=cols,
        )
    except SpawnError as e:
        logger.error("Terminal spawn failed: %s", e)
        await websocket.close(code=1011, reason="spawn failed")
        if recorder:
            recorder.close()
        return

    log_buff = io.BytesIO()
    cancel = asyncio.Event()
    _active_sessions.add(cancel)
    logger.info("Terminal session started: %s (pid %d)", config.command, turn.process.pid)

    try:
        await turn.loop_read(log_buff, cancel)
    except LoopReadExit:
        logger.info("Terminal session cancelled")
    except TurnError as e:
        logger.info("Terminal session ended: %s", e)
    finally:
        _active_sessions.discard(cancel)
        exit_code = await turn.wait()
        logger.info(
            "Terminal process %d exited with %s after %d input bytes",
            turn.process.pid, exit_code, len(log_buff.getvalue()),
        )
        if recorder:
            recorder.close()
