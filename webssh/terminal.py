"""Pseudo-terminal and process handles for a spawned command."""

from __future__ import annotations

import asyncio
import errno
import fcntl
import logging
import os
import pty
import struct
import subprocess
import termios
from collections.abc import Mapping, Sequence

from .errors import SpawnError, TerminalClosed

logger = logging.getLogger(__name__)


def clean_env(term: str = "xterm-256color") -> dict[str, str]:
    """Return a copy of os.environ suitable for an interactive shell."""
    env = os.environ.copy()
    env.pop("TMUX", None)
    env["TERM"] = term
    return env


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _acquire_controlling_tty() -> None:
    """Make the PTY on stdin the controlling terminal of the new session."""
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class Process:
    """Handle on the command running behind a pseudo-terminal."""

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    async def wait(self) -> int:
        return await self._proc.wait()

    def kill(self) -> None:
        if self._proc.returncode is not None:
            return
        try:
            self._proc.kill()
        except ProcessLookupError:
            pass


class PseudoTerminal:
    """Master side of a PTY pair.

    Reads and writes are blocking syscalls, so they run in the default
    executor. Once closed, every operation raises TerminalClosed.
    """

    def __init__(self, master_fd: int) -> None:
        self._master_fd: int | None = master_fd

    @property
    def closed(self) -> bool:
        return self._master_fd is None

    def _fd(self) -> int:
        if self._master_fd is None:
            raise TerminalClosed("PTY closed")
        return self._master_fd

    async def read(self, size: int) -> bytes:
        fd = self._fd()
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, os.read, fd, size)
        except OSError as e:
            # Linux reports EIO on the master once the slave side is gone.
            if e.errno in (errno.EIO, errno.EBADF):
                raise TerminalClosed(f"PTY closed: {e}") from e
            raise
        if not data:
            raise TerminalClosed("PTY closed: EOF")
        return data

    async def write(self, data: bytes) -> None:
        fd = self._fd()
        loop = asyncio.get_running_loop()
        view = memoryview(data)
        while view:
            n = await loop.run_in_executor(None, os.write, fd, view)
            view = view[n:]

    async def resize(self, rows: int, cols: int) -> None:
        # The kernel delivers SIGWINCH to the foreground process group.
        _set_winsize(self._fd(), rows, cols)

    def close(self) -> None:
        if self._master_fd is None:
            return
        fd, self._master_fd = self._master_fd, None
        os.close(fd)


async def spawn(
    command: str,
    args: Sequence[str] = (),
    env: Mapping[str, str] | None = None,
    rows: int = 24,
    cols: int = 80,
) -> tuple[PseudoTerminal, Process]:
    """Start *command* on a fresh PTY sized *rows* x *cols*.

    On failure nothing is left open and SpawnError is raised.
    """
    try:
        master_fd, slave_fd = pty.openpty()
    except OSError as e:
        raise SpawnError(f"failed to create PTY: {e}") from e

    try:
        _set_winsize(master_fd, rows, cols)
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=slave_fd,
            stdout=slave_fd,
            stderr=slave_fd,
            env=dict(env) if env is not None else None,
            start_new_session=True,
            preexec_fn=_acquire_controlling_tty,
        )
    except (OSError, subprocess.SubprocessError) as e:
        os.close(master_fd)
        raise SpawnError(f"failed to start command {command!r}: {e}") from e
    finally:
        os.close(slave_fd)

    process = Process(proc)
    terminal = PseudoTerminal(master_fd)
    logger.debug("Spawned %s (pid %d) on PTY fd %d", command, process.pid, master_fd)
    return terminal, process
