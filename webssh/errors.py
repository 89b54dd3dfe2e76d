"""Exceptions raised by terminal sessions."""

from __future__ import annotations


class TurnError(Exception):
    """Base class for terminal session failures."""


class SpawnError(TurnError):
    """The pseudo-terminal or the process could not be started."""


class TerminalClosed(TurnError):
    """The pseudo-terminal reached EOF or its descriptor was closed."""


class ConnectionClosed(TurnError):
    """The client connection failed or was closed by either side."""


class ProtocolError(TurnError):
    """A control frame could not be parsed."""


class LoopReadExit(TurnError):
    """The caller asked the input loop to stop."""
