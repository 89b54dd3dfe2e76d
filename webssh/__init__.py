"""Browser terminal sessions: a PTY-backed process bridged to a WebSocket."""

from .turn import Turn

__all__ = ["Turn"]
