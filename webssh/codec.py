"""Wire framing for client messages.

Inbound messages carry a one-byte discriminant followed by a base64 payload:

- ``1<base64 bytes>``: terminal input
- ``2<base64 json>``: resize, ``{"columns": 80, "rows": 24}``

Outbound terminal output is sent as raw binary frames and never goes
through this module.
"""

from __future__ import annotations

import base64
import binascii
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ProtocolError

logger = logging.getLogger(__name__)

MSG_DATA = b"1"
MSG_RESIZE = b"2"


class ResizeCommand(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    # Window sizes are unsigned 16-bit fields in TIOCSWINSZ
    columns: int = Field(0, le=65535)
    rows: int = Field(0, le=65535)

    @classmethod
    def parse(cls, body: bytes) -> ResizeCommand:
        if body.strip() == b"null":
            return cls()
        try:
            return cls.model_validate_json(body)
        except ValidationError as e:
            raise ProtocolError(f"failed to unmarshal resize message: {e}") from e

    def is_valid(self) -> bool:
        return self.columns > 0 and self.rows > 0


def split_frame(message: bytes) -> tuple[bytes, bytes] | None:
    """Return ``(discriminant, encoded payload)``, or None for an empty message."""
    if not message:
        return None
    return message[:1], message[1:]


def decode(payload: bytes) -> bytes:
    """Decode a base64 payload. Malformed input decodes to ``b""``.

    Line breaks inside the payload are skipped.
    """
    try:
        return base64.b64decode(payload.translate(None, b"\r\n"), validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning("Dropping malformed base64 payload (%d bytes): %s", len(payload), e)
        return b""


def encode(data: bytes) -> bytes:
    return base64.b64encode(data)
