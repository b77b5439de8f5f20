"""Length-prefixed JSON framing used by browser native messaging.

Each frame is a 4-byte little-endian unsigned length followed by that many
bytes of UTF-8 JSON.
"""

from __future__ import annotations

import json
import struct
from typing import Any, BinaryIO

MAX_MESSAGE_BYTES = 1_048_576
_LENGTH = struct.Struct("<I")


class BridgeError(Exception):
    """Base error for bridge input."""


class BridgeFramingError(BridgeError):
    """The byte stream is no longer aligned on frame boundaries."""


class MessageTooLargeError(BridgeFramingError):
    """Declared frame length exceeds ``MAX_MESSAGE_BYTES``."""

    def __init__(self, length: int) -> None:
        super().__init__(f"Message too large: {length} bytes")
        self.length = length


class BridgeMessageError(BridgeError):
    """A complete frame was read but its content is unusable."""


def read_message(stream: BinaryIO) -> dict[str, Any] | None:
    """Read one frame; None on clean end of input."""

    header = _read_exact(stream, _LENGTH.size, allow_eof=True)
    if header is None:
        return None
    (length,) = _LENGTH.unpack(header)
    if length > MAX_MESSAGE_BYTES:
        raise MessageTooLargeError(length)

    body = _read_exact(stream, length, allow_eof=False) if length else b""
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise BridgeMessageError(f"Failed to parse JSON message: {error}") from error
    if not isinstance(payload, dict):
        raise BridgeMessageError("Message must be a JSON object")
    return payload


def write_message(stream: BinaryIO, payload: dict[str, Any]) -> None:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    stream.write(_LENGTH.pack(len(body)))
    stream.write(body)
    stream.flush()


def _read_exact(stream: BinaryIO, size: int, *, allow_eof: bool) -> bytes | None:
    chunks: list[bytes] = []
    remaining = size
    while remaining:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    data = b"".join(chunks)
    if not data and allow_eof:
        return None
    if len(data) != size:
        raise BridgeFramingError(f"Truncated frame: expected {size} bytes, got {len(data)}")
    return data
