"""Length-prefixed framing over the daemon's UNIX stream socket.

Each request and response is a native size_t (struct "@N") holding the
payload length, followed by exactly that many bytes of UTF-8 text.
"""
import asyncio
import logging
import struct
from typing import Optional

from .errors import NetdError

logger = logging.getLogger(__name__)

HEADER = struct.Struct("@N")
DEFAULT_MAX_REQUEST_SIZE = 65536


class FrameError(NetdError):
    """Frame header announced more bytes than allowed, or the peer hung up mid-frame."""
    pass


def encode_frame(payload: str | bytes) -> bytes:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return HEADER.pack(len(payload)) + payload


async def read_frame(
    reader: asyncio.StreamReader,
    max_size: int = DEFAULT_MAX_REQUEST_SIZE,
) -> Optional[str]:
    """
    Read one frame.

    Args:
        reader: Stream to read from
        max_size: Largest payload accepted

    Returns:
        Decoded payload, or None if the peer closed before a new frame

    Raises:
        FrameError: Oversized frame, truncated frame or invalid UTF-8
    """
    try:
        header = await reader.readexactly(HEADER.size)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            return None
        raise FrameError("connection closed inside frame header") from None

    (length,) = HEADER.unpack(header)
    if length > max_size:
        raise FrameError(f"frame of {length} bytes exceeds limit of {max_size}")

    try:
        payload = await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise FrameError(
            f"connection closed after {len(e.partial)} of {length} bytes"
        ) from None

    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        raise FrameError("frame payload is not valid UTF-8") from None


async def write_frame(writer: asyncio.StreamWriter, payload: str | bytes) -> None:
    writer.write(encode_frame(payload))
    await writer.drain()
