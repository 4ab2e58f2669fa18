import asyncio
import logging
import struct
from typing import Optional

from .errors import TransportError

"""
framing.py: length-prefixed frames over an asyncio TCP stream.

Protocol (what dnsdist speaks on its console port):
- Each frame = 4-byte big-endian unsigned length (N) + N bytes of ciphertext.
- The header is a plain u32, so the hard cap is whatever fits in 32 bits.
  Anything bigger is refused before we touch the socket, never truncated.
- Frames may arrive split across TCP segments; we always read by length.

The Channel wrapper gives the session layer exactly two primitives,
"read exactly n bytes" and "write all of these bytes", and turns every
stream failure into TransportError.
"""

logger = logging.getLogger(__name__)

MAX_FRAME_SIZE = 0xFFFFFFFF  # u32 header limit
LENGTH_STRUCT = struct.Struct("!I")  # big-endian unsigned 32-bit length


class Channel:
    """Owned duplex byte stream: reader/writer pair for one TCP connection."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.reader = reader
        self.writer = writer
        self.closed = False

    async def read_exactly(self, n: int) -> bytes:
        """Read exactly n bytes or raise TransportError. n == 0 returns b''."""
        try:
            return await self.reader.readexactly(n)
        except asyncio.IncompleteReadError as exc:
            raise TransportError(
                f"connection closed after {len(exc.partial)} of {n} bytes"
            ) from exc
        except OSError as exc:
            raise TransportError(f"read failed: {exc}") from exc

    async def write_all(self, data: bytes) -> None:
        """Queue data and wait until the transport has flushed it."""
        if self.closed:
            raise TransportError("write on a closed channel")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as exc:
            raise TransportError(f"write failed: {exc}") from exc

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as exc:
            # Peer already reset; the socket is gone either way.
            logger.debug("error while closing channel: %s", exc)

    def peername(self) -> Optional[str]:
        peer = self.writer.get_extra_info("peername")
        return f"{peer[0]}:{peer[1]}" if peer else None


def pack_frame(payload: bytes) -> bytes:
    """Prefix payload with its u32 length. Refuses payloads that don't fit."""
    if len(payload) > MAX_FRAME_SIZE:
        raise ValueError(f"Frame too large: {len(payload)} > {MAX_FRAME_SIZE}")
    return LENGTH_STRUCT.pack(len(payload)) + payload


async def read_frame(channel: Channel) -> bytes:
    """
    Read one frame and return its body (the ciphertext).

    Raises:
        TransportError: if the peer goes away before the header or the body
        is complete.
    """
    # 1) Read the 4-byte length prefix.
    (length,) = LENGTH_STRUCT.unpack(await channel.read_exactly(LENGTH_STRUCT.size))

    # 2) Read the body exactly as long as the prefix said (0 is legal).
    payload = await channel.read_exactly(length)
    logger.debug("read frame of %d bytes", length)
    return payload


async def write_frame(channel: Channel, payload: bytes) -> None:
    """Write header + body as a single logical write, then drain."""
    await channel.write_all(pack_frame(payload))
    logger.debug("wrote frame of %d bytes", len(payload))
