import asyncio
import ipaddress
import logging
import socket
from typing import Callable, Optional, Union

from . import crypto
from . import framing
from .errors import AddressError, DecodeError, TransportError
from .framing import Channel

"""
session.py: handshake + encrypted request/response over one console connection.

Flow for a single connection:
  1) connect() opens the TCP stream (bounded by a connect timeout only).
  2) open_session() runs the nonce exchange: we write 24 random bytes, then
     read the peer's 24. Both halves feed the reading and writing nonces.
  3) Session.send() / Session.receive() move one frame each way. Every frame
     consumes exactly one nonce in its direction, success or not on decode.

Notes:
- Write-then-read is a required convention of the handshake, not something
  the protocol negotiates. If both peers read first they wait forever.
- One command at a time: send, then receive. The stream has no multiplexing.
- No read/write timeouts once connected; close the channel to abort.
- A Session that raised DecodeError is out of step with the peer in every way
  that matters. Close it and open a new one.
"""

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0  # seconds

RandomSource = Callable[[int], bytes]


# -------------------------
# Connection setup
# -------------------------

def parse_address(host: str, port: Union[int, str]) -> tuple:
    """Validate an IP literal + port. Hostnames are not resolved."""
    try:
        addr = ipaddress.ip_address(host)
    except ValueError as exc:
        raise AddressError(f"invalid IP address: {host!r}") from exc
    try:
        port = int(port)
    except (TypeError, ValueError) as exc:
        raise AddressError(f"invalid port: {port!r}") from exc
    if not 0 <= port <= 65535:
        raise AddressError(f"port out of range: {port}")
    return str(addr), port


async def connect(
    host: str,
    port: Union[int, str],
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> Channel:
    """Open a TCP connection to a console and return the Channel."""
    host, port = parse_address(host, port)
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout
        )
    except asyncio.TimeoutError as exc:
        raise TransportError(f"timed out connecting to {host}:{port} after {timeout}s") from exc
    except OSError as exc:
        raise TransportError(f"could not connect to {host}:{port}: {exc}") from exc

    # Small request/response frames: don't let Nagle hold them back.
    sock = writer.get_extra_info("socket")
    if sock is not None:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

    logger.debug("connected to %s:%d", host, port)
    return Channel(reader, writer)


# -------------------------
# Session
# -------------------------

class Session:
    """
    An established console session: owns the channel and both nonces.

    Build one with open_session(); the constructor does no I/O.
    """

    def __init__(
        self,
        channel: Channel,
        key: bytes,
        reading_nonce: bytearray,
        writing_nonce: bytearray,
    ) -> None:
        self.channel = channel
        self._key = bytes(key)
        self.reading_nonce = bytearray(reading_nonce)
        self.writing_nonce = bytearray(writing_nonce)

    @property
    def key(self) -> bytes:
        return self._key

    def __repr__(self) -> str:
        # Key deliberately left out.
        return (
            f"Session(peer={self.channel.peername()!r}, "
            f"reading_nonce={self.reading_nonce.hex()}, "
            f"writing_nonce={self.writing_nonce.hex()})"
        )

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def send(self, command: str) -> None:
        """Encrypt one command and write it as a single frame."""
        plaintext = command.encode("utf-8")
        if len(plaintext) + crypto.TAG_SIZE > framing.MAX_FRAME_SIZE:
            raise ValueError(
                f"command too large: {len(plaintext)} bytes does not fit a frame"
            )

        ciphertext = crypto.seal(plaintext, self.writing_nonce, self._key)
        await framing.write_frame(self.channel, ciphertext)

        # Only once the frame is out; a failed write raised above.
        crypto.increment_nonce(self.writing_nonce)

    async def receive(self) -> str:
        """
        Read one frame and return the decrypted text.

        Raises:
            TransportError: the frame was cut short.
            DecodeError: too short for a tag, bad MAC, or not UTF-8.
        """
        ciphertext = await framing.read_frame(self.channel)

        # The frame is off the wire, so its nonce is spent whatever happens next.
        nonce = bytes(self.reading_nonce)
        crypto.increment_nonce(self.reading_nonce)

        # Body was read in full first so the stream stays aligned on frame boundaries.
        if len(ciphertext) < crypto.TAG_SIZE:
            raise DecodeError(
                f"frame of {len(ciphertext)} bytes is shorter than the {crypto.TAG_SIZE}-byte tag"
            )
        cleartext = crypto.open_box(ciphertext, nonce, self._key)
        try:
            return cleartext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"response is not valid UTF-8: {exc}") from exc

    async def execute(self, command: str) -> str:
        """Send one command and wait for its reply."""
        await self.send(command)
        return await self.receive()

    async def close(self) -> None:
        await self.channel.close()


async def open_session(
    channel: Channel,
    key: bytes,
    random_bytes: Optional[RandomSource] = None,
) -> Session:
    """
    Run the nonce exchange on a fresh channel and return a Session.

    `random_bytes` defaults to libsodium's CSPRNG; tests pass a fixed source.
    Any I/O failure propagates as TransportError and no Session is returned.
    """
    if len(key) != crypto.KEY_SIZE:
        raise ValueError(f"key must be {crypto.KEY_SIZE} bytes, got {len(key)}")
    crypto.init()
    random_bytes = random_bytes or crypto.random_bytes

    # 1) Our half goes out first.
    our_nonce = random_bytes(crypto.NONCE_SIZE)
    if len(our_nonce) != crypto.NONCE_SIZE:
        raise ValueError(f"random source returned {len(our_nonce)} bytes, wanted {crypto.NONCE_SIZE}")
    await channel.write_all(our_nonce)

    # 2) Then the peer's, all 24 bytes or nothing.
    try:
        remote_nonce = await channel.read_exactly(crypto.NONCE_SIZE)
    except TransportError as exc:
        raise TransportError(f"error reading nonce: {exc}") from exc

    # 3) Mix the halves.
    reading_nonce, writing_nonce = crypto.derive_nonces(our_nonce, remote_nonce)
    logger.debug("handshake complete with %s", channel.peername())
    return Session(channel, key, reading_nonce, writing_nonce)


async def run_one_command(
    channel: Channel,
    key: bytes,
    command: str,
    random_bytes: Optional[RandomSource] = None,
) -> str:
    """Handshake, one command, one reply; the channel is closed afterwards."""
    try:
        session = await open_session(channel, key, random_bytes=random_bytes)
        return await session.execute(command)
    finally:
        await channel.close()


async def execute_command(
    host: str,
    port: Union[int, str],
    key: bytes,
    command: str,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> str:
    """Connect to a console, run a single command and return its output."""
    channel = await connect(host, port, timeout=timeout)
    return await run_one_command(channel, key, command)
