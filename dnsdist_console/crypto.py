"""
crypto.py: secretbox helpers and nonce bookkeeping for the dnsdist console.

Why this exists:
- Keep all libsodium bits in one place so the session code can call
  `seal/open_box` without worrying about nonce prefixes or MAC sizes.
- The console uses crypto_secretbox (XSalsa20-Poly1305): 32-byte key,
  24-byte nonce, 16-byte tag. PyNaCl's SecretBox is exactly that.
- Nonces are never re-randomised after the handshake; each direction is a
  counter living in the last 4 bytes.

Notes:
- Keys are base64 (standard alphabet, with padding) at the edges, the same
  format dnsdist's `makeKey()` prints.
- Nothing in here logs or formats key material.
"""

import base64
import binascii
import struct
import threading
from typing import Tuple

import nacl.bindings
import nacl.utils
from nacl.exceptions import CryptoError
from nacl.secret import SecretBox

from .errors import DecodeError, KeyFormatError

NONCE_SIZE = SecretBox.NONCE_SIZE  # 24
KEY_SIZE = SecretBox.KEY_SIZE  # 32
TAG_SIZE = SecretBox.MACBYTES  # 16

COUNTER_STRUCT = struct.Struct("!I")  # big-endian u32 at the tail of a nonce

_init_lock = threading.Lock()
_initialized = False


# -----------------------------
# One-time library initialisation
# -----------------------------

def init() -> None:
    """
    Initialise libsodium once per process.

    PyNaCl already does this on import; calling it again is harmless, and
    the guard makes repeated calls a no-op anyway.
    """
    global _initialized
    if _initialized:
        return
    with _init_lock:
        if not _initialized:
            nacl.bindings.sodium_init()
            _initialized = True


def random_bytes(size: int) -> bytes:
    """CSPRNG bytes from libsodium."""
    return nacl.utils.random(size)


# -------------------------
# Seal / open (no nonce prefix)
# -------------------------

def seal(plaintext: bytes, nonce: bytes, key: bytes) -> bytes:
    """
    Encrypt and authenticate `plaintext`. Returns ciphertext + tag only;
    PyNaCl prepends the nonce by default, which the console protocol does not
    put on the wire.
    """
    return SecretBox(key).encrypt(plaintext, bytes(nonce)).ciphertext


def open_box(ciphertext: bytes, nonce: bytes, key: bytes) -> bytes:
    """Reverse of seal(). Raises DecodeError instead of returning junk."""
    if len(ciphertext) < TAG_SIZE:
        raise DecodeError(
            f"ciphertext is {len(ciphertext)} bytes, shorter than the {TAG_SIZE}-byte tag"
        )
    try:
        return SecretBox(key).decrypt(ciphertext, bytes(nonce))
    except CryptoError as exc:
        raise DecodeError("frame failed authentication") from exc


# ---------------
# Nonce handling
# ---------------

def increment_nonce(nonce: bytearray) -> None:
    """
    Bump the big-endian u32 counter in the last 4 bytes, in place.

    0xFFFFFFFF wraps to 0; the leading bytes never change.
    """
    assert len(nonce) >= COUNTER_STRUCT.size, "invalid nonce size"
    (counter,) = COUNTER_STRUCT.unpack_from(nonce, len(nonce) - COUNTER_STRUCT.size)
    COUNTER_STRUCT.pack_into(
        nonce, len(nonce) - COUNTER_STRUCT.size, (counter + 1) & 0xFFFFFFFF
    )


def derive_nonces(our_nonce: bytes, remote_nonce: bytes) -> Tuple[bytearray, bytearray]:
    """
    Split the two handshake values into (reading_nonce, writing_nonce).

    Each peer contributes half of each direction, so neither side alone
    picks a nonce. The peer runs the same function with the arguments
    swapped, which makes our writing nonce its reading nonce and vice versa.
    """
    if len(our_nonce) != NONCE_SIZE or len(remote_nonce) != NONCE_SIZE:
        raise ValueError(f"handshake nonces must be {NONCE_SIZE} bytes")
    half = NONCE_SIZE // 2
    reading = bytearray(our_nonce[:half] + remote_nonce[half:])
    writing = bytearray(remote_nonce[:half] + our_nonce[half:])
    return reading, writing


# ------------------
# Key import/export
# ------------------

def b64_decode_key(data: str) -> bytes:
    """Decode a base64 console key and check its length."""
    try:
        key = base64.b64decode(data.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyFormatError(f"key is not valid base64: {exc}") from exc
    if len(key) != KEY_SIZE:
        raise KeyFormatError(f"key must decode to {KEY_SIZE} bytes, got {len(key)}")
    return key


def b64_encode_key(key: bytes) -> str:
    """Inverse of b64_decode_key()."""
    return base64.b64encode(key).decode("ascii")


def generate_key() -> bytes:
    """Fresh random console key, same shape as dnsdist's makeKey()."""
    return random_bytes(KEY_SIZE)
