"""Tests for secretbox helpers, nonce counter and key handling."""

import base64

import pytest

from dnsdist_console import crypto
from dnsdist_console.errors import DecodeError, KeyFormatError


def test_constants_match_secretbox():
    assert crypto.NONCE_SIZE == 24
    assert crypto.KEY_SIZE == 32
    assert crypto.TAG_SIZE == 16


def test_increment_from_zero():
    nonce = bytearray(b"\xaa" * 20 + b"\x00\x00\x00\x00")
    crypto.increment_nonce(nonce)
    assert nonce[-4:] == b"\x00\x00\x00\x01"
    assert nonce[:20] == b"\xaa" * 20


def test_increment_wraps_around():
    """0xFFFFFFFF rolls over to 0 and leaves the prefix alone."""
    prefix = bytes(range(20))
    nonce = bytearray(prefix + b"\xff\xff\xff\xff")
    crypto.increment_nonce(nonce)
    assert nonce == bytearray(prefix + b"\x00\x00\x00\x00")


def test_increment_carries_across_bytes():
    nonce = bytearray(20) + bytearray(b"\x00\x00\x00\xff")
    crypto.increment_nonce(nonce)
    assert nonce[-4:] == b"\x00\x00\x01\x00"


def test_increment_rejects_short_buffer():
    with pytest.raises(AssertionError):
        crypto.increment_nonce(bytearray(3))


def test_derive_nonces_halves(nonce_a, nonce_b):
    reading, writing = crypto.derive_nonces(nonce_a, nonce_b)
    assert reading == nonce_a[:12] + nonce_b[12:]
    assert writing == nonce_b[:12] + nonce_a[12:]


def test_derive_nonces_symmetry():
    """Each side's reading nonce is the other side's writing nonce."""
    for _ in range(20):
        ours = crypto.random_bytes(crypto.NONCE_SIZE)
        theirs = crypto.random_bytes(crypto.NONCE_SIZE)
        a_read, a_write = crypto.derive_nonces(ours, theirs)
        b_read, b_write = crypto.derive_nonces(theirs, ours)
        assert a_read == b_write
        assert a_write == b_read
        assert a_read != a_write


def test_derive_nonces_wrong_size():
    with pytest.raises(ValueError):
        crypto.derive_nonces(bytes(23), bytes(24))


@pytest.mark.parametrize("message", [b"", b"showServers()", bytes(range(256)) * 4])
def test_seal_open(message, key, nonce_a):
    ciphertext = crypto.seal(message, nonce_a, key)
    assert len(ciphertext) == len(message) + crypto.TAG_SIZE
    assert crypto.open_box(ciphertext, nonce_a, key) == message


def test_seal_accepts_bytearray_nonce(key, nonce_a):
    ciphertext = crypto.seal(b"x", bytearray(nonce_a), key)
    assert crypto.open_box(ciphertext, nonce_a, key) == b"x"


def test_tampered_ciphertext_is_rejected(key, nonce_a):
    ciphertext = crypto.seal(b"status", nonce_a, key)
    for bit in range(len(ciphertext) * 8):
        tampered = bytearray(ciphertext)
        tampered[bit // 8] ^= 1 << (bit % 8)
        with pytest.raises(DecodeError):
            crypto.open_box(bytes(tampered), nonce_a, key)


def test_wrong_nonce_is_rejected(key, nonce_a, nonce_b):
    ciphertext = crypto.seal(b"status", nonce_a, key)
    with pytest.raises(DecodeError):
        crypto.open_box(ciphertext, nonce_b, key)


def test_wrong_key_is_rejected(key, nonce_a):
    ciphertext = crypto.seal(b"status", nonce_a, key)
    with pytest.raises(DecodeError):
        crypto.open_box(ciphertext, nonce_a, bytes(32))


def test_ciphertext_shorter_than_tag(key, nonce_a):
    with pytest.raises(DecodeError):
        crypto.open_box(b"\x00" * 15, nonce_a, key)


def test_init_is_idempotent():
    crypto.init()
    crypto.init()
    assert crypto._initialized


def test_key_roundtrip():
    key = crypto.generate_key()
    assert len(key) == crypto.KEY_SIZE
    assert crypto.b64_decode_key(crypto.b64_encode_key(key)) == key


def test_decode_key_strips_whitespace(key):
    assert crypto.b64_decode_key(base64.b64encode(key).decode() + "\n") == key


def test_decode_key_not_base64():
    with pytest.raises(KeyFormatError):
        crypto.b64_decode_key("not base64 at all!")


def test_decode_key_wrong_length():
    with pytest.raises(KeyFormatError):
        crypto.b64_decode_key(base64.b64encode(bytes(16)).decode())
