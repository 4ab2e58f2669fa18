"""
errors.py: exception kinds raised by the console client.

Callers mostly care about three situations:
- the address they gave us is nonsense (AddressError),
- the TCP connection misbehaved: refused, timed out, closed mid-frame
  (TransportError),
- the bytes arrived fine but did not authenticate or decode (DecodeError).

Everything derives from ConsoleError so a caller can catch the lot in one go.
Nothing here is retried internally; that's the caller's decision.
"""


class ConsoleError(Exception):
    """Base class for every error raised by dnsdist_console."""


class AddressError(ConsoleError):
    """Host is not an IP literal, or port is outside 0-65535."""


class TransportError(ConsoleError):
    """Any I/O failure: connect timeout, short read, failed write, reset."""


class DecodeError(ConsoleError):
    """
    A frame failed authentication, was shorter than the MAC tag, or did not
    decrypt to valid UTF-8.

    The session's nonces are already advanced past the bad frame when this is
    raised, but the session should still be thrown away afterwards.
    """


class KeyFormatError(ConsoleError):
    """The pre-shared key is not base64, or not 32 bytes once decoded."""
