"""
dnsdist_console: client for dnsdist's encrypted console.

Layers:
- crypto:   secretbox seal/open, nonce counter, key import/export.
- framing:  u32 big-endian length-prefixed frames over an asyncio stream.
- session:  nonce-exchange handshake, send/receive, one-shot helpers.
- run_console: command line entry point.

Every frame uses a fresh nonce: the writing nonce moves on after each send,
the reading nonce after each received frame. Keys are never logged.
"""
__all__ = ["crypto", "errors", "framing", "session", "run_console"]
