"""
Pytest configuration for dnsdist_console tests.

Session tests talk over real loopback TCP: `tcp_pair()` hands back the
client-side and server-side Channel of one connection.
"""
import asyncio

import pytest

from dnsdist_console.framing import Channel
from dnsdist_console.session import connect


async def _tcp_pair():
    loop = asyncio.get_running_loop()
    accepted = loop.create_future()

    async def on_connect(reader, writer):
        accepted.set_result(Channel(reader, writer))

    server = await asyncio.start_server(on_connect, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    client = await connect("127.0.0.1", port)
    peer = await accepted
    # Stop accepting; the established connection stays up.
    server.close()
    return client, peer


@pytest.fixture
def tcp_pair():
    """Coroutine factory: `client, server = await tcp_pair()`."""
    return _tcp_pair


@pytest.fixture
def key():
    return bytes(range(32))


@pytest.fixture
def nonce_a():
    return bytes(range(0x01, 0x19))


@pytest.fixture
def nonce_b():
    return bytes(range(0x19, 0x31))
