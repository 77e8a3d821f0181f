"""Test message transports."""

import asyncio

from aiohttp import web
from aiohttp import test_utils
import pytest
import websockets

from didcomm_agent.message import DIDCommMessage
from didcomm_agent.transport import (
    HTTPTransport,
    QueueTransport,
    TransportError,
    TransportTimeout,
    WebSocketTransport,
)

PACKED = DIDCommMessage(type="https://didcomm.org/basicmessage/2.0/message").to_json()


@pytest.fixture
async def http_server():
    received = []

    async def inbound(request: web.Request):
        received.append((request.headers["Content-Type"], await request.text()))
        return web.Response(status=202)

    async def broken(request: web.Request):
        return web.Response(status=500, text="nope")

    async def slow(request: web.Request):
        await asyncio.sleep(1)
        return web.Response(status=202)

    app = web.Application()
    app.router.add_post("/inbound", inbound)
    app.router.add_post("/broken", broken)
    app.router.add_post("/slow", slow)
    server = test_utils.TestServer(app)
    await server.start_server()
    server.received = received
    yield server
    await server.close()


def test_supports():
    assert HTTPTransport().supports("https://example.com/didcomm")
    assert not HTTPTransport().supports("ws://example.com")
    assert WebSocketTransport().supports("wss://example.com")
    assert QueueTransport().supports("didcomm:transport/queue")
    assert QueueTransport().supports("memory:alice")
    assert not QueueTransport().supports("http://example.com")


@pytest.mark.asyncio
async def test_http(http_server: test_utils.TestServer):
    endpoint = str(http_server.make_url("/inbound"))
    ack = await HTTPTransport().send(PACKED, endpoint)
    assert ack.status == 202
    assert ack.endpoint == endpoint
    assert http_server.received == [("application/didcomm-plain+json", PACKED)]


@pytest.mark.asyncio
async def test_http_error_status(http_server: test_utils.TestServer):
    with pytest.raises(TransportError):
        await HTTPTransport().send(PACKED, str(http_server.make_url("/broken")))


@pytest.mark.asyncio
async def test_http_timeout(http_server: test_utils.TestServer):
    with pytest.raises(TransportTimeout) as exc:
        await HTTPTransport(timeout=0.05).send(
            PACKED, str(http_server.make_url("/slow"))
        )
    assert isinstance(exc.value, TimeoutError)


@pytest.mark.asyncio
async def test_http_unreachable():
    with pytest.raises(TransportError):
        await HTTPTransport().send(PACKED, "http://127.0.0.1:9/inbound")


@pytest.mark.asyncio
async def test_refuses_malformed():
    with pytest.raises(TransportError):
        await QueueTransport().send("not json", "memory:alice")


@pytest.mark.asyncio
async def test_websocket():
    received = asyncio.Queue()

    async def handler(websocket):
        await received.put(await websocket.recv())

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        await WebSocketTransport().send(PACKED, f"ws://127.0.0.1:{port}")
        assert await asyncio.wait_for(received.get(), 5) == PACKED


@pytest.mark.asyncio
async def test_queue():
    transport = QueueTransport()
    await transport.send(PACKED, "memory:alice")
    assert transport.queue("memory:bob").empty()
    assert await transport.receive("memory:alice") == PACKED


@pytest.mark.asyncio
async def test_queue_timeout():
    transport = QueueTransport(timeout=0.01, maxsize=1)
    await transport.send(PACKED, "memory:alice")
    with pytest.raises(TransportTimeout):
        await transport.send(PACKED, "memory:alice")


@pytest.mark.external_fetch
@pytest.mark.asyncio
async def test_http_external():
    ack = await HTTPTransport(timeout=10).send(PACKED, "https://httpbin.org/post")
    assert ack.status == 200
