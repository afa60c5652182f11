import json
from collections.abc import Awaitable, Callable

import anyio
import pytest
from mcp import types
from mcp.shared.message import ServerMessageMetadata, SessionMessage
from starlette.requests import Request
from starlette.types import Message

from mcp_starlette_adapter.context import InvocationContext, invocation_scope
from mcp_starlette_adapter.exceptions import TransportClosedError
from mcp_starlette_adapter.sse import KEEPALIVE_FRAME, SseTransport

MESSAGE_URL = "http://testserver/mcp/message"


class RecordingSend:
    """ASGI send callable that records everything written to the stream."""

    def __init__(self, fail_after: int | None = None):
        self.messages: list[Message] = []
        self.fail_after = fail_after

    async def __call__(self, message: Message) -> None:
        if self.fail_after is not None and len(self.messages) >= self.fail_after:
            raise OSError("connection reset")
        self.messages.append(message)

    @property
    def body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(0.01)


def post_request(body: bytes) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/mcp/message",
        "query_string": b"sessionId=abc",
        "headers": [(b"content-type", b"application/json")],
    }
    sent = False

    async def receive() -> Message:
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def make_transport(send: Callable[[Message], Awaitable[None]]) -> SseTransport:
    return SseTransport(MESSAGE_URL, send, session_id_factory=lambda: "abc")


PING = json.dumps({"jsonrpc": "2.0", "id": 1, "method": "ping"}).encode()


@pytest.mark.anyio
async def test_start_sends_head_and_endpoint_event():
    send = RecordingSend()
    transport = make_transport(send)

    assert transport.endpoint_url == "http://testserver/mcp/message?sessionId=abc"
    assert not transport.response_started
    await transport.start()

    assert transport.response_started
    start = send.messages[0]
    assert start["type"] == "http.response.start"
    assert start["status"] == 200
    assert (b"content-type", b"text/event-stream") in start["headers"]
    assert (b"cache-control", b"no-cache") in start["headers"]
    assert b"event: endpoint" in send.body
    assert b"data: http://testserver/mcp/message?sessionId=abc" in send.body


@pytest.mark.anyio
async def test_start_twice_fails():
    transport = make_transport(RecordingSend())
    await transport.start()
    with pytest.raises(RuntimeError):
        await transport.start()


@pytest.mark.anyio
async def test_keepalive_frame():
    send = RecordingSend()
    transport = make_transport(send)
    assert await transport.send_keepalive() is False

    await transport.start()
    assert await transport.send_keepalive() is True
    assert send.body.endswith(KEEPALIVE_FRAME)
    assert KEEPALIVE_FRAME.startswith(b": ping")


@pytest.mark.anyio
async def test_failed_write_closes_transport():
    send = RecordingSend(fail_after=2)
    transport = make_transport(send)
    await transport.start()

    assert await transport.send_keepalive() is False
    assert transport.closed
    assert await transport.send_keepalive() is False


@pytest.mark.anyio
async def test_writes_after_close_are_dropped():
    send = RecordingSend()
    transport = make_transport(send)
    await transport.start()
    written = len(send.messages)

    transport.close()
    transport.close()
    assert await transport.send_keepalive() is False
    assert len(send.messages) == written


@pytest.mark.anyio
async def test_outgoing_messages_become_message_events():
    send = RecordingSend()
    transport = make_transport(send)
    await transport.start()

    async with transport.connect() as (_, write_stream):
        response = types.JSONRPCResponse(jsonrpc="2.0", id=1, result={})
        await write_stream.send(SessionMessage(types.JSONRPCMessage(response)))
        await wait_until(lambda: b"event: message" in send.body)

    assert b'data: {"jsonrpc":"2.0","id":1,"result":{}}' in send.body


@pytest.mark.anyio
async def test_posted_message_carries_invocation_context():
    transport = make_transport(RecordingSend())
    context = InvocationContext.from_headers({"Authorization": "Bearer t"})
    received: list[SessionMessage | Exception] = []

    async with transport.connect() as (read_stream, _):
        async with anyio.create_task_group() as tg:

            async def read_one() -> None:
                received.append(await read_stream.receive())

            tg.start_soon(read_one)
            with invocation_scope(context):
                response = await transport.handle_post_message(post_request(PING))

    assert response.status_code == 202
    assert response.body == b"Accepted"
    message = received[0]
    assert isinstance(message, SessionMessage)
    assert isinstance(message.message.root, types.JSONRPCRequest)
    assert message.message.root.method == "ping"
    assert isinstance(message.metadata, ServerMessageMetadata)
    assert message.metadata.request_context is context


@pytest.mark.anyio
async def test_unparseable_message():
    transport = make_transport(RecordingSend())
    received: list[SessionMessage | Exception] = []

    async with transport.connect() as (read_stream, _):
        async with anyio.create_task_group() as tg:

            async def read_one() -> None:
                received.append(await read_stream.receive())

            tg.start_soon(read_one)
            response = await transport.handle_post_message(post_request(b"{not json"))

    assert response.status_code == 400
    assert response.body == b"Could not parse message"
    assert isinstance(received[0], Exception)


@pytest.mark.anyio
async def test_post_to_closed_transport():
    transport = make_transport(RecordingSend())
    transport.close()
    with pytest.raises(TransportClosedError):
        await transport.handle_post_message(post_request(PING))
