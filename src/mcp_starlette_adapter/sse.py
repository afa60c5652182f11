"""
SSE Transport Module

One :class:`SseTransport` serves one client session. The client opens a
long-lived GET stream; the transport answers with an ``endpoint`` event naming
the URL (including ``sessionId``) where the client must POST its JSON-RPC
messages. Everything the protocol engine writes for this session is sent back
down the same stream as ``message`` events.

The transport speaks raw ASGI on the stream side so that it knows exactly
whether any response bytes went out, and so that writes after the client left
become no-ops instead of errors.
"""

from __future__ import annotations as _annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from urllib.parse import urlencode
from uuid import uuid4

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp import types
from mcp.shared.message import ServerMessageMetadata, SessionMessage
from pydantic import ValidationError
from sse_starlette import ServerSentEvent
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Send

from mcp_starlette_adapter.context import get_invocation_context
from mcp_starlette_adapter.exceptions import TransportClosedError
from mcp_starlette_adapter.utilities.logging import get_logger

logger = get_logger(__name__)

SESSION_ID_PARAM = "sessionId"

SSE_HEADERS = [
    (b"content-type", b"text/event-stream"),
    (b"cache-control", b"no-cache"),
    (b"connection", b"keep-alive"),
    (b"access-control-allow-origin", b"*"),
]

KEEPALIVE_FRAME = ServerSentEvent(comment="ping").encode()


def new_session_id() -> str:
    return uuid4().hex


class SseTransport:
    """Server side of one SSE session.

    Lifecycle: construct, :meth:`start` (sends the response head and the
    endpoint event), :meth:`connect` to obtain the engine's streams, and
    :meth:`close` once the client has gone.
    """

    def __init__(
        self,
        message_url: str,
        send: Send,
        session_id_factory: Callable[[], str | None] = new_session_id,
    ):
        """
        Args:
            message_url: absolute URL of the message endpoint of this mount
            send: ASGI send callable of the GET request holding the stream
            session_id_factory: produces the opaque session id
        """
        self.message_url = message_url
        self.session_id = session_id_factory()
        self._send = send
        self._response_started = False
        self._closed = False
        self._input_closed = False
        self._write_lock = anyio.Lock()

        self._read_stream_writer: MemoryObjectSendStream[SessionMessage | Exception]
        self._read_stream: MemoryObjectReceiveStream[SessionMessage | Exception]
        self._write_stream: MemoryObjectSendStream[SessionMessage]
        self._write_stream_reader: MemoryObjectReceiveStream[SessionMessage]
        self._read_stream_writer, self._read_stream = anyio.create_memory_object_stream(0)
        self._write_stream, self._write_stream_reader = anyio.create_memory_object_stream(0)

    @property
    def endpoint_url(self) -> str:
        """URL the client must POST messages to."""
        return f"{self.message_url}?{urlencode({SESSION_ID_PARAM: self.session_id})}"

    @property
    def response_started(self) -> bool:
        return self._response_started

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Send the stream's response head and the endpoint event."""
        if self._response_started:
            raise RuntimeError("SSE transport already started")
        await self._send({"type": "http.response.start", "status": 200, "headers": SSE_HEADERS})
        self._response_started = True
        logger.debug(f"Sending endpoint event for session {self.session_id}: {self.endpoint_url}")
        await self._write(ServerSentEvent(data=self.endpoint_url, event="endpoint").encode())

    @asynccontextmanager
    async def connect(
        self,
    ) -> AsyncIterator[tuple[MemoryObjectReceiveStream[SessionMessage | Exception], MemoryObjectSendStream[SessionMessage]]]:
        """Yield the (read, write) stream pair the protocol engine runs on.

        Messages the engine writes are forwarded to the client until the block
        exits.
        """
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._forward_outgoing)
            try:
                yield self._read_stream, self._write_stream
            finally:
                tg.cancel_scope.cancel()

    async def _forward_outgoing(self) -> None:
        async with self._write_stream_reader:
            async for session_message in self._write_stream_reader:
                payload = session_message.message.model_dump_json(by_alias=True, exclude_none=True)
                if not await self._write(ServerSentEvent(data=payload, event="message").encode()):
                    logger.debug(f"Dropped message for closed session {self.session_id}")

    async def send_keepalive(self) -> bool:
        """Write a comment-only keepalive frame.

        Returns:
            False when the stream is no longer writable
        """
        return await self._write(KEEPALIVE_FRAME)

    async def _write(self, chunk: bytes) -> bool:
        if self._closed or not self._response_started:
            return False
        async with self._write_lock:
            try:
                await self._send({"type": "http.response.body", "body": chunk, "more_body": True})
            except (OSError, RuntimeError, anyio.BrokenResourceError, anyio.ClosedResourceError) as e:
                logger.debug(f"SSE stream for session {self.session_id} is no longer writable: {e}")
                self._closed = True
                return False
        return True

    async def handle_post_message(self, request: Request) -> Response:
        """Feed one posted JSON-RPC message to the engine.

        The active invocation context travels with the message as its
        request context, so the engine can hand it to the tool-call handler.

        Raises:
            TransportClosedError: if the session's stream has already closed
        """
        if self._closed:
            raise TransportClosedError(f"Session {self.session_id} is closed")

        body = await request.body()
        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except ValidationError as err:
            logger.error(f"Failed to parse message for session {self.session_id}: {err}")
            await self._deliver(err)
            return Response("Could not parse message", status_code=400)

        metadata = ServerMessageMetadata(request_context=get_invocation_context())
        await self._deliver(SessionMessage(message, metadata=metadata))
        return Response("Accepted", status_code=202)

    async def _deliver(self, item: SessionMessage | Exception) -> None:
        try:
            await self._read_stream_writer.send(item)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError) as e:
            raise TransportClosedError(f"Session {self.session_id} is closed") from e

    def close(self) -> None:
        """Stop accepting messages and turn further stream writes into no-ops.

        The engine's output side stays open so that handlers still running can
        finish; their results are dropped. Safe to call more than once.
        """
        self._closed = True
        if self._input_closed:
            return
        self._input_closed = True
        self._read_stream_writer.close()
        logger.debug(f"SSE transport closed for session {self.session_id}")
