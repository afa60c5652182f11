"""MCPAdapter - expose MCP tools as a mountable pair of SSE routes."""

from __future__ import annotations as _annotations

from collections.abc import Iterable
from typing import Any

import anyio
from anyio.abc import TaskStatus
from mcp import types
from mcp.server.lowlevel import Server as MCPServer
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Mount, Route, Router
from starlette.types import Receive, Scope, Send

from mcp_starlette_adapter.context import InvocationContext, invocation_scope
from mcp_starlette_adapter.exceptions import SessionConflictError, TransportClosedError
from mcp_starlette_adapter.sessions import SessionRegistry
from mcp_starlette_adapter.settings import MESSAGE_PATH, SSE_PATH, AdapterSettings
from mcp_starlette_adapter.sse import SESSION_ID_PARAM, SseTransport, new_session_id
from mcp_starlette_adapter.tools.registry import ToolRegistry, ToolSpec
from mcp_starlette_adapter.utilities.logging import configure_logging, get_logger, redact_sensitive_data

logger = get_logger(__name__)

DEFAULT_HOST = "localhost:8000"


class MCPAdapter:
    """An MCP server packaged as ASGI routes for an existing application.

    ``GET <mount>/sse`` opens a session's event stream and ``POST
    <mount>/message?sessionId=...`` delivers that session's messages. Headers of
    each POST are made available to the tool that the message ends up calling.

    Args:
        tools: tool specifications (``mcp_tool(...)``, ``RawTool``, plain
            mappings, or any object implementing the Tool protocol)
        endpoint: base path the adapter is mounted at
        server_name: name reported to clients
        server_version: version reported to clients
        debug: log sessions, headers and tool results at debug level
        keepalive_interval: seconds between keepalive comments on the stream
        settings: pre-built settings; keyword arguments above override it

    Examples:
        ```python
        from pydantic import BaseModel
        from starlette.applications import Starlette

        from mcp_starlette_adapter import MCPAdapter, mcp_tool

        class WeatherArgs(BaseModel):
            location: str

        weather = mcp_tool(
            name="get_weather",
            description="Get the current weather for a location",
            schema=WeatherArgs,
            handler=lambda args: f"Weather for {args.location}: Sunny, 72°F",
        )

        adapter = MCPAdapter(endpoint="/mcp", tools=[weather])
        app = Starlette(routes=[adapter.mount()])
        ```
    """

    def __init__(
        self,
        tools: Iterable[ToolSpec] = (),
        *,
        endpoint: str | None = None,
        server_name: str | None = None,
        server_version: str | None = None,
        debug: bool | None = None,
        keepalive_interval: float | None = None,
        settings: AdapterSettings | None = None,
    ):
        overrides = {
            "endpoint": endpoint,
            "server_name": server_name,
            "server_version": server_version,
            "debug": debug,
            "keepalive_interval": keepalive_interval,
        }
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if settings is None:
            self.settings = AdapterSettings(**overrides)
        else:
            self.settings = AdapterSettings(**(settings.model_dump() | overrides))

        configure_logging("DEBUG" if self.settings.debug else self.settings.log_level)

        self.tools = ToolRegistry(tools)
        self.sessions = SessionRegistry()
        self.session_id_factory = new_session_id

        self._mcp_server: MCPServer[Any, Any] = MCPServer(
            name=self.settings.server_name,
            version=self.settings.server_version,
        )
        self._setup_handlers()
        self._router = Router(
            routes=[
                Route(SSE_PATH, endpoint=self._sse_endpoint, methods=["GET"]),
                Route(MESSAGE_PATH, endpoint=self.handle_message, methods=["POST"]),
            ]
        )

        port = self.settings.port
        logger.info(f"Connect at: http://localhost:{port}{self.endpoint}{SSE_PATH}")
        logger.info(f"Run with: npx -y mcp-remote http://localhost:{port}{self.endpoint}{SSE_PATH}")

    @property
    def endpoint(self) -> str:
        """The normalized mount path."""
        return self.settings.endpoint

    @property
    def server(self) -> MCPServer[Any, Any]:
        return self._mcp_server

    @property
    def debug(self) -> bool:
        return self.settings.debug

    def get_endpoint(self) -> str:
        return self.endpoint

    def get_sse_endpoint(self, base_url: str) -> str:
        """Full URL of the SSE stream for clients, given the application's base URL."""
        return f"{base_url.rstrip('/')}{self.endpoint}{SSE_PATH}"

    def get_tools(self) -> list[dict[str, str]]:
        """Name and description of every registered tool."""
        return self.tools.summaries()

    def get_metadata(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "sse_path": SSE_PATH,
            "message_path": MESSAGE_PATH,
            "tools": self.get_tools(),
            "debug": self.debug,
            "server_name": self.settings.server_name,
            "server_version": self.settings.server_version,
        }

    def middleware(self) -> Router:
        """The ASGI router serving ``/sse`` and ``/message``, to be mounted at :attr:`endpoint`."""
        return self._router

    def handler(self) -> Router:
        return self.middleware()

    def mount(self, path: str | None = None) -> Mount:
        """A Starlette ``Mount`` of this adapter, at :attr:`endpoint` unless ``path`` is given."""
        return Mount(self.endpoint if path is None else path, app=self._router)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self._router(scope, receive, send)

    def _setup_handlers(self) -> None:
        """Register the MCP protocol handlers with the engine."""
        self._mcp_server.list_tools()(self.list_tools)
        self._mcp_server.list_prompts()(self.list_prompts)
        self._mcp_server.request_handlers[types.CallToolRequest] = self._handle_call_tool

    async def list_tools(self) -> list[types.Tool]:
        definitions = self.tools.list_definitions()
        logger.debug(f"Returning {len(definitions)} tools for tools/list")
        return definitions

    async def list_prompts(self) -> list[types.Prompt]:
        return []

    async def _handle_call_tool(self, req: types.CallToolRequest) -> types.ServerResult:
        name = req.params.name
        arguments = req.params.arguments or {}
        logger.debug(f"Handling tools/call for {name} at endpoint {self.endpoint}")
        context = self._request_invocation_context()
        # the engine cancels its handlers once the stream closes; a running tool still finishes
        with anyio.CancelScope(shield=True):
            result = await self.call_tool(name, arguments, context)
        return types.ServerResult(result)

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        context: InvocationContext | None = None,
    ) -> types.CallToolResult:
        """Invoke a registered tool and render the outcome as a protocol response."""
        context = context or InvocationContext()
        with invocation_scope(context):
            outcome = await self.tools.call(name, arguments, context)
        result = outcome.to_result()
        if self.debug:
            logger.debug(
                f"Tool {name} finished ({outcome.kind.value}): "
                f"{result.model_dump_json(exclude_none=True)[:100]}..."
            )
        return result

    def _request_invocation_context(self) -> InvocationContext:
        """The invocation context the transport attached to the message being handled."""
        try:
            request = self._mcp_server.request_context.request
        except LookupError:
            return InvocationContext()
        if isinstance(request, InvocationContext):
            return request
        return InvocationContext()

    async def _sse_endpoint(self, request: Request) -> _StreamOwned:
        await self.handle_sse(request.scope, request.receive, request._send)  # type: ignore[reportPrivateUsage]
        return _StreamOwned()

    async def handle_sse(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Serve one session's event stream until the client disconnects."""
        request = Request(scope, receive)
        logger.debug(f"SSE connection request to {request.url.path} from {request.client}")

        mount_url = self._mount_url(request)
        message_url = f"{mount_url}{MESSAGE_PATH}"
        logger.info(f"Connect at: {mount_url}{SSE_PATH}")
        logger.info(f"Run with: npx -y mcp-remote {mount_url}{SSE_PATH}")
        logger.debug(f"Calculated message URL for SSE transport: {message_url}")

        transport = SseTransport(message_url, send, session_id_factory=self.session_id_factory)
        session_id = transport.session_id
        if not session_id:
            logger.error("Failed to get session ID")
            await Response("Internal Server Error", status_code=500)(scope, receive, send)
            return

        try:
            self.sessions.register(transport)
        except SessionConflictError:
            logger.exception(f"Refusing SSE connection for session {session_id}")
            await Response("Internal Server Error", status_code=500)(scope, receive, send)
            return

        logger.debug(f"SSE Transport created for session: {session_id}")
        try:
            await transport.start()
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._run_session, transport)
                keepalive = await tg.start(self._keepalive, transport)
                await _wait_for_disconnect(receive)
                logger.debug(f"SSE connection closed for session {session_id}")
                keepalive.cancel()
                transport.close()
                self.sessions.remove(session_id)
        except Exception:
            logger.exception(f"Error serving SSE stream for session {session_id}")
            if not transport.response_started:
                await Response("Internal Server Error", status_code=500)(scope, receive, send)
        finally:
            transport.close()
            self.sessions.remove(session_id)

    async def _run_session(self, transport: SseTransport) -> None:
        try:
            async with transport.connect() as (read_stream, write_stream):
                logger.debug(f"MCP server connected for session {transport.session_id}")
                await self._mcp_server.run(
                    read_stream,
                    write_stream,
                    self._mcp_server.create_initialization_options(),
                )
        except Exception:
            if not transport.closed:
                raise
            # late responses of handlers that outlived the stream
            logger.debug(f"MCP server for closed session {transport.session_id} stopped", exc_info=True)

    async def _keepalive(
        self,
        transport: SseTransport,
        *,
        task_status: TaskStatus[anyio.CancelScope] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        with anyio.CancelScope() as scope:
            task_status.started(scope)
            while True:
                await anyio.sleep(self.settings.keepalive_interval)
                if not await transport.send_keepalive():
                    logger.debug(f"Stopping keepalive for session {transport.session_id}")
                    return

    def _mount_url(self, request: Request) -> str:
        """Externally visible URL of the mount this request came through."""
        host = request.headers.get("host") or DEFAULT_HOST
        mount_path = request.scope.get("root_path", "")
        return f"{request.url.scheme}://{host}{mount_path}"

    async def handle_message(self, request: Request) -> Response:
        """Deliver one posted message to its session's transport."""
        session_id = request.query_params.get(SESSION_ID_PARAM)
        if not session_id:
            logger.error("Message request missing sessionId")
            return Response("Missing sessionId", status_code=400)

        transport = self.sessions.get(session_id)
        if transport is None:
            logger.error(f"Session not found: {session_id}")
            return Response("Session not found", status_code=404)

        context = InvocationContext.from_headers(request.headers)
        logger.debug(f"POST message for session {session_id}, headers: {redact_sensitive_data(context.headers)}")

        try:
            with invocation_scope(context):
                return await transport.handle_post_message(request)
        except TransportClosedError:
            logger.error(f"Session closed while posting: {session_id}")
            return Response("Session not found", status_code=404)
        except Exception:
            logger.exception(f"Error handling message for session {session_id}")
            return Response("Internal Server Error", status_code=500)

    def run(self, host: str = "127.0.0.1", port: int | None = None) -> None:
        """Serve this adapter on its own, mounted at :attr:`endpoint`."""
        anyio.run(lambda: self.run_async(host, port))

    async def run_async(self, host: str = "127.0.0.1", port: int | None = None) -> None:
        import uvicorn
        from starlette.applications import Starlette

        app = Starlette(debug=self.debug, routes=[self.mount()])
        config = uvicorn.Config(
            app,
            host=host,
            port=port or self.settings.port,
            log_level=self.settings.log_level.lower(),
        )
        server = uvicorn.Server(config)
        await server.serve()


async def _wait_for_disconnect(receive: Receive) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return


class _StreamOwned(Response):
    """Returned by the SSE route once the stream is over.

    The stream already sent its own response, so this must not send another.
    """

    def __init__(self) -> None:
        super().__init__()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        return
