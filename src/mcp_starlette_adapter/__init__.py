"""Mount MCP tool servers inside Starlette (or any ASGI) applications."""

from .adapter import MCPAdapter
from .context import InvocationContext, get_invocation_context, invocation_scope, run_with_context
from .exceptions import AdapterError, InvalidToolDefinition, SessionConflictError, TransportClosedError
from .sessions import SessionRegistry
from .settings import MESSAGE_PATH, SSE_PATH, AdapterSettings
from .sse import SseTransport
from .tools import (
    ExecutionFailure,
    RawTool,
    SchemaTool,
    Tool,
    ToolNotFound,
    ToolOutcome,
    ToolRegistry,
    ToolSuccess,
    ValidationFailure,
    format_output,
    mcp_tool,
    to_json_schema,
)

__all__ = [
    "MCPAdapter",
    "AdapterSettings",
    "AdapterError",
    "ExecutionFailure",
    "InvalidToolDefinition",
    "InvocationContext",
    "MESSAGE_PATH",
    "RawTool",
    "SSE_PATH",
    "SchemaTool",
    "SessionConflictError",
    "SessionRegistry",
    "SseTransport",
    "Tool",
    "ToolNotFound",
    "ToolOutcome",
    "ToolRegistry",
    "ToolSuccess",
    "TransportClosedError",
    "ValidationFailure",
    "format_output",
    "get_invocation_context",
    "invocation_scope",
    "mcp_tool",
    "run_with_context",
    "to_json_schema",
]
