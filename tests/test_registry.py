import logging
from typing import Any

import pytest
from mcp.types import TextContent
from pydantic import BaseModel

from mcp_starlette_adapter.context import InvocationContext, invocation_scope
from mcp_starlette_adapter.tools import (
    ExecutionFailure,
    OutcomeKind,
    ToolNotFound,
    ToolRegistry,
    ToolSuccess,
    mcp_tool,
)


class EchoArgs(BaseModel):
    text: str


def echo_tool(name: str = "echo", prefix: str = ""):
    return mcp_tool(name=name, description="Echo text", schema=EchoArgs, handler=lambda args: prefix + args.text)


def text_of(outcome: Any) -> str:
    content = outcome.to_result().content[0]
    assert isinstance(content, TextContent)
    return content.text


def test_registers_valid_tools():
    registry = ToolRegistry([echo_tool(), {"name": "raw", "description": "Raw", "handler": lambda args: ""}])
    assert registry.names() == ["echo", "raw"]
    assert len(registry) == 2
    assert "echo" in registry
    definitions = registry.list_definitions()
    assert [d.name for d in definitions] == ["echo", "raw"]
    assert definitions[0].inputSchema["required"] == ["text"]
    assert registry.summaries() == [
        {"name": "echo", "description": "Echo text"},
        {"name": "raw", "description": "Raw"},
    ]


@pytest.mark.parametrize(
    "spec",
    [
        {"name": "", "handler": lambda args: ""},
        {"name": 42, "handler": lambda args: ""},
        {"name": "no_handler"},
        {"name": "not_object", "inputSchema": {"type": "string"}, "handler": lambda args: ""},
        {
            "name": "bad_schema",
            "inputSchema": {"type": "object", "properties": {"a": {"type": "nope"}}},
            "handler": lambda args: "",
        },
        "not a tool",
    ],
)
def test_invalid_definitions_are_skipped(spec: Any, caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.ERROR, logger="mcp_starlette_adapter"):
        registry = ToolRegistry([spec, echo_tool()])
    assert registry.names() == ["echo"]
    assert "Invalid tool definition" in caplog.text


def test_duplicate_names_keep_first(caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.WARNING, logger="mcp_starlette_adapter"):
        registry = ToolRegistry([echo_tool(prefix="first:"), echo_tool(prefix="second:")])
    assert len(registry) == 1
    assert "Tool already exists, skipping duplicate: echo" in caplog.text


@pytest.mark.anyio
async def test_duplicate_keeps_first_handler():
    registry = ToolRegistry([echo_tool(prefix="first:"), echo_tool(prefix="second:")])
    outcome = await registry.call("echo", {"text": "hi"})
    assert text_of(outcome) == "first:hi"


@pytest.mark.anyio
async def test_unknown_tool():
    registry = ToolRegistry([echo_tool()])
    outcome = await registry.call("ghost_tool", {})
    assert isinstance(outcome, ToolNotFound)
    assert outcome.kind is OutcomeKind.NOT_FOUND
    result = outcome.to_result()
    assert result.isError is True
    assert text_of(outcome) == "Error: Unknown tool 'ghost_tool'"


@pytest.mark.anyio
async def test_execution_failure():
    def explode(args: EchoArgs) -> str:
        raise RuntimeError("kaboom")

    registry = ToolRegistry([mcp_tool(name="explode", description="", schema=EchoArgs, handler=explode)])
    outcome = await registry.call("explode", {"text": "x"})
    assert isinstance(outcome, ExecutionFailure)
    assert outcome.kind is OutcomeKind.EXECUTION_ERROR
    assert outcome.to_result().isError is True
    assert text_of(outcome) == "Error executing tool explode: kaboom"


@pytest.mark.anyio
async def test_execution_failure_without_message():
    def explode(args: EchoArgs) -> str:
        raise PermissionError()

    registry = ToolRegistry([mcp_tool(name="explode", description="", schema=EchoArgs, handler=explode)])
    outcome = await registry.call("explode", {"text": "x"})
    assert text_of(outcome) == "Error executing tool explode: PermissionError"


@pytest.mark.anyio
async def test_missing_arguments_are_empty():
    registry = ToolRegistry([{"name": "noargs", "handler": lambda args: f"got {args!r}"}])
    outcome = await registry.call("noargs")
    assert isinstance(outcome, ToolSuccess)
    assert text_of(outcome) == "got {}"


@pytest.mark.anyio
async def test_ambient_context_is_used():
    def whoami(args: EchoArgs, context: InvocationContext) -> str:
        return context.get_header("x-user-id") or "anonymous"

    registry = ToolRegistry([mcp_tool(name="whoami", description="", schema=EchoArgs, handler=whoami)])

    assert text_of(await registry.call("whoami", {"text": ""})) == "anonymous"
    with invocation_scope(InvocationContext.from_headers({"x-user-id": "u1"})):
        assert text_of(await registry.call("whoami", {"text": ""})) == "u1"
    explicit = InvocationContext.from_headers({"x-user-id": "u2"})
    assert text_of(await registry.call("whoami", {"text": ""}, explicit)) == "u2"
