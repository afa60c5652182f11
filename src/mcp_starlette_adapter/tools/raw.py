"""Tools described by a hand-written JSON schema."""

from __future__ import annotations as _annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, cast

import jsonschema
from mcp import types

from mcp_starlette_adapter.context import InvocationContext
from mcp_starlette_adapter.exceptions import InvalidToolDefinition
from mcp_starlette_adapter.tools.base import (
    DEFAULT_INPUT_SCHEMA,
    Tool,
    ToolHandler,
    ToolOutcome,
    ToolSuccess,
    ValidationFailure,
    call_handler,
    find_context_parameter,
)
from mcp_starlette_adapter.tools.schema import format_output


def input_schema_issues(arguments: dict[str, Any], schema: Mapping[str, Any]) -> tuple[str, ...]:
    """Validate raw arguments against a JSON schema, one ``"path: message"`` entry per violation."""
    validator = jsonschema.validators.validator_for(schema)(schema)
    issues: list[str] = []
    for error in sorted(validator.iter_errors(arguments), key=lambda e: [str(p) for p in e.absolute_path]):
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        issues.append(f"{path}: {error.message}")
    return tuple(issues)


@dataclass
class RawTool:
    """A tool described by a hand-written JSON schema.

    The handler receives the arguments dict as sent by the caller and returns a
    protocol response: a ``CallToolResult``, or a mapping with a ``content`` list
    and an optional ``isError`` flag. A parameter annotated
    :class:`InvocationContext` (or named ``context``) receives the invocation
    context.
    """

    name: str
    description: str
    handler: ToolHandler
    input_schema: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_INPUT_SCHEMA))
    validate_input: bool = True
    """Check arguments against ``input_schema`` before calling the handler."""

    def __post_init__(self) -> None:
        self._context_kwarg = find_context_parameter(self.handler)

    async def invoke(self, arguments: dict[str, Any], context: InvocationContext) -> ToolOutcome:
        if self.validate_input:
            issues = input_schema_issues(arguments, self.input_schema)
            if issues:
                return ValidationFailure("input", issues)

        result = await call_handler(self.handler, arguments, context, self._context_kwarg)
        if isinstance(result, Mapping) and "content" in result:
            return ToolSuccess(
                types.CallToolResult(
                    content=list(result.get("content") or []),
                    isError=bool(result.get("isError", False)),
                )
            )
        return ToolSuccess(format_output(result))


def as_tool(spec: Tool | Mapping[str, Any]) -> Tool:
    """Coerce a tool specification into the :class:`Tool` capability.

    Accepts anything already satisfying the protocol (``SchemaTool``,
    ``RawTool``, custom classes) or a plain mapping with ``name``,
    ``description``, ``inputSchema`` (or ``input_schema``) and ``handler``.

    Raises:
        InvalidToolDefinition: if the specification cannot be used as a tool
    """
    if isinstance(spec, Mapping):
        name = spec.get("name")
        handler = spec.get("handler")
        if not callable(handler):
            raise InvalidToolDefinition(str(name), "handler must be callable")
        return RawTool(
            name=cast(str, name),
            description=spec.get("description") or "",
            handler=handler,
            input_schema=spec.get("inputSchema") or spec.get("input_schema") or dict(DEFAULT_INPUT_SCHEMA),
            validate_input=spec.get("validate_input", True),
        )
    if isinstance(spec, Tool):
        return spec
    raise InvalidToolDefinition(repr(spec), "not a tool specification")
