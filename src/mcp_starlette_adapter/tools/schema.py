"""Pydantic-validated tools.

:func:`mcp_tool` turns a pydantic schema and a plain function into a tool: the
schema is published as JSON Schema, arguments are validated before the function
runs, and whatever the function returns is validated (when an output schema is
given) and formatted into a protocol response.
"""

from __future__ import annotations as _annotations

import copy
import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pydantic_core
from mcp import types
from pydantic import BaseModel, TypeAdapter, ValidationError

from mcp_starlette_adapter.context import InvocationContext
from mcp_starlette_adapter.tools.base import (
    ToolHandler,
    ToolOutcome,
    ToolSuccess,
    ValidationFailure,
    call_handler,
    find_context_parameter,
)

OUTPUT_SCHEMA_KEY = "x-output-schema"

_DEFS_PREFIX = "#/$defs/"

# keys pydantic emits that carry no meaning for a tool caller
_META_KEYS = ("$schema", "title")


def to_json_schema(schema: Any) -> dict[str, Any]:
    """Convert a pydantic model (or any type pydantic can validate) to a published JSON schema.

    References into ``$defs`` are inlined so that consumers never need to resolve
    them; ``$defs`` is only kept when a recursive model makes inlining
    impossible. Top-level meta keys (``$schema``, ``title``) are dropped.
    """
    raw = TypeAdapter(schema).json_schema()
    defs: dict[str, Any] = raw.pop("$defs", {})
    inlined = _inline_refs(raw, defs, frozenset())
    if defs and _contains_ref(inlined):
        inlined["$defs"] = defs
    for key in _META_KEYS:
        inlined.pop(key, None)
    return inlined


def _inline_refs(node: Any, defs: Mapping[str, Any], resolving: frozenset[str]) -> Any:
    if isinstance(node, list):
        return [_inline_refs(item, defs, resolving) for item in node]
    if not isinstance(node, dict):
        return node

    ref = node.get("$ref")
    if isinstance(ref, str) and ref.startswith(_DEFS_PREFIX):
        name = ref[len(_DEFS_PREFIX) :]
        if name in defs and name not in resolving:
            target = _inline_refs(copy.deepcopy(defs[name]), defs, resolving | {name})
            siblings = {k: _inline_refs(v, defs, resolving) for k, v in node.items() if k != "$ref"}
            return {**target, **siblings}
        return dict(node)

    return {key: _inline_refs(value, defs, resolving) for key, value in node.items()}


def _contains_ref(node: Any) -> bool:
    if isinstance(node, dict):
        return "$ref" in node or any(_contains_ref(v) for v in node.values())
    if isinstance(node, list):
        return any(_contains_ref(v) for v in node)
    return False


def validation_issues(error: ValidationError) -> tuple[str, ...]:
    """One ``"field.path: message"`` entry per pydantic error."""
    issues: list[str] = []
    for detail in error.errors():
        path = ".".join(str(part) for part in detail["loc"]) or "(root)"
        issues.append(f"{path}: {detail['msg']}")
    return tuple(issues)


def is_protocol_response(value: Any) -> bool:
    """True for a ``CallToolResult`` or a mapping carrying a ``content`` list."""
    if isinstance(value, types.CallToolResult):
        return True
    return isinstance(value, Mapping) and isinstance(value.get("content"), list)


def _text(text: str) -> types.CallToolResult:
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)])


def _is_structured(value: Any) -> bool:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return True
    return isinstance(value, BaseModel | Mapping | list | tuple | set | frozenset)


def format_output(output: Any) -> types.CallToolResult:
    """Format any handler return value into a protocol response.

    Always uses text content for maximum client compatibility.
    """
    if isinstance(output, types.CallToolResult):
        return output
    if is_protocol_response(output):
        return types.CallToolResult.model_validate(output)

    if isinstance(output, str):
        return _text(output)
    if output is None:
        return _text("")
    if _is_structured(output):
        return _text(pydantic_core.to_json(output, fallback=str, indent=2).decode())
    if isinstance(output, bool):
        return _text("true" if output else "false")
    return _text(str(output))


@dataclass
class SchemaTool:
    """A tool whose arguments and return value are checked with pydantic."""

    name: str
    description: str
    schema: Any
    handler: ToolHandler
    output_schema: Any | None = None
    input_schema: dict[str, Any] = field(init=False)

    def __post_init__(self) -> None:
        self._input_adapter: TypeAdapter[Any] = TypeAdapter(self.schema)
        self._output_adapter: TypeAdapter[Any] | None = (
            TypeAdapter(self.output_schema) if self.output_schema is not None else None
        )
        self._context_kwarg = find_context_parameter(self.handler)

        input_schema = to_json_schema(self.schema)
        if self.output_schema is not None:
            input_schema[OUTPUT_SCHEMA_KEY] = to_json_schema(self.output_schema)
        self.input_schema = input_schema

    async def invoke(self, arguments: dict[str, Any], context: InvocationContext) -> ToolOutcome:
        try:
            validated = self._input_adapter.validate_python(arguments)
        except ValidationError as e:
            return ValidationFailure("input", validation_issues(e))

        result = await call_handler(self.handler, validated, context, self._context_kwarg)

        if self._output_adapter is not None:
            try:
                self._output_adapter.validate_python(result)
            except ValidationError as e:
                return ValidationFailure("output", validation_issues(e))
        elif not isinstance(result, str) and not is_protocol_response(result):
            return ValidationFailure(
                "output",
                (f"expected a string return value when no output schema is declared, got {type(result).__name__}",),
            )

        return ToolSuccess(format_output(result))


def mcp_tool(
    name: str,
    description: str,
    schema: Any,
    handler: ToolHandler,
    output_schema: Any | None = None,
) -> SchemaTool:
    """Create a type-safe tool with input and output validation.

    Args:
        name: unique tool name
        description: what the tool does, shown to callers
        schema: pydantic model (or any type pydantic validates) for the arguments
        handler: sync or async function receiving the validated arguments, and
            the invocation context if it declares a parameter for it
        output_schema: optional schema the return value must satisfy; without
            it the handler must return a string

    Examples:
        ```python
        class WeatherArgs(BaseModel):
            location: str = Field(description="The location to get weather for")

        weather = mcp_tool(
            name="get_weather",
            description="Get the current weather for a location",
            schema=WeatherArgs,
            handler=lambda args: f"Weather for {args.location}: Sunny, 72°F",
        )
        ```
    """
    return SchemaTool(
        name=name,
        description=description,
        schema=schema,
        handler=handler,
        output_schema=output_schema,
    )
