"""Tool capability, invocation outcomes and shared handler plumbing."""

from __future__ import annotations as _annotations

import inspect
import typing
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Literal, Protocol, runtime_checkable

import jsonschema
from mcp import types
from pydantic import ValidationError as PydanticValidationError

from mcp_starlette_adapter.context import InvocationContext
from mcp_starlette_adapter.exceptions import InvalidToolDefinition

DEFAULT_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}

ToolHandler = Callable[..., Any]


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    EXECUTION_ERROR = "execution_error"
    NOT_FOUND = "not_found"


def error_result(text: str) -> types.CallToolResult:
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)], isError=True)


@dataclass(frozen=True)
class ToolSuccess:
    """The tool ran and produced a protocol response.

    The response itself may still carry ``isError=True`` when a raw tool chose to
    report a failure that way.
    """

    result: types.CallToolResult
    kind: ClassVar[OutcomeKind] = OutcomeKind.SUCCESS

    def to_result(self) -> types.CallToolResult:
        return self.result


@dataclass(frozen=True)
class ValidationFailure:
    """Arguments or return value did not match the declared schema."""

    stage: Literal["input", "output"]
    issues: tuple[str, ...]
    kind: ClassVar[OutcomeKind] = OutcomeKind.VALIDATION_ERROR

    @property
    def message(self) -> str:
        return f"{self.stage} validation error: {', '.join(self.issues)}"

    def to_result(self) -> types.CallToolResult:
        return error_result(self.message)


@dataclass(frozen=True)
class ExecutionFailure:
    """The tool's own code raised."""

    tool_name: str
    error: BaseException = field(compare=False)
    kind: ClassVar[OutcomeKind] = OutcomeKind.EXECUTION_ERROR

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__

    def to_result(self) -> types.CallToolResult:
        return error_result(f"Error executing tool {self.tool_name}: {self.message}")


@dataclass(frozen=True)
class ToolNotFound:
    """No tool is registered under the requested name."""

    name: str
    kind: ClassVar[OutcomeKind] = OutcomeKind.NOT_FOUND

    def to_result(self) -> types.CallToolResult:
        return error_result(f"Error: Unknown tool '{self.name}'")


ToolOutcome = ToolSuccess | ValidationFailure | ExecutionFailure | ToolNotFound


@runtime_checkable
class Tool(Protocol):
    """Anything the registry can publish and invoke.

    ``invoke`` returns a :class:`ToolSuccess` or :class:`ValidationFailure`;
    exceptions raised by user code propagate and are turned into an
    :class:`ExecutionFailure` by the registry.
    """

    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def input_schema(self) -> dict[str, Any]: ...

    async def invoke(self, arguments: dict[str, Any], context: InvocationContext) -> ToolOutcome: ...


def validate_tool_definition(name: Any, description: Any, input_schema: Any) -> types.Tool:
    """Build the published definition of a tool and check it against the protocol's tool shape.

    Raises:
        InvalidToolDefinition: if the definition does not validate
    """
    label = name if isinstance(name, str) else repr(name)
    if not isinstance(name, str) or not name:
        raise InvalidToolDefinition(label, "name must be a non-empty string")
    schema = input_schema or dict(DEFAULT_INPUT_SCHEMA)
    if not isinstance(schema, Mapping) or schema.get("type") != "object":
        raise InvalidToolDefinition(label, "inputSchema must be a JSON schema with type 'object'")
    try:
        jsonschema.validators.validator_for(schema).check_schema(schema)
    except jsonschema.SchemaError as e:
        raise InvalidToolDefinition(label, f"inputSchema is not a valid JSON schema: {e.message}") from e
    try:
        return types.Tool.model_validate({"name": name, "description": description, "inputSchema": dict(schema)})
    except PydanticValidationError as e:
        raise InvalidToolDefinition(label, str(e)) from e


def find_context_parameter(fn: Callable[..., Any]) -> str | None:
    """
    Inspect a handler signature to find the parameter that should receive the
    invocation context: one annotated with InvocationContext, one named
    ``context``, or else a second positional parameter after the arguments.
    Returns the name of the parameter if found, otherwise None.
    """
    try:
        sig = inspect.signature(fn)
    except ValueError:  # pragma: no cover
        return None

    try:
        hints = typing.get_type_hints(fn)
    except (NameError, TypeError):
        hints = {}

    for param_name, param in sig.parameters.items():
        annotation = hints.get(param_name, param.annotation)
        if annotation is InvocationContext:
            return param_name
        if any(arg is InvocationContext for arg in typing.get_args(annotation)):
            return param_name

    if "context" in sig.parameters:
        return "context"

    positional = [p for p in sig.parameters.values() if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
    if len(positional) >= 2:
        second = positional[1]
        if second.kind is second.POSITIONAL_OR_KEYWORD and second.default is second.empty:
            return second.name
    return None


async def call_handler(
    fn: ToolHandler,
    arguments: Any,
    context: InvocationContext,
    context_kwarg: str | None,
) -> Any:
    """Call a sync or async handler, passing the context if it asks for one."""
    kwargs = {context_kwarg: context} if context_kwarg is not None else {}
    result = fn(arguments, **kwargs)
    if inspect.isawaitable(result):
        result = await typing.cast(Awaitable[Any], result)
    return result

