from __future__ import annotations as _annotations

from collections.abc import Iterable, Mapping
from typing import Any

from mcp import types

from mcp_starlette_adapter.context import InvocationContext, get_invocation_context
from mcp_starlette_adapter.exceptions import InvalidToolDefinition
from mcp_starlette_adapter.tools.base import (
    ExecutionFailure,
    Tool,
    ToolNotFound,
    ToolOutcome,
    validate_tool_definition,
)
from mcp_starlette_adapter.tools.raw import as_tool
from mcp_starlette_adapter.utilities.logging import get_logger

logger = get_logger(__name__)

ToolSpec = Tool | Mapping[str, Any]


class ToolRegistry:
    """Published tool definitions and the tools behind them.

    Invalid specifications are logged and skipped; one bad tool never prevents
    the others from being registered.
    """

    def __init__(self, tools: Iterable[ToolSpec] | None = None):
        self._definitions: dict[str, types.Tool] = {}
        self._tools: dict[str, Tool] = {}
        for spec in tools or ():
            self.register(spec)

    def register(self, spec: ToolSpec) -> types.Tool | None:
        """Register one tool specification.

        Returns:
            the published definition, or None if the specification was rejected
        """
        try:
            tool = as_tool(spec)
            definition = validate_tool_definition(tool.name, tool.description, tool.input_schema)
        except InvalidToolDefinition as e:
            logger.error(str(e))
            return None

        if definition.name in self._tools:
            logger.warning(f"Tool already exists, skipping duplicate: {definition.name}")
            return None

        self._definitions[definition.name] = definition
        self._tools[definition.name] = tool
        return definition

    def list_definitions(self) -> list[types.Tool]:
        return list(self._definitions.values())

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._definitions)

    def summaries(self) -> list[dict[str, str]]:
        """Name and description of every registered tool."""
        return [
            {"name": definition.name, "description": definition.description or ""}
            for definition in self._definitions.values()
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def call(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        context: InvocationContext | None = None,
    ) -> ToolOutcome:
        """Invoke a tool by name.

        Never raises for tool-level problems: an unknown name, invalid arguments
        or an exception from the tool all come back as outcomes.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.error(f"Unknown tool called: {name}")
            return ToolNotFound(name)

        if context is None:
            context = get_invocation_context()

        try:
            return await tool.invoke(arguments or {}, context)
        except Exception as e:
            logger.exception(f"Error executing tool {name}")
            return ExecutionFailure(name, e)
