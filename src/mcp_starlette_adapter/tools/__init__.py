from .base import (
    ExecutionFailure,
    OutcomeKind,
    Tool,
    ToolNotFound,
    ToolOutcome,
    ToolSuccess,
    ValidationFailure,
)
from .raw import RawTool, as_tool
from .registry import ToolRegistry
from .schema import SchemaTool, format_output, mcp_tool, to_json_schema

__all__ = [
    "ExecutionFailure",
    "OutcomeKind",
    "RawTool",
    "SchemaTool",
    "Tool",
    "ToolNotFound",
    "ToolOutcome",
    "ToolRegistry",
    "ToolSuccess",
    "ValidationFailure",
    "as_tool",
    "format_output",
    "mcp_tool",
    "to_json_schema",
]
