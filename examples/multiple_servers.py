"""
Three independent MCP servers mounted side by side in one application.

Each adapter owns its sessions: a session opened on /weather-mcp/sse cannot
post messages to /calculator-mcp/message.
"""

import ast
import operator
import os
from datetime import datetime
from zoneinfo import ZoneInfo

import uvicorn
from pydantic import BaseModel, Field
from starlette.applications import Starlette

from mcp_starlette_adapter import MCPAdapter, mcp_tool

_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
    ast.USub: operator.neg,
}


def _evaluate(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, int | float):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_evaluate(node.left), _evaluate(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_evaluate(node.operand))
    raise ValueError(f"Unsupported expression: {ast.dump(node)}")


class WeatherArgs(BaseModel):
    location: str = Field(description="The location to get weather for")


class CalculateArgs(BaseModel):
    expression: str = Field(description="The arithmetic expression to evaluate")


class TimeArgs(BaseModel):
    timezone: str | None = Field(default=None, description="IANA timezone name (optional)")


def calculate(args: CalculateArgs) -> str:
    return f"Result: {_evaluate(ast.parse(args.expression, mode='eval'))}"


def get_time(args: TimeArgs) -> str:
    now = datetime.now(ZoneInfo(args.timezone)) if args.timezone else datetime.now()
    suffix = f" in {args.timezone}" if args.timezone else ""
    return f"Current time{suffix}: {now.isoformat(timespec='seconds')}"


weather = MCPAdapter(
    endpoint="/weather-mcp",
    server_name="weather-mcp-server",
    tools=[
        mcp_tool(
            name="get_weather",
            description="Get the current weather for a location",
            schema=WeatherArgs,
            handler=lambda args: f"Weather for {args.location}: Sunny, 72°F",
        )
    ],
)
calculator = MCPAdapter(
    endpoint="/calculator-mcp",
    server_name="calculator-mcp-server",
    tools=[
        mcp_tool(
            name="calculate",
            description="Calculate the result of an arithmetic expression",
            schema=CalculateArgs,
            handler=calculate,
        )
    ],
)
clock = MCPAdapter(
    endpoint="/time-mcp",
    server_name="time-mcp-server",
    tools=[
        mcp_tool(
            name="get_time",
            description="Get the current time, optionally for a specific timezone",
            schema=TimeArgs,
            handler=get_time,
        )
    ],
)

app = Starlette(routes=[weather.mount(), calculator.mount(), clock.mount()])


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=int(os.environ.get("PORT", "3000")))
