"""
A Starlette app with one MCP tool mounted at /mcp.

Run:
    python examples/simple_server.py
Connect:
    npx -y mcp-remote http://localhost:3000/mcp/sse
"""

import os

import uvicorn
from pydantic import BaseModel, Field
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from mcp_starlette_adapter import MCPAdapter, mcp_tool


class WeatherArgs(BaseModel):
    location: str = Field(description="The city to get weather for")


def get_weather(args: WeatherArgs) -> str:
    return f"Weather for {args.location}: Sunny and 72°F"


adapter = MCPAdapter(
    endpoint="/mcp",
    tools=[
        mcp_tool(
            name="get_weather",
            description="Get weather for a location",
            schema=WeatherArgs,
            handler=get_weather,
        )
    ],
    server_name="demo-server",
    server_version="1.0.0",
)


async def info(request: Request) -> JSONResponse:
    return JSONResponse(adapter.get_metadata())


app = Starlette(
    routes=[
        Route("/", info),
        adapter.mount(),
    ]
)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=int(os.environ.get("PORT", "3000")))
