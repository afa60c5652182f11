"""
The different ways of defining tools.

- ``mcp_tool`` with an output schema: the return value is validated and
  rendered as JSON text.
- ``mcp_tool`` without an output schema: the handler must return a string.
- A raw tool: a plain mapping with a hand-written JSON schema whose handler
  returns the protocol response itself.
- A handler that reads the headers of the HTTP request that called it.
"""

from typing import Any

from pydantic import BaseModel, Field

from mcp_starlette_adapter import InvocationContext, MCPAdapter, mcp_tool


class WeatherArgs(BaseModel):
    location: str = Field(description="The location to get weather for")


class Weather(BaseModel):
    """Weather information for the requested location"""

    temperature: float = Field(description="Current temperature in °F")
    condition: str = Field(description="Weather condition (e.g., Sunny, Rainy)")
    humidity: float = Field(description="Humidity percentage")
    location: str = Field(description="The location this weather is for")


weather_tool = mcp_tool(
    name="get_weather",
    description="Get the current weather for a location",
    schema=WeatherArgs,
    output_schema=Weather,
    handler=lambda args: Weather(temperature=72, condition="Sunny", humidity=45, location=args.location),
)


class GreetingArgs(BaseModel):
    name: str = Field(description="The name to greet")
    formal: bool = Field(default=False, description="Whether to use formal language")


def greet(args: GreetingArgs) -> str:
    if args.formal:
        return f"Good day, {args.name}. How may I be of service?"
    return f"Hey {args.name}! How's it going?"


greeting_tool = mcp_tool(
    name="greeting",
    description="Get a personalized greeting",
    schema=GreetingArgs,
    handler=greet,
)


async def search_web(args: dict[str, Any]) -> dict[str, Any]:
    query = args["query"]
    return {
        "content": [{"type": "text", "text": f"Search results for: {query}"}],
        "isError": False,
    }


search_tool = {
    "name": "search_web",
    "description": "Search the web for information",
    "inputSchema": {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "The search query"},
        },
        "required": ["query"],
    },
    "handler": search_web,
}


class WhoAmIArgs(BaseModel):
    pass


def whoami(args: WhoAmIArgs, context: InvocationContext) -> str:
    token = context.get_header("authorization")
    if token is None:
        return "Anonymous caller"
    return f"Caller presented credentials ({len(token)} characters)"


whoami_tool = mcp_tool(
    name="whoami",
    description="Describe the caller of this tool",
    schema=WhoAmIArgs,
    handler=whoami,
)


adapter = MCPAdapter(
    endpoint="/tools",
    tools=[weather_tool, greeting_tool, search_tool, whoami_tool],
    debug=True,
)


if __name__ == "__main__":
    adapter.run()
