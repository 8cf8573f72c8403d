from fastmcp import FastMCP

mcp = FastMCP("Figma MCP Server")
