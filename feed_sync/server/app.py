"""feed_sync - MCP Server

This module implements the MCP server using FastMCP with multi-transport
support (STDIO, SSE, and Streamable HTTP). The feed store and refresh
orchestrator are constructed once here and shared by every tool.
"""

import asyncio
import os
import sys
from typing import Optional

import click
from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from feed_sync.config import ServerConfig, get_config
from feed_sync.logging_config import logger, setup_logging
from feed_sync.runtime import FeedRuntime
from feed_sync.tools.feed_tools import create_feed_tools


def create_mcp_server(
    config: Optional[ServerConfig] = None,
    runtime: Optional[FeedRuntime] = None,
) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        config: Optional server configuration
        runtime: Optional pre-built runtime (a new one is built from config otherwise)

    Returns:
        Configured FastMCP server instance
    """
    if config is None:
        config = get_config()

    setup_logging(config)
    logger.info(f"Server config: {config.name} at log level {config.log_level}")

    # Configure DNS rebinding protection (disabled by default for development)
    dns_protection = os.getenv("MCP_DNS_REBINDING_PROTECTION", "false").lower() == "true"
    allowed_hosts_env = os.getenv("MCP_ALLOWED_HOSTS", "")
    allowed_hosts = [h.strip() for h in allowed_hosts_env.split(",") if h.strip()] if allowed_hosts_env else []

    logger.info(f"DNS rebinding protection: {'enabled' if dns_protection else 'disabled'}")

    mcp_server = FastMCP(
        config.name or "feed_sync",
        transport_security=TransportSecuritySettings(
            enable_dns_rebinding_protection=dns_protection,
            allowed_hosts=allowed_hosts
        )
    )

    if runtime is None:
        runtime = FeedRuntime(config)
    mcp_server.feed_runtime = runtime

    register_tools(mcp_server, runtime)

    logger.info("Server initialization complete")
    return mcp_server


def register_tools(mcp_server: FastMCP, runtime: FeedRuntime) -> None:
    """Register all feed tools with the server."""
    for tool_func in create_feed_tools(runtime):
        tool_name = tool_func.__name__
        mcp_server.tool(name=tool_name)(tool_func)
        logger.info(f"Registered feed tool: {tool_name}")

    logger.info(f"Server '{mcp_server.name}' initialized")


# Create a server instance that can be imported by the MCP CLI
server = create_mcp_server()


@click.command()
@click.option(
    "--port",
    default=3001,
    help="Port to listen on for SSE or Streamable HTTP transport"
)
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (use 0.0.0.0 for Docker)"
)
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    default="stdio",
    help="Transport type (stdio, sse, or streamable-http)"
)
def main(port: int, host: str, transport: str) -> int:
    """Run the feed_sync server with specified transport."""
    async def run_server():
        """Inner async function to run the server and manage the event loop."""
        runtime: FeedRuntime = server.feed_runtime
        await runtime.start()

        try:
            if transport == "stdio":
                logger.info("Starting server with STDIO transport")
                await server.run_stdio_async()
            elif transport == "sse":
                logger.info(f"Starting server with SSE transport on {host}:{port}")
                server.settings.host = host
                server.settings.port = port
                await server.run_sse_async()
            elif transport == "streamable-http":
                logger.info(f"Starting server with Streamable HTTP transport on {host}:{port}")
                server.settings.host = host
                server.settings.port = port
                server.settings.streamable_http_path = "/mcp"
                await server.run_streamable_http_async()
            else:
                raise ValueError(f"Unknown transport: {transport}")
        finally:
            await runtime.close()

    try:
        asyncio.run(run_server())
        return 0
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        return 0
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        return 1


def main_stdio() -> int:
    """Entry point for STDIO transport (convenience wrapper)."""
    return main.callback(port=3001, host="127.0.0.1", transport="stdio")


def main_http() -> int:
    """Entry point for Streamable HTTP transport (convenience wrapper)."""
    return main.callback(port=3001, host="127.0.0.1", transport="streamable-http")


if __name__ == "__main__":
    sys.exit(main())
