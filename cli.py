"""Entry point: ``figma-mcp [--stdio] [--port N]``."""

import logging
import sys
from typing import List, Optional

import figma_tools  # noqa: F401  registers the tools
from config import ConfigError, get_server_config, set_active_config
from mcp_server import mcp

logger = logging.getLogger("figma_mcp")

LOG_FORMAT = "%(asctime)s [%(name)s] [%(levelname)s] %(message)s"


def setup_logging(level: int = logging.INFO) -> None:
    # stdout belongs to the protocol in stdio mode, so logs always go to stderr
    logging.basicConfig(level=level, stream=sys.stderr, format=LOG_FORMAT)


def main(argv: Optional[List[str]] = None) -> None:
    setup_logging()
    try:
        config = get_server_config(argv)
    except ConfigError as e:
        logger.error("Failed to start server: %s", e)
        sys.exit(1)
    set_active_config(config)

    logger.info("FIGMA_API_KEY: [loaded]")
    logger.info("OPENAI_API_KEY: %s", "[loaded]" if config.openai_api_key else "[missing]")

    if config.stdio:
        logger.info("Serving over stdio")
        mcp.run()
    else:
        logger.info("Initializing Figma MCP Server on port %d", config.port)
        mcp.run(transport="sse", host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
