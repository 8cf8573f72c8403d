"""Server configuration from ``.env``, the environment and CLI flags."""

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from annotate import DEFAULT_MAX_WORKERS, DEFAULT_TOTAL_TIMEOUT
from ux_writing import DEFAULT_MODEL as DEFAULT_UX_WRITING_MODEL
from vision import DEFAULT_BASE_URL, DEFAULT_MODEL, DEFAULT_TIMEOUT

DEFAULT_PORT = 3333


class ConfigError(Exception):
    pass


@dataclass
class ServerConfig:
    figma_api_key: str
    openai_api_key: Optional[str] = None
    port: int = DEFAULT_PORT
    stdio: bool = False
    annotation_max_workers: int = DEFAULT_MAX_WORKERS
    annotation_request_timeout: float = DEFAULT_TIMEOUT
    annotation_total_timeout: float = DEFAULT_TOTAL_TIMEOUT
    vision_model: str = DEFAULT_MODEL
    ux_writing_model: str = DEFAULT_UX_WRITING_MODEL
    openai_base_url: str = DEFAULT_BASE_URL


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="figma-mcp", description="Figma MCP server")
    parser.add_argument("--figma-api-key", help="Figma personal access token")
    parser.add_argument("--openai-api-key", help="API key for image annotation")
    parser.add_argument("--port", type=int, help="Port for the SSE server")
    parser.add_argument("--stdio", action="store_true", help="Serve over stdio instead of SSE")
    return parser.parse_args(argv)


def get_server_config(argv: Optional[List[str]] = None) -> ServerConfig:
    load_dotenv(Path.cwd() / ".env")
    args = _parse_args(argv)

    figma_api_key = args.figma_api_key or os.getenv("FIGMA_API_KEY")
    if not figma_api_key:
        raise ConfigError("FIGMA_API_KEY is required (set it in .env or pass --figma-api-key)")

    port = args.port if args.port is not None else _env_number("PORT", DEFAULT_PORT, int)

    return ServerConfig(
        figma_api_key=figma_api_key,
        openai_api_key=args.openai_api_key or os.getenv("OPENAI_API_KEY") or None,
        port=port,
        stdio=args.stdio or os.getenv("NODE_ENV") == "cli",
        annotation_max_workers=_env_number("ANNOTATION_MAX_WORKERS", DEFAULT_MAX_WORKERS, int),
        annotation_request_timeout=_env_number("ANNOTATION_REQUEST_TIMEOUT", DEFAULT_TIMEOUT, float),
        annotation_total_timeout=_env_number("ANNOTATION_TOTAL_TIMEOUT", DEFAULT_TOTAL_TIMEOUT, float),
        vision_model=os.getenv("VISION_MODEL") or DEFAULT_MODEL,
        ux_writing_model=os.getenv("UX_WRITING_MODEL") or DEFAULT_UX_WRITING_MODEL,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or DEFAULT_BASE_URL,
    )


_active: Optional[ServerConfig] = None


def set_active_config(config: ServerConfig) -> None:
    global _active
    _active = config


def active_config() -> ServerConfig:
    """Config the tools run with; loaded from the environment on first use."""
    global _active
    if _active is None:
        _active = get_server_config([])
    return _active
