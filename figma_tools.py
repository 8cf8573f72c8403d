import logging
from functools import partial
from pathlib import Path
from typing import List, Optional, Tuple

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import ServerConfig, active_config
from figma_api import (
    FigmaFetchError,
    download_to,
    fetch_design,
    fetch_node,
    get_image_fill_urls,
    normalize_node_id,
    resolve_image_urls,
)
from mcp_server import mcp
from pipeline import simplify_and_annotate
from ux_writing import UXWritingError, evaluate_label
from vision import annotate_image

logger = logging.getLogger(__name__)


def get_design_yaml(file_key: str, node_id: Optional[str] = None, depth: Optional[int] = None,
                    config: Optional[ServerConfig] = None) -> str:
    """Fetch a file or node(s) and return the simplified, annotated YAML."""
    config = config or active_config()
    logger.info(
        "Fetching %s of %s %s",
        f"{depth} layers deep" if depth else "all layers",
        f"node {node_id} from file" if node_id else "full file",
        file_key,
    )
    design = fetch_design(file_key, config.figma_api_key, node_id=node_id, depth=depth)
    logger.info("Successfully fetched file: %s", design.metadata.get("name"))

    resolver = partial(resolve_image_urls, file_key, api_key=config.figma_api_key)
    annotate = partial(
        annotate_image,
        model=config.vision_model,
        base_url=config.openai_base_url,
        timeout=config.annotation_request_timeout,
    )
    return simplify_and_annotate(
        design,
        config.openai_api_key,
        resolve_image_urls=resolver,
        annotate=annotate,
        max_workers=config.annotation_max_workers,
        total_timeout=config.annotation_total_timeout,
    )


class ImageRequest(BaseModel):
    """One image to download."""
    model_config = ConfigDict(str_strip_whitespace=True)

    nodeId: str = Field(..., min_length=1, description="The ID of the Figma image node to fetch, formatted as 1234:5678")
    fileName: str = Field(..., min_length=1, description="The local name for saving the fetched file")
    imageRef: Optional[str] = Field(
        default=None,
        description="If a node has an imageRef fill, you must include this variable. "
                    "Leave blank when downloading Vector SVG images.",
    )


def _render_format(file_name: str) -> str:
    return "svg" if file_name.lower().endswith(".svg") else "png"


def save_figma_images(file_key: str, nodes: List[ImageRequest], local_path: str,
                      config: Optional[ServerConfig] = None) -> Tuple[List[str], int]:
    """Download image fills and rendered nodes into ``local_path``.

    Returns the saved file names and the number of downloads that failed.
    Listing failures (bad key, missing file) raise ``FigmaFetchError``.
    """
    config = config or active_config()
    out_dir = Path(local_path)
    out_dir.mkdir(parents=True, exist_ok=True)

    targets: List[Tuple[ImageRequest, Optional[str]]] = []

    fills = [n for n in nodes if n.imageRef]
    if fills:
        fill_urls = get_image_fill_urls(file_key, config.figma_api_key)
        targets.extend((n, fill_urls.get(n.imageRef)) for n in fills)

    renders = [n for n in nodes if not n.imageRef]
    for image_format in ("png", "svg"):
        group = [n for n in renders if _render_format(n.fileName) == image_format]
        if not group:
            continue
        ids = [normalize_node_id(n.nodeId) for n in group]
        urls = resolve_image_urls(file_key, ids, config.figma_api_key, image_format=image_format)
        targets.extend((n, urls.get(nid)) for n, nid in zip(group, ids))

    saved = []
    failed = 0
    for node, url in targets:
        if not url:
            logger.warning("No image URL for node %s", node.nodeId)
            failed += 1
            continue
        try:
            download_to(url, out_dir / node.fileName)
        except (requests.RequestException, OSError) as e:
            logger.error("Failed to download image %s: %s", node.nodeId, e)
            failed += 1
            continue
        saved.append(node.fileName)
    return saved, failed


def evaluate_node_label(file_key: str, node_id: str, label: str,
                        config: Optional[ServerConfig] = None) -> str:
    """Ask the chat model whether ``label`` suits the node it belongs to."""
    config = config or active_config()
    if not config.openai_api_key:
        raise UXWritingError("OPENAI_API_KEY is not configured")
    design = fetch_node(file_key, node_id, config.figma_api_key)
    context = simplify_and_annotate(design)
    return evaluate_label(
        context,
        label,
        config.openai_api_key,
        model=config.ux_writing_model,
        base_url=config.openai_base_url,
        timeout=config.annotation_request_timeout,
    )


@mcp.tool(
    name="get_figma_data",
    description="""
    When the nodeId cannot be obtained, obtain the layout information about the entire Figma file.

    Returns a simplified YAML tree of the design: layout, text, styles (deduplicated under
    globalVars), whether each node is visible, a dimming overlay, or obstructed by one, and
    a short description of every image or icon node.
    """
)
def get_figma_data(fileKey: str, nodeId: Optional[str] = None, depth: Optional[int] = None):
    try:
        return get_design_yaml(fileKey, nodeId, depth)
    except FigmaFetchError as e:
        logger.error("Error fetching file %s: %s", fileKey, e)
        return {"error": f"Error fetching file: {e}"}


@mcp.tool(
    name="download_figma_images",
    description="""
    Download SVG and PNG images used in a Figma file based on the IDs of image or icon nodes.

    Each entry in `nodes` needs `nodeId` and `fileName`; include `imageRef` when the node has
    an image fill. `localPath` is the absolute directory to save into; it is created if missing.
    """
)
def download_figma_images(fileKey: str, nodes: List[ImageRequest], localPath: str):
    try:
        requested = [ImageRequest.model_validate(n) for n in nodes]
    except ValidationError as e:
        return {"error": f"Invalid image request: {e}"}

    try:
        saved, failed = save_figma_images(fileKey, requested, localPath)
    except (FigmaFetchError, OSError) as e:
        logger.error("Error downloading images from file %s: %s", fileKey, e)
        return {"error": f"Error downloading images: {e}"}

    if failed:
        return "Failed"
    return f"Success, {len(saved)} images downloaded: {', '.join(saved)}"


@mcp.tool(
    name="evaluate_ux_writing",
    description="""
    Judge whether a piece of UI text suits its role (button, header, etc.) in the given Figma node,
    and suggest improvements from a UX writing perspective.
    """
)
def evaluate_ux_writing(fileKey: str, nodeId: str, label: str):
    try:
        return {"reply": evaluate_node_label(fileKey, nodeId, label)}
    except (FigmaFetchError, UXWritingError) as e:
        logger.error("Error evaluating label for node %s: %s", nodeId, e)
        return {"error": f"Error evaluating UX writing: {e}"}
