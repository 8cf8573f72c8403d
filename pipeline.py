"""Fetched design -> annotated YAML.

Runs in two phases so the tree walk never waits on the network:
collect the image-bearing node ids and annotate them (concurrently), then
walk each root once with the finished annotations in hand.
"""

import logging
from typing import Any, Callable, Dict, Optional

from annotate import DEFAULT_MAX_WORKERS, DEFAULT_TOTAL_TIMEOUT, ImageResolver, resolve_and_annotate
from figma_api import FetchedDesign
from serializer import build_result, dump_yaml
from transform import ObstructionOrder, collect_image_node_ids, simplify_tree
from vision import annotate_image

logger = logging.getLogger(__name__)


def _bind_credential(annotate: Callable[[str, str], str], credential: str) -> Callable[[str], str]:
    def annotator(url: str) -> str:
        return annotate(url, credential)
    return annotator


def simplify_design(
    design: FetchedDesign,
    credential: Optional[str] = None,
    resolve_image_urls: Optional[ImageResolver] = None,
    annotate: Callable[[str, str], str] = annotate_image,
    max_workers: int = DEFAULT_MAX_WORKERS,
    total_timeout: Optional[float] = DEFAULT_TOTAL_TIMEOUT,
    order: ObstructionOrder = ObstructionOrder.DECLARATION,
    log: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """Build the ``{metadata, nodes, globalVars}`` document.

    ``resolve_image_urls`` maps node ids to image URLs; without it no image
    work is done. ``annotate(url, credential)`` describes one image and is
    only called when a credential is given.
    """
    log = log or logger

    # First-seen order, each id once even when roots overlap.
    node_ids = list(dict.fromkeys(
        node_id for root in design.roots.values() for node_id in collect_image_node_ids(root)
    ))
    log.info("Found %d image-bearing nodes", len(node_ids))

    annotator = _bind_credential(annotate, credential) if credential else None
    if annotator is None and node_ids:
        log.info("No vision credential configured, skipping image annotation")

    images = resolve_and_annotate(
        node_ids,
        resolve_image_urls,
        annotator,
        max_workers=max_workers,
        total_timeout=total_timeout,
        log=log,
    )

    roots = {
        root_id: simplify_tree(root, images=images, order=order)
        for root_id, root in design.roots.items()
    }
    return build_result(design.metadata, roots)


def simplify_and_annotate(design: FetchedDesign, credential: Optional[str] = None, **kwargs) -> str:
    """``simplify_design`` rendered as YAML."""
    result = simplify_design(design, credential, **kwargs)
    (kwargs.get("log") or logger).info("Generating YAML result")
    return dump_yaml(result)
