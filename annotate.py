"""Resolve image-bearing nodes to URLs and describe each one.

Each node gets exactly one annotation attempt. Requests run on a bounded
thread pool; a failing request turns into an inline failure message on that
node and never affects its siblings. Anything still running when the overall
deadline passes is cancelled and marked as timed out.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Mapping, Optional

from figma_api import FigmaFetchError
from transform import ImageInfo

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4
DEFAULT_TOTAL_TIMEOUT = 120.0
FAILURE_PREFIX = "Image analysis failed"

ImageResolver = Callable[[List[str]], Dict[str, str]]
Annotator = Callable[[str], str]


def failure_marker(reason: object) -> str:
    return f"{FAILURE_PREFIX}: {reason}"


def resolve_images(node_ids: List[str], resolver: ImageResolver,
                   log: Optional[logging.Logger] = None) -> Dict[str, str]:
    """node id -> image URL. A failed lookup means no images, not an error."""
    log = log or logger
    if not node_ids:
        return {}
    try:
        urls = resolver(list(node_ids))
    except FigmaFetchError as e:
        log.warning("Could not resolve image URLs for %d nodes: %s", len(node_ids), e)
        return {}
    return {nid: urls[nid] for nid in node_ids if urls.get(nid)}


def annotate_images(image_urls: Mapping[str, str], annotator: Annotator,
                    max_workers: int = DEFAULT_MAX_WORKERS,
                    total_timeout: Optional[float] = DEFAULT_TOTAL_TIMEOUT,
                    log: Optional[logging.Logger] = None) -> Dict[str, str]:
    """node id -> description or failure marker, one entry per input URL."""
    log = log or logger
    results: Dict[str, str] = {}
    if not image_urls:
        return results

    executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="annotate")
    try:
        futures = {executor.submit(annotator, url): node_id for node_id, url in image_urls.items()}
        done, pending = wait(futures, timeout=total_timeout)

        for future in done:
            node_id = futures[future]
            try:
                results[node_id] = future.result()
            except Exception as e:
                log.warning("Annotation failed for node %s: %s", node_id, e)
                results[node_id] = failure_marker(e)

        if pending:
            log.warning("Annotation deadline passed with %d requests unfinished", len(pending))
        for future in pending:
            future.cancel()
            results[futures[future]] = failure_marker("timed out")
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return results


def resolve_and_annotate(node_ids: List[str], resolver: Optional[ImageResolver],
                         annotator: Optional[Annotator] = None,
                         max_workers: int = DEFAULT_MAX_WORKERS,
                         total_timeout: Optional[float] = DEFAULT_TOTAL_TIMEOUT,
                         log: Optional[logging.Logger] = None) -> Dict[str, ImageInfo]:
    """Without an annotator, nodes still get their URL but no annotation."""
    if resolver is None:
        return {}
    urls = resolve_images(node_ids, resolver, log)
    if annotator is None:
        return {nid: ImageInfo(url) for nid, url in urls.items()}
    annotations = annotate_images(urls, annotator, max_workers, total_timeout, log)
    return {nid: ImageInfo(url, annotations[nid]) for nid, url in urls.items()}
