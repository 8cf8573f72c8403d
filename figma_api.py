"""Thin wrapper over the Figma REST API.

All calls take the API key explicitly; nothing here reads the environment.
Failures are raised as ``FigmaFetchError`` subclasses so callers can tell a
missing node from a bad token from a flaky network.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

FIGMA_API_BASE = "https://api.figma.com/v1"
DEFAULT_TIMEOUT = 30.0
METADATA_KEYS = ("name", "lastModified", "thumbnailUrl")
IMAGE_BATCH_SIZE = 50


class FigmaFetchError(Exception):
    """A document, node or image listing could not be retrieved."""


class NotFoundError(FigmaFetchError):
    pass


class AuthError(FigmaFetchError):
    pass


class TransientError(FigmaFetchError):
    pass


@dataclass
class FetchedDesign:
    """One fetched snapshot: document metadata plus the requested root nodes,
    keyed by node id in request order."""
    metadata: Dict[str, Any]
    roots: Dict[str, Dict[str, Any]] = field(default_factory=dict)


def normalize_node_id(node_id: str) -> str:
    """Figma URLs write node ids as ``1-23``; the API wants ``1:23``."""
    return node_id.strip().replace("-", ":")


def figma_api_get(path: str, api_key: str, params: Optional[Dict[str, Any]] = None,
                  timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    url = f"{FIGMA_API_BASE}{path}"
    headers = {"X-Figma-Token": api_key}
    try:
        res = requests.get(url, headers=headers, params=params, timeout=timeout)
    except (requests.ConnectionError, requests.Timeout) as e:
        raise TransientError(f"Request to {path} failed: {e}") from e
    except requests.RequestException as e:
        raise FigmaFetchError(f"Request to {path} failed: {e}") from e

    if res.status_code == 404:
        raise NotFoundError(f"Not found: {path}")
    if res.status_code in (401, 403):
        raise AuthError(f"Figma rejected the API key ({res.status_code})")
    if res.status_code == 429 or res.status_code >= 500:
        raise TransientError(f"Figma API returned {res.status_code} for {path}")
    if not res.ok:
        raise FigmaFetchError(f"Figma API returned {res.status_code} for {path}: {res.text}")

    try:
        return res.json()
    except ValueError as e:
        raise FigmaFetchError(f"Invalid JSON from {path}") from e


def _metadata(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {key: raw[key] for key in METADATA_KEYS if raw.get(key) is not None}


def fetch_file(file_key: str, api_key: str, depth: Optional[int] = None,
               timeout: float = DEFAULT_TIMEOUT) -> FetchedDesign:
    params = {"depth": depth} if depth else None
    raw = figma_api_get(f"/files/{file_key}", api_key, params=params, timeout=timeout)
    document = raw.get("document")
    if not document:
        raise NotFoundError("Document field missing from file-level response.")
    return FetchedDesign(_metadata(raw), {document.get("id", "0:0"): document})


def fetch_node(file_key: str, node_id: str, api_key: str, depth: Optional[int] = None,
               timeout: float = DEFAULT_TIMEOUT) -> FetchedDesign:
    """Fetch one or more nodes; ``node_id`` may be a comma-separated list."""
    ids = [normalize_node_id(i) for i in node_id.split(",") if i.strip()]
    if not ids:
        raise NotFoundError("No node id given.")
    params: Dict[str, Any] = {"ids": ",".join(ids)}
    if depth:
        params["depth"] = depth
    raw = figma_api_get(f"/files/{file_key}/nodes", api_key, params=params, timeout=timeout)

    nodes = raw.get("nodes") or {}
    roots = {}
    for nid in ids:
        entry = nodes.get(nid) or {}
        document = entry.get("document")
        if not document:
            raise NotFoundError(
                f"Node ID '{nid}' not found in response. Available nodes: {list(nodes.keys())}"
            )
        roots[nid] = document
    return FetchedDesign(_metadata(raw), roots)


def fetch_design(file_key: str, api_key: str, node_id: Optional[str] = None,
                 depth: Optional[int] = None, timeout: float = DEFAULT_TIMEOUT) -> FetchedDesign:
    if node_id:
        return fetch_node(file_key, node_id, api_key, depth=depth, timeout=timeout)
    return fetch_file(file_key, api_key, depth=depth, timeout=timeout)


def resolve_image_urls(file_key: str, node_ids: List[str], api_key: str,
                       image_format: str = "png",
                       timeout: float = DEFAULT_TIMEOUT) -> Dict[str, str]:
    """Render URLs for ``node_ids``. Nodes Figma could not render are left
    out of the result. URLs expire after a while, so use them promptly.

    Ids are requested in batches of ``IMAGE_BATCH_SIZE``; a failed batch only
    loses its own nodes. The error is raised when every batch failed.
    """
    urls: Dict[str, str] = {}
    last_error: Optional[FigmaFetchError] = None
    failed = 0
    batches = [node_ids[i:i + IMAGE_BATCH_SIZE] for i in range(0, len(node_ids), IMAGE_BATCH_SIZE)]
    for batch in batches:
        params = {"ids": ",".join(batch), "format": image_format}
        try:
            result = figma_api_get(f"/images/{file_key}", api_key, params=params, timeout=timeout)
        except FigmaFetchError as e:
            logger.warning("Image render failed for %d nodes: %s", len(batch), e)
            last_error = e
            failed += 1
            continue
        images = result.get("images") or {}
        urls.update((nid, url) for nid, url in images.items() if url)
    if batches and failed == len(batches):
        raise last_error
    return urls


def get_image_fill_urls(file_key: str, api_key: str,
                        timeout: float = DEFAULT_TIMEOUT) -> Dict[str, str]:
    """imageRef -> download URL for every image fill in the file."""
    result = figma_api_get(f"/files/{file_key}/images", api_key, timeout=timeout)
    return (result.get("meta") or {}).get("images") or {}


def download_to(url: str, destination: Path, timeout: float = DEFAULT_TIMEOUT) -> Path:
    res = requests.get(url, timeout=timeout)
    res.raise_for_status()
    destination.write_bytes(res.content)
    return destination
