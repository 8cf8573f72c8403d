# transform.py
"""Figma node tree -> simplified, annotated tree.

Everything here is pure: no network, no logging side effects. The walker
reads a raw Figma node dict and returns frozen ``SimplifiedNode`` objects;
deduplication of style values happens later, in ``serializer``.

Overlay detection is a heuristic. A node counts as a dimming overlay when
it spans the full width of its enclosing frame, is at least
``OVERLAY_MIN_HEIGHT`` tall, and is either translucent or named like one
("Dimmed", "Overlay Background", ...). Nodes under an overlay are reported
as obstructed; see ``ObstructionOrder`` for which nodes that covers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

FRAME_TYPE = "FRAME"
TEXT_TYPE = "TEXT"
IMAGE_NODE_TYPES = ("IMAGE", "VECTOR")
UNNAMED = "Unnamed"

OVERLAY_MIN_HEIGHT = 100
OVERLAY_MAX_OPACITY = 0.6
OVERLAY_NAME_HINTS = ("dimm", "overlay")


class Obstruction(str, Enum):
    VISIBLE = "visible"
    OVERLAY = "overlay"
    OBSTRUCTED = "obstructed"


class ObstructionOrder(str, Enum):
    """Which siblings an overlay obstructs.

    DECLARATION: siblings are visited in declaration order, so an overlay
    obstructs the siblings declared after it.
    PAINT: siblings are visited last-declared first, so an overlay obstructs
    the siblings declared before it (the ones painted underneath).

    In both cases the overlay's own descendants are obstructed, and the
    output keeps declaration order.
    """
    DECLARATION = "declaration"
    PAINT = "paint"


@dataclass(frozen=True)
class ImageInfo:
    """Resolved image for one node. ``annotation`` is the model's description
    or an inline failure message."""
    url: str
    annotation: Optional[str] = None


@dataclass(frozen=True)
class SimplifiedNode:
    id: str
    name: str
    type: str
    obstruction: Obstruction
    text: Optional[str] = None
    bounding_box: Optional[Dict[str, float]] = None
    opacity: Optional[float] = None
    fills: Optional[List[Any]] = None
    strokes: Optional[List[Any]] = None
    stroke_weight: Optional[float] = None
    text_style: Optional[Dict[str, Any]] = None
    effects: Optional[List[Dict[str, Any]]] = None
    layout: Optional[Dict[str, Any]] = None
    image_url: Optional[str] = None
    annotation: Optional[str] = None
    children: Tuple["SimplifiedNode", ...] = ()

    def walk(self) -> Iterator["SimplifiedNode"]:
        yield self
        for child in self.children:
            yield from child.walk()


class DesignIndex:
    """Flat view of a design tree.

    Nodes are addressed by position (preorder, declaration order). Parent and
    child links are kept in side tables, built once, so lookups up the tree
    never need back-references on the node dicts themselves.
    """

    root = 0

    def __init__(self, root: Dict[str, Any]):
        self._nodes: List[Dict[str, Any]] = []
        self._parents: List[Optional[int]] = []
        self._children: List[List[int]] = []
        self._positions: Dict[str, int] = {}

        stack: List[Tuple[Dict[str, Any], Optional[int]]] = [(root, None)]
        while stack:
            node, parent = stack.pop()
            pos = len(self._nodes)
            self._nodes.append(node)
            self._parents.append(parent)
            self._children.append([])
            if parent is not None:
                self._children[parent].append(pos)
            node_id = node.get("id")
            if isinstance(node_id, str) and node_id not in self._positions:
                self._positions[node_id] = pos

            children = node.get("children")
            if isinstance(children, list):
                for child in reversed(children):
                    if isinstance(child, dict):
                        stack.append((child, pos))

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, pos: int) -> Dict[str, Any]:
        return self._nodes[pos]

    def parent(self, pos: int) -> Optional[int]:
        return self._parents[pos]

    def children(self, pos: int) -> List[int]:
        return self._children[pos]

    def position(self, node_id: str) -> Optional[int]:
        return self._positions.get(node_id)

    def lineage(self, pos: Optional[int]) -> Iterator[int]:
        """``pos`` followed by its ancestors, nearest first."""
        while pos is not None:
            yield pos
            pos = self._parents[pos]


# --- Node attribute helpers ---


def is_visible(node: Dict[str, Any]) -> bool:
    return node.get("visible", True) is not False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value


def bounding_box(node: Dict[str, Any]) -> Optional[Dict[str, float]]:
    """Absolute bounding box, or None when absent or not fully numeric."""
    box = node.get("absoluteBoundingBox")
    if not isinstance(box, dict):
        box = node.get("absoluteRenderBounds")
    if not isinstance(box, dict):
        return None
    values = {key: box.get(key) for key in ("x", "y", "width", "height")}
    if not all(_is_number(v) for v in values.values()):
        return None
    return values


def node_opacity(node: Dict[str, Any]) -> float:
    value = node.get("opacity", 1)
    if not _is_number(value):
        return 1.0
    return min(max(float(value), 0.0), 1.0)


def node_name(node: Dict[str, Any]) -> str:
    name = node.get("name")
    if isinstance(name, str) and name:
        return name
    return UNNAMED


def extract_text(node: Dict[str, Any]) -> Optional[str]:
    if node.get("type") != TEXT_TYPE:
        return None
    chars = node.get("characters")
    return chars if isinstance(chars, str) else None


def has_image_content(node: Dict[str, Any]) -> bool:
    if node.get("type") in IMAGE_NODE_TYPES:
        return True
    fills = node.get("fills")
    if not isinstance(fills, list):
        return False
    return any(
        isinstance(fill, dict) and fill.get("type") == "IMAGE" and fill.get("visible", True)
        for fill in fills
    )


# --- Style extraction ---


def _color_to_css(color: Dict[str, Any], opacity: float = 1.0) -> Optional[str]:
    channels = [color.get(c) for c in ("r", "g", "b")]
    if not all(_is_number(c) for c in channels):
        return None
    r, g, b = (round(c * 255) for c in channels)
    alpha = color.get("a", 1)
    alpha = (alpha if _is_number(alpha) else 1) * opacity
    if alpha >= 1:
        return f"#{r:02X}{g:02X}{b:02X}"
    return f"rgba({r}, {g}, {b}, {round(alpha, 2)})"


def _convert_paint(paint: Dict[str, Any]) -> Any:
    paint_type = paint.get("type")
    opacity = paint.get("opacity", 1)
    opacity = opacity if _is_number(opacity) else 1

    if paint_type == "SOLID" and isinstance(paint.get("color"), dict):
        css = _color_to_css(paint["color"], opacity)
        if css is not None:
            return css

    if paint_type == "IMAGE":
        image = {"type": "IMAGE", "imageRef": paint.get("imageRef"), "scaleMode": paint.get("scaleMode")}
        return {k: v for k, v in image.items() if v is not None}

    if isinstance(paint_type, str) and paint_type.startswith("GRADIENT_"):
        stops = []
        for stop in paint.get("gradientStops") or []:
            if isinstance(stop, dict) and isinstance(stop.get("color"), dict):
                stops.append({
                    "position": stop.get("position"),
                    "color": _color_to_css(stop["color"], opacity),
                })
        return {"type": paint_type, "gradientStops": stops}

    return {"type": paint_type}


def extract_paints(paints: Any) -> Optional[List[Any]]:
    if not isinstance(paints, list):
        return None
    converted = [
        _convert_paint(p) for p in paints
        if isinstance(p, dict) and p.get("visible", True)
    ]
    return converted or None


def extract_stroke_weight(node: Dict[str, Any]) -> Optional[float]:
    if not extract_paints(node.get("strokes")):
        return None
    weight = node.get("strokeWeight")
    return weight if _is_number(weight) else None


TEXT_STYLE_KEYS = (
    "fontFamily", "fontWeight", "fontSize", "lineHeightPx", "letterSpacing",
    "textAlignHorizontal", "textAlignVertical", "textCase",
)


def extract_text_style(node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    style = node.get("style")
    if not isinstance(style, dict):
        return None
    picked = {key: style[key] for key in TEXT_STYLE_KEYS if style.get(key) is not None}
    return picked or None


def extract_effects(node: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    effects = node.get("effects")
    if not isinstance(effects, list):
        return None
    visible = [e for e in effects if isinstance(e, dict) and e.get("visible", True)]
    return visible or None


LAYOUT_KEYS = (
    "layoutMode", "primaryAxisAlignItems", "counterAxisAlignItems", "itemSpacing",
    "paddingLeft", "paddingRight", "paddingTop", "paddingBottom",
    "layoutAlign", "layoutGrow", "clipsContent",
)


def extract_layout(node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not node.get("layoutMode") or node.get("layoutMode") == "NONE":
        return None
    return {key: node[key] for key in LAYOUT_KEYS if node.get(key) is not None}


# --- Overlay classification ---


def is_overlay(node: Dict[str, Any], frame_width: Optional[float]) -> bool:
    """Does ``node`` look like a full-width dimming layer inside a frame of
    width ``frame_width``?"""
    box = bounding_box(node)
    if box is None or frame_width is None:
        return False
    if box["width"] < frame_width or box["height"] < OVERLAY_MIN_HEIGHT:
        return False
    if node_opacity(node) <= OVERLAY_MAX_OPACITY:
        return True
    name = node_name(node).lower()
    return any(hint in name for hint in OVERLAY_NAME_HINTS)


def frame_width_of(node: Dict[str, Any]) -> Optional[float]:
    if node.get("type") != FRAME_TYPE:
        return None
    box = bounding_box(node)
    return box["width"] if box else None


def containing_frame_width(index: DesignIndex, pos: Optional[int]) -> Optional[float]:
    """Width of the nearest frame at or above ``pos``."""
    for p in index.lineage(pos):
        node = index.node(p)
        if node.get("type") == FRAME_TYPE:
            return frame_width_of(node)
    return None


# --- Tree walk ---


def collect_image_node_ids(root: Dict[str, Any]) -> List[str]:
    """Ids of visible nodes carrying image content, in declaration order."""
    ids: List[str] = []
    if not is_visible(root):
        return ids
    node_id = root.get("id")
    if has_image_content(root) and isinstance(node_id, str):
        ids.append(node_id)
    for child in root.get("children") or []:
        if isinstance(child, dict):
            ids.extend(collect_image_node_ids(child))
    return ids


def simplify_tree(
    root: Dict[str, Any],
    images: Optional[Mapping[str, ImageInfo]] = None,
    order: ObstructionOrder = ObstructionOrder.DECLARATION,
    node_id: Optional[str] = None,
    frame_width: Optional[float] = None,
) -> Optional[SimplifiedNode]:
    """Simplify ``root`` (or the subtree at ``node_id`` within it).

    ``frame_width`` is the reference width for overlay detection. When not
    given it is taken from the nearest frame enclosing the start node; if
    there is none, the first frame met on the way down supplies it.
    Returns None when the start node is hidden.
    """
    index = DesignIndex(root)
    start = index.root if node_id is None else index.position(node_id)
    if start is None:
        return None
    if any(not is_visible(index.node(p)) for p in index.lineage(start)):
        return None
    if frame_width is None:
        frame_width = containing_frame_width(index, index.parent(start))
    return _simplify(index, start, frame_width, False, images or {}, order)


def _simplify(
    index: DesignIndex,
    pos: int,
    frame_width: Optional[float],
    obstructed: bool,
    images: Mapping[str, ImageInfo],
    order: ObstructionOrder,
) -> SimplifiedNode:
    node = index.node(pos)

    if is_overlay(node, frame_width):
        state = Obstruction.OVERLAY
    elif obstructed:
        state = Obstruction.OBSTRUCTED
    else:
        state = Obstruction.VISIBLE

    child_frame_width = frame_width if frame_width is not None else frame_width_of(node)
    visible_children = [c for c in index.children(pos) if is_visible(index.node(c))]
    visit = visible_children if order == ObstructionOrder.DECLARATION else visible_children[::-1]

    done: Dict[int, SimplifiedNode] = {}
    covered = obstructed or state == Obstruction.OVERLAY
    for child in visit:
        simplified = _simplify(index, child, child_frame_width, covered, images, order)
        done[child] = simplified
        if simplified.obstruction == Obstruction.OVERLAY:
            covered = True

    node_id = node.get("id")
    node_id = node_id if isinstance(node_id, str) else ""
    image = images.get(node_id)
    opacity = node_opacity(node)

    return SimplifiedNode(
        id=node_id,
        name=node_name(node),
        type=node.get("type") or "UNKNOWN",
        obstruction=state,
        text=extract_text(node),
        bounding_box=bounding_box(node),
        opacity=opacity if opacity < 1 else None,
        fills=extract_paints(node.get("fills")),
        strokes=extract_paints(node.get("strokes")),
        stroke_weight=extract_stroke_weight(node),
        text_style=extract_text_style(node),
        effects=extract_effects(node),
        layout=extract_layout(node),
        image_url=image.url if image else None,
        annotation=image.annotation if image else None,
        children=tuple(done[c] for c in visible_children),
    )
