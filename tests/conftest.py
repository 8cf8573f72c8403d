"""Shared builders for Figma-shaped node dicts."""

import pytest


def _box(x=0, y=0, width=100, height=100):
    return {"x": x, "y": y, "width": width, "height": height}


def _node(node_id, node_type="RECTANGLE", name=None, box=None, children=None, **attrs):
    node = {"id": node_id, "name": name or node_id, "type": node_type}
    if box is not None:
        node["absoluteBoundingBox"] = box
    if children is not None:
        node["children"] = children
    node.update(attrs)
    return node


@pytest.fixture
def box():
    return _box


@pytest.fixture
def make_node():
    return _node


@pytest.fixture
def screen():
    """400x800 frame: text, a 400x200 backdrop at 30% opacity, an image."""
    return _node(
        "1:1", "FRAME", name="Screen", box=_box(width=400, height=800),
        children=[
            _node("1:2", "TEXT", name="Title", box=_box(10, 10, 200, 40), characters="Hello"),
            _node("1:3", "RECTANGLE", name="Backdrop", box=_box(0, 0, 400, 200), opacity=0.3),
            _node(
                "1:4", "RECTANGLE", name="Photo", box=_box(0, 300, 400, 300),
                fills=[{"type": "IMAGE", "imageRef": "ref-photo", "scaleMode": "FILL"}],
            ),
        ],
    )
