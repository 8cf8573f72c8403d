"""Output assembly: ``{metadata, nodes, globalVars}`` as YAML.

Style values (fills, strokes, text styles, effects, auto-layout) are moved
into ``globalVars.styles`` and referenced by key from each node, so a value
shared by many nodes is written once. Keys are numbered in first-seen order,
which keeps the output byte-identical for identical input.
"""

import json
from typing import Any, Dict, Mapping, Optional

import yaml

from transform import SimplifiedNode


class GlobalVars:
    def __init__(self):
        self._styles: Dict[str, Any] = {}
        self._keys: Dict[str, str] = {}
        self._counts: Dict[str, int] = {}

    def ref(self, prefix: str, value: Any) -> str:
        """Key for ``value``, registering it on first sight."""
        fingerprint = prefix + ":" + json.dumps(value, sort_keys=True, separators=(",", ":"))
        key = self._keys.get(fingerprint)
        if key is None:
            count = self._counts.get(prefix, 0) + 1
            self._counts[prefix] = count
            key = f"{prefix}_{count}"
            self._keys[fingerprint] = key
            self._styles[key] = value
        return key

    def __len__(self) -> int:
        return len(self._styles)

    def to_dict(self) -> Dict[str, Any]:
        return {"styles": dict(self._styles)}


def node_to_dict(node: SimplifiedNode, global_vars: GlobalVars) -> Dict[str, Any]:
    out: Dict[str, Any] = {"id": node.id, "name": node.name, "type": node.type}
    if node.text is not None:
        out["text"] = node.text
    if node.bounding_box is not None:
        out["boundingBox"] = dict(node.bounding_box)
    if node.opacity is not None:
        out["opacity"] = node.opacity
    if node.fills:
        out["fills"] = global_vars.ref("fill", node.fills)
    if node.strokes:
        out["strokes"] = global_vars.ref("stroke", node.strokes)
        if node.stroke_weight is not None:
            out["strokeWeight"] = node.stroke_weight
    if node.text_style:
        out["textStyle"] = global_vars.ref("style", node.text_style)
    if node.effects:
        out["effects"] = global_vars.ref("effect", node.effects)
    if node.layout:
        out["layout"] = global_vars.ref("layout", node.layout)
    out["obstruction"] = node.obstruction.value
    if node.image_url is not None:
        out["imageUrl"] = node.image_url
        if node.annotation is not None:
            out["annotation"] = node.annotation
    if node.children:
        out["children"] = [node_to_dict(child, global_vars) for child in node.children]
    return out


def build_result(metadata: Mapping[str, Any],
                 roots: Mapping[str, Optional[SimplifiedNode]]) -> Dict[str, Any]:
    """A single root is emitted as the tree itself; several roots become a
    mapping keyed by requested node id. Hidden roots are left out."""
    global_vars = GlobalVars()
    visible = {nid: node for nid, node in roots.items() if node is not None}
    if len(roots) == 1:
        root = next(iter(visible.values()), None)
        nodes: Any = node_to_dict(root, global_vars) if root is not None else None
    else:
        nodes = {nid: node_to_dict(node, global_vars) for nid, node in visible.items()}
    return {
        "metadata": dict(metadata),
        "nodes": nodes,
        "globalVars": global_vars.to_dict(),
    }


class _Dumper(yaml.SafeDumper):
    def ignore_aliases(self, data):
        return True


def dump_yaml(result: Dict[str, Any]) -> str:
    return yaml.dump(
        result,
        Dumper=_Dumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
