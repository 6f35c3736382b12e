"""
Canonical text encoding of a ConfigNode tree.

Two structurally identical trees always encode to identical strings: keys are
sorted, separators are fixed and children keep tree order. HistoryGraph relies
on this to detect no-op edits by comparing encodings, and the same form is
used for export/import.

Document shape (one per node):
    {"children": [...], "id": "...", "properties": {...}, "widgetType": "..."}
"""
import json
import logging
from typing import Any, Dict, Set

from dashstate.config_tree import ConfigNode
from dashstate.errors import MalformedSnapshotError

logger = logging.getLogger(__name__)

KIND_KEYS = ('widgetType', 'kind')


def to_document(node: ConfigNode) -> Dict[str, Any]:
    """Convert a tree to nested JSON-serializable dicts."""
    return {
        'id': node.id,
        'widgetType': node.kind,
        'properties': node.properties,
        'children': [to_document(child) for child in node.children],
    }


def encode(tree: ConfigNode) -> str:
    """Encode a tree to its canonical string form."""
    return json.dumps(to_document(tree), sort_keys=True, separators=(',', ':'), ensure_ascii=False)


def decode(text: str) -> ConfigNode:
    """Decode a canonical (or hand-written) document back into a tree.

    Args:
        text: JSON document as produced by encode()

    Returns:
        The decoded tree.

    Raises:
        MalformedSnapshotError: If the text is not JSON, a node lacks a string
            id or kind, properties/children have the wrong shape, or an id
            occurs twice in the document.
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedSnapshotError(f"Snapshot is not valid JSON: {e}") from e
    return from_document(data)


def from_document(data: Any) -> ConfigNode:
    """Build a tree from nested dicts, validating every node."""
    seen: Set[str] = set()
    return _node_from_document(data, seen, path='root')


def _node_from_document(data: Any, seen: Set[str], path: str) -> ConfigNode:
    if not isinstance(data, dict):
        raise MalformedSnapshotError(f"{path}: node must be an object, got {type(data).__name__}")

    node_id = data.get('id')
    if not isinstance(node_id, str) or not node_id:
        raise MalformedSnapshotError(f"{path}: missing required field 'id'")
    if node_id in seen:
        raise MalformedSnapshotError(f"{path}: duplicate id {node_id!r}")
    seen.add(node_id)

    kind = next((data[key] for key in KIND_KEYS if key in data), None)
    if not isinstance(kind, str) or not kind:
        raise MalformedSnapshotError(f"{path} ({node_id}): missing required field 'widgetType'")

    properties = data.get('properties', {})
    if properties is None:
        properties = {}
    if not isinstance(properties, dict):
        raise MalformedSnapshotError(f"{path} ({node_id}): 'properties' must be an object")

    children_data = data.get('children', [])
    if children_data is None:
        children_data = []
    if not isinstance(children_data, list):
        raise MalformedSnapshotError(f"{path} ({node_id}): 'children' must be a list")

    children = [
        _node_from_document(child, seen, path=f"{path}.children[{index}]")
        for index, child in enumerate(children_data)
    ]
    return ConfigNode(id=node_id, kind=kind, properties=dict(properties), children=children)
