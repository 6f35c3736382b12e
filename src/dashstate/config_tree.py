"""
Widget configuration tree and its structural edits.

A dashboard is a tree of ConfigNode: layout containers (container, row,
column) holding data-bound views (tableView, graphView, mapView). Every edit
here is copy-on-write: the input tree is never touched, the result is a
deep copy that the caller owns outright. That is what lets HistoryGraph
freeze results into snapshots without aliasing a tree still being edited.

Edits that reference a missing id return the input unchanged. The target may
have been removed by an earlier step of the same user action, so a miss is
not an error.
"""
import copy
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set

logger = logging.getLogger(__name__)


class WidgetKind(str, Enum):
    """Known widget types. Nodes may carry other kind strings verbatim."""
    CONTAINER = "container"
    ROW = "row"
    COLUMN = "column"
    TABLE_VIEW = "tableView"
    GRAPH_VIEW = "graphView"
    MAP_VIEW = "mapView"


LAYOUT_KINDS = frozenset({WidgetKind.CONTAINER.value, WidgetKind.ROW.value, WidgetKind.COLUMN.value})
VIEW_KINDS = frozenset({WidgetKind.TABLE_VIEW.value, WidgetKind.GRAPH_VIEW.value, WidgetKind.MAP_VIEW.value})


def new_node_id() -> str:
    """Generate a fresh node id."""
    return uuid.uuid4().hex


def default_properties() -> Dict[str, Any]:
    """Properties given to every newly added container."""
    return {'title': 'New Container', 'isDataEnabled': True}


@dataclass
class ConfigNode:
    """One widget in the configuration tree.

    Equality is structural: same id, kind, properties and children (in order).
    Children are exclusively owned by their parent.
    """
    id: str
    kind: str
    properties: Dict[str, Any] = field(default_factory=dict)
    children: List['ConfigNode'] = field(default_factory=list)

    @classmethod
    def empty(cls) -> 'ConfigNode':
        """Create the default node: fresh id, container kind, default properties."""
        return cls(
            id=new_node_id(),
            kind=WidgetKind.CONTAINER.value,
            properties=default_properties(),
            children=[],
        )

    @property
    def title(self) -> str:
        return self.properties.get('title') or self.kind


def clone(tree: ConfigNode) -> ConfigNode:
    """Deep copy a tree so the result shares nothing with the input."""
    return copy.deepcopy(tree)


def walk(tree: ConfigNode) -> Iterator[ConfigNode]:
    """Yield every node depth-first, pre-order (parent before children)."""
    stack = [tree]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def find(tree: ConfigNode, node_id: str) -> Optional[ConfigNode]:
    """Depth-first search for the first node with node_id."""
    for node in walk(tree):
        if node.id == node_id:
            return node
    return None


def find_parent(tree: ConfigNode, node_id: str) -> Optional[ConfigNode]:
    """Depth-first search for the node whose immediate children contain node_id.

    Returns None for the root itself and for unknown ids.
    """
    for node in walk(tree):
        for child in node.children:
            if child.id == node_id:
                return node
    return None


def add_child(tree: ConfigNode, parent_id: str, child: Optional[ConfigNode] = None) -> ConfigNode:
    """Append a new node to parent_id's children.

    Args:
        tree: Tree to edit (not modified)
        parent_id: Id of the node receiving the child
        child: Node to append; defaults to ConfigNode.empty()

    Returns:
        Edited clone, or the input tree if parent_id is not found.
    """
    result = clone(tree)
    parent = find(result, parent_id)
    if parent is None:
        logger.debug(f"add_child: parent {parent_id!r} not found, no-op")
        return tree
    parent.children.append(clone(child) if child is not None else ConfigNode.empty())
    return result


def remove(tree: ConfigNode, node_id: str) -> ConfigNode:
    """Remove the first node matching node_id (depth-first).

    The root cannot be removed; removing it is a no-op like any other miss.
    Removal stops at the first match even if ids were duplicated.
    """
    result = clone(tree)
    parent = find_parent(result, node_id)
    if parent is None:
        logger.debug(f"remove: {node_id!r} not found, no-op")
        return tree
    for index, child in enumerate(parent.children):
        if child.id == node_id:
            del parent.children[index]
            break
    return result


def replace(tree: ConfigNode, node_id: str, new_node: ConfigNode) -> ConfigNode:
    """Overwrite the node matching node_id with new_node.

    If node_id is the root's id the whole tree becomes new_node. Otherwise the
    child keeps its position in its parent's children.
    """
    if tree.id == node_id:
        return clone(new_node)
    result = clone(tree)
    parent = find_parent(result, node_id)
    if parent is None:
        logger.debug(f"replace: {node_id!r} not found, no-op")
        return tree
    for index, child in enumerate(parent.children):
        if child.id == node_id:
            parent.children[index] = clone(new_node)
            break
    return result


def update_properties(tree: ConfigNode, node_id: str, **changes: Any) -> ConfigNode:
    """Merge property changes into node_id, copy-on-write.

    A value of None deletes the property.
    """
    node = find(tree, node_id)
    if node is None:
        return tree
    updated = clone(node)
    for key, value in changes.items():
        if value is None:
            updated.properties.pop(key, None)
        else:
            updated.properties[key] = value
    return replace(tree, node_id, updated)


def collect_ids(tree: ConfigNode) -> List[str]:
    """All node ids in pre-order."""
    return [node.id for node in walk(tree)]


def duplicate_ids(tree: ConfigNode) -> Set[str]:
    """Ids that occur more than once in the tree (normally empty)."""
    seen: Set[str] = set()
    duplicates: Set[str] = set()
    for node_id in collect_ids(tree):
        if node_id in seen:
            duplicates.add(node_id)
        seen.add(node_id)
    return duplicates


def can_have_children(node: ConfigNode) -> bool:
    """Layout kinds accept children in the editor; views are leaves."""
    return node.kind in LAYOUT_KINDS


def is_data_enabled(tree: ConfigNode, node_id: str) -> bool:
    """Effective data switch for node_id.

    A node fetches data only if its own isDataEnabled (default True) and that
    of every ancestor are truthy. Unknown ids are reported as disabled.
    """
    path = _path_to(tree, node_id)
    if path is None:
        return False
    return all(node.properties.get('isDataEnabled', True) for node in path)


def data_source(node: ConfigNode, default: Optional[str] = None) -> Optional[str]:
    """The node's dataSourceUrl property, or default when it is missing or None."""
    url = node.properties.get('dataSourceUrl')
    return default if url is None else url


def _path_to(tree: ConfigNode, node_id: str) -> Optional[List[ConfigNode]]:
    """Nodes from the root down to node_id inclusive, or None if absent."""
    stack = [(tree, [tree])]
    while stack:
        node, path = stack.pop()
        if node.id == node_id:
            return path
        for child in reversed(node.children):
            stack.append((child, path + [child]))
    return None
