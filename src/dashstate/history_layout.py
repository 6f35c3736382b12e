"""
Layout of the history graph for visualization.

Computes deterministic positions for every snapshot with a simple tidy layout:
- Depth controls x (history flows left to right)
- Each leaf gets a fixed vertical band; a parent's band is the sum of its children's
- Leaves sit in the middle of their band, parents halfway between first and last child

Sibling subtrees never overlap vertically because bands are allotted in child
order. Width is not minimized and uneven subtrees are not balanced; history
trees are shallow enough that this does not matter.
"""
from dataclasses import dataclass, field
import logging
import math
from typing import Dict, List, Optional, Tuple

from dashstate.config import LayoutConfig
from dashstate.settings import get_engine_config
from dashstate.snapshot_model import HistorySnapshot

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


@dataclass(frozen=True)
class NodePosition:
    """Computed circle for one snapshot (center coordinates)."""
    id: str
    x: float
    y: float
    radius: float
    depth: int
    is_current: bool = False

    def contains(self, point: Point) -> bool:
        """Whether point lies inside or on this node's circle."""
        return math.hypot(point[0] - self.x, point[1] - self.y) <= self.radius


@dataclass
class HistoryLayout:
    """Result of layout(): positions in pre-order plus canvas bounds."""
    positions: Dict[str, NodePosition]
    width: float
    height: float
    edges: List[Tuple[str, str]] = field(default_factory=list)  # (parent_id, child_id)

    @property
    def bounds(self) -> Dict[str, float]:
        return {'width': self.width, 'height': self.height}

    def hit_test(self, point: Point, pan_offset: Point = (0.0, 0.0)) -> Optional[str]:
        """Id of the first node (pre-order) whose circle contains point.

        Args:
            point: Query point in view coordinates
            pan_offset: Current pan of the view; subtracted from point

        Returns:
            Snapshot id, or None if the point hits no node.
        """
        local = (point[0] - pan_offset[0], point[1] - pan_offset[1])
        for position in self.positions.values():
            if position.contains(local):
                return position.id
        return None


def layout(
    root: HistorySnapshot,
    current_id: Optional[str] = None,
    config: Optional[LayoutConfig] = None,
) -> HistoryLayout:
    """Compute positions for every snapshot under root.

    Args:
        root: Root snapshot of the history graph
        current_id: Id of the cursor snapshot, flagged is_current in the result
        config: Geometry; defaults to the active EngineConfig's layout

    Returns:
        HistoryLayout with positions keyed by snapshot id.
    """
    cfg = config if config is not None else get_engine_config().layout

    # Pre-order walk with explicit stack; long linear histories would
    # otherwise exceed the recursion limit.
    order: List[HistorySnapshot] = []
    depth: Dict[str, int] = {root.id: 0}
    stack = [root]
    while stack:
        node = stack.pop()
        order.append(node)
        for child in reversed(node.children):
            depth[child.id] = depth[node.id] + 1
            stack.append(child)

    # Spans bottom-up: children always come after their parent in pre-order
    span: Dict[str, float] = {}
    for node in reversed(order):
        if node.children:
            span[node.id] = sum(span[child.id] for child in node.children)
        else:
            span[node.id] = cfg.default_span

    # Band offsets top-down, allotted in child order
    top: Dict[str, float] = {root.id: 0.0}
    for node in order:
        offset = top[node.id]
        for child in node.children:
            top[child.id] = offset
            offset += span[child.id]

    # y bottom-up: leaves centered in their band, parents between first and last child
    y: Dict[str, float] = {}
    for node in reversed(order):
        if node.children:
            y[node.id] = (y[node.children[0].id] + y[node.children[-1].id]) / 2
        else:
            y[node.id] = cfg.margin + top[node.id] + span[node.id] / 2

    positions: Dict[str, NodePosition] = {}
    edges: List[Tuple[str, str]] = []
    for node in order:
        node_depth = depth[node.id]
        positions[node.id] = NodePosition(
            id=node.id,
            x=node_depth * cfg.column_width + cfg.margin,
            y=y[node.id],
            radius=cfg.node_radius,
            depth=node_depth,
            is_current=node.id == current_id,
        )
        edges.extend((node.id, child.id) for child in node.children)

    max_depth = max(depth.values())
    width = max_depth * cfg.column_width + cfg.margin
    height = span[root.id] + 2 * cfg.margin

    logger.debug(f"Laid out {len(positions)} snapshots ({width:.0f}x{height:.0f})")
    return HistoryLayout(positions=positions, width=width, height=height, edges=edges)
