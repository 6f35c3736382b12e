"""
Snapshot dataclass for the branching edit history.

Each HistorySnapshot is one node of a rooted version tree, analogous to a git
commit: it holds the canonical encoding of a whole ConfigNode tree plus links
to the snapshot it was derived from and the snapshots derived from it.

Design Philosophy:
- The encoded tree is frozen; nothing rewrites it after creation
- The tree of snapshots is append-only: children are only ever appended
- UUID-based identity, so equal encodings on different branches stay distinct
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional
import time
import uuid


@dataclass(eq=False)
class HistorySnapshot:
    """One recorded state of the configuration tree.

    Identity is the object itself (eq=False); two snapshots with the same
    encoding on different branches are different history nodes.
    """
    id: str
    encoded: str  # Canonical encoding of the whole tree (see snapshot_codec)
    parent: Optional['HistorySnapshot'] = field(default=None, repr=False)
    children: List['HistorySnapshot'] = field(default_factory=list, repr=False)
    created_at: float = field(default_factory=time.time)
    label: str = ""

    @classmethod
    def create(
        cls,
        encoded: str,
        parent: Optional['HistorySnapshot'] = None,
        label: str = "",
    ) -> 'HistorySnapshot':
        """Create a snapshot with auto-generated ID and timestamp and link it under parent.

        The new snapshot is appended last to parent.children, which makes it
        parent's default redo target.
        """
        snapshot = cls(id=str(uuid.uuid4()), encoded=encoded, parent=parent, label=label)
        if parent is not None:
            parent.children.append(snapshot)
        return snapshot

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def depth(self) -> int:
        """Number of edges between this snapshot and the root."""
        depth = 0
        node = self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    def ancestry(self) -> List['HistorySnapshot']:
        """Snapshots from the root down to this one (inclusive)."""
        chain = []
        node: Optional[HistorySnapshot] = self
        while node is not None:
            chain.append(node)
            node = node.parent
        chain.reverse()
        return chain

    def iter_subtree(self) -> Iterator['HistorySnapshot']:
        """Yield this snapshot and all descendants, depth-first pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> Dict:
        """Export to a JSON-serializable dict (links as ids)."""
        return {
            'id': self.id,
            'label': self.label,
            'created_at': self.created_at,
            'parent_id': self.parent.id if self.parent else None,
            'children': [child.id for child in self.children],
        }
