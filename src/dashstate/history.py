"""
HistoryGraph: branching edit history for a configuration tree.

Every edit is a pure function tree -> tree. The graph runs it against a fresh
copy of the current tree, encodes the result and either records it as a new
snapshot under the cursor or, when the encoding is unchanged, discards it.

This is a persistent version tree, not an undo stack:
- undo moves the cursor to the parent snapshot
- redo moves it to the most recently created child
- jump moves it anywhere in the tree
- an edit made after undo/jump starts a new branch beside the old future;
  nothing is ever discarded, the old branch only stops being the redo default
"""
from contextlib import contextmanager
import datetime
import logging
import threading
from typing import Any, Callable, Dict, Generator, Iterator, List, Optional, Tuple

from dashstate.config import HistoryConfig
from dashstate.config_tree import ConfigNode, clone, duplicate_ids
from dashstate.errors import MalformedSnapshotError
from dashstate.settings import get_engine_config
from dashstate.snapshot_codec import decode, encode
from dashstate.snapshot_model import HistorySnapshot

logger = logging.getLogger(__name__)

Mutation = Callable[[ConfigNode], ConfigNode]


class HistoryGraph:
    """Tree of snapshots with a cursor on the current one.

    Thread safety: one RLock per instance serializes apply/undo/redo/jump.
    Listeners are fired after the lock is released, once the new state is
    visible to readers.
    """

    def __init__(
        self,
        initial_tree: Optional[ConfigNode] = None,
        config: Optional[HistoryConfig] = None,
    ):
        """
        Args:
            initial_tree: Tree recorded as the root snapshot. Defaults to
                          a single empty container.
            config: Retention settings; defaults to the active EngineConfig.
        """
        self._config = config if config is not None else get_engine_config().history
        tree = initial_tree if initial_tree is not None else ConfigNode.empty()

        self._root = HistorySnapshot.create(encode(tree), label="init")
        self._cursor = self._root
        self._snapshots: Dict[str, HistorySnapshot] = {self._root.id: self._root}
        self._lock = threading.RLock()
        self._warned_size = False

        # Atomic blocks fold several edits into one snapshot
        self._atomic_depth = 0
        self._atomic_label: Optional[str] = None
        self._atomic_tree: Optional[ConfigNode] = None

        self._change_callbacks: List[Callable[[], None]] = []

    # ========== READ ACCESS ==========

    @property
    def root(self) -> HistorySnapshot:
        return self._root

    @property
    def cursor(self) -> HistorySnapshot:
        return self._cursor

    @property
    def size(self) -> int:
        """Number of snapshots in the graph (all branches)."""
        return len(self._snapshots)

    def current_tree(self) -> ConfigNode:
        """Decode the current snapshot into a tree the caller owns.

        Inside an atomic block this is the pending, not yet recorded, tree.
        """
        with self._lock:
            if self._atomic_tree is not None:
                return clone(self._atomic_tree)
            return decode(self._cursor.encoded)

    def can_undo(self) -> bool:
        return self._cursor.parent is not None

    def can_redo(self) -> bool:
        return bool(self._cursor.children)

    def find_snapshot(self, snapshot_id: str) -> Optional[HistorySnapshot]:
        return self._snapshots.get(snapshot_id)

    def iter_snapshots(self) -> Iterator[HistorySnapshot]:
        """All snapshots, depth-first pre-order from the root."""
        return self._root.iter_subtree()

    def branch_path(self) -> List[HistorySnapshot]:
        """Snapshots from the root to the cursor."""
        return self._cursor.ancestry()

    # ========== EDITING ==========

    def apply(self, mutation_fn: Mutation, label: str = "") -> ConfigNode:
        """Run an edit and record it unless it changed nothing.

        Args:
            mutation_fn: Pure function from the current tree to the edited tree.
                         It receives a private copy, so in-place edits are safe too.
            label: Human-readable label for the snapshot (e.g. "add widget")

        Returns:
            The current tree after the edit (unchanged tree on a no-op).

        Raises:
            MalformedSnapshotError: If the edited tree repeats a node id.
        """
        with self._lock:
            if self._atomic_depth > 0:
                self._atomic_tree = mutation_fn(clone(self._atomic_tree))
                logger.debug(f"⏱️ ATOMIC: Deferring '{label}' (depth={self._atomic_depth})")
                return clone(self._atomic_tree)
            new_tree = mutation_fn(self.current_tree())
            tree, changed = self._commit(new_tree, label)
        if changed:
            self._fire_history_changed()
        return tree

    @contextmanager
    def atomic(self, label: str) -> Generator[None, None, None]:
        """Context manager folding all edits inside it into a single history step.

        Nested atomic blocks are supported - only the outermost block records
        the snapshot. If an exception escapes the outermost block its pending
        edits are dropped.

        Example:
            with graph.atomic("add row with table"):
                graph.apply(lambda t: add_child(t, root_id, row))
                graph.apply(lambda t: add_child(t, row.id, table))
            # One snapshot recorded here with label "add row with table"

        Args:
            label: Human-readable label for the coalesced snapshot
        """
        self._lock.acquire()
        changed = False
        try:
            self._atomic_depth += 1
            if self._atomic_depth == 1:
                self._atomic_label = label
                self._atomic_tree = decode(self._cursor.encoded)
            try:
                yield
            except BaseException:
                if self._atomic_depth == 1:
                    logger.debug(f"⏱️ ATOMIC: Discarding '{self._atomic_label}' after error")
                    self._atomic_tree = None
                raise
            finally:
                self._atomic_depth -= 1
                if self._atomic_depth == 0:
                    pending = self._atomic_tree
                    final_label = self._atomic_label or label
                    self._atomic_tree = None
                    self._atomic_label = None
                    if pending is not None:
                        _tree, changed = self._commit(pending, final_label)
        finally:
            self._lock.release()
        if changed:
            self._fire_history_changed()

    def _commit(self, new_tree: ConfigNode, label: str) -> Tuple[ConfigNode, bool]:
        """Record new_tree under the cursor unless its encoding is unchanged.

        Raises:
            MalformedSnapshotError: If new_tree repeats a node id; nothing is
                recorded and the cursor stays put.
        """
        encoded = encode(new_tree)
        if encoded == self._cursor.encoded:
            logger.debug(f"⏱️ NOOP: '{label}' produced no change")
            return decode(self._cursor.encoded), False

        duplicates = duplicate_ids(new_tree)
        if duplicates:
            logger.warning(f"⏱️ REJECT: '{label}' would duplicate ids {sorted(duplicates)}")
            raise MalformedSnapshotError(f"Edit '{label}' produces duplicate ids: {sorted(duplicates)}")

        snapshot = HistorySnapshot.create(encoded, parent=self._cursor, label=label)
        self._snapshots[snapshot.id] = snapshot
        if len(self._cursor.children) > 1:
            logger.debug(f"⏱️ BRANCH: '{label}' diverges at {self._cursor.id[:8]} "
                         f"({len(self._cursor.children)} branches)")
        self._cursor = snapshot
        logger.debug(f"⏱️ SNAPSHOT: Recorded '{label}' (id={snapshot.id[:8]})")

        warn_size = self._config.warn_size
        if warn_size is not None and not self._warned_size and len(self._snapshots) > warn_size:
            self._warned_size = True
            logger.warning(f"⏱️ History holds {len(self._snapshots)} snapshots (warn_size={warn_size}); "
                           f"snapshots are kept for the whole session")
        return decode(encoded), True

    # ========== NAVIGATION ==========

    def undo(self) -> bool:
        """Move the cursor to its parent. Returns False at the root."""
        with self._lock:
            self._check_not_atomic("undo")
            parent = self._cursor.parent
            if parent is None:
                return False
            self._cursor = parent
            logger.debug(f"⏱️ UNDO: now at '{parent.label}' ({parent.id[:8]})")
        self._fire_history_changed()
        return True

    def redo(self) -> bool:
        """Move the cursor to its most recently created child. Returns False at a leaf."""
        with self._lock:
            self._check_not_atomic("redo")
            if not self._cursor.children:
                return False
            self._cursor = self._cursor.children[-1]
            logger.debug(f"⏱️ REDO: now at '{self._cursor.label}' ({self._cursor.id[:8]})")
        self._fire_history_changed()
        return True

    def jump(self, snapshot: HistorySnapshot) -> bool:
        """Move the cursor to any snapshot of this graph.

        Args:
            snapshot: Target snapshot (e.g. from the history visualization)

        Returns:
            True if the cursor moved there, False if the snapshot does not
            belong to this graph.
        """
        with self._lock:
            self._check_not_atomic("jump")
            if not any(node is snapshot for node in self._root.iter_subtree()):
                logger.error(f"⏱️ JUMP: Snapshot {snapshot.id[:8]} not found in this history")
                return False
            self._cursor = snapshot
            logger.debug(f"⏱️ JUMP: now at '{snapshot.label}' ({snapshot.id[:8]})")
        self._fire_history_changed()
        return True

    def jump_to_id(self, snapshot_id: str) -> bool:
        """Jump by snapshot id. Returns False for unknown ids."""
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            logger.error(f"⏱️ JUMP: Snapshot {snapshot_id} not found")
            return False
        return self.jump(snapshot)

    def _check_not_atomic(self, operation: str) -> None:
        if self._atomic_depth > 0:
            raise RuntimeError(f"Cannot {operation} inside an atomic block")

    # ========== EXPORT / IMPORT ==========

    def export_json(self) -> str:
        """Canonical encoding of the current tree."""
        with self._lock:
            return self._cursor.encoded

    def import_json(self, text: str) -> ConfigNode:
        """Replace the current tree with a decoded document, as a regular edit.

        Raises:
            MalformedSnapshotError: If the document is rejected; the cursor and
                tree are left untouched.
        """
        tree = decode(text)
        logger.info(f"⏱️ IMPORT: Loaded tree with root {tree.id!r}")
        return self.apply(lambda _current: tree, label="import")

    # ========== DISPLAY ==========

    def get_history_info(self) -> List[Dict[str, Any]]:
        """Get human-readable history rows for UI display, pre-order."""
        result = []
        with self._lock:
            on_path = {snapshot.id for snapshot in self._cursor.ancestry()}
            for index, snapshot in enumerate(self._root.iter_subtree()):
                result.append({
                    'index': index,
                    'id': snapshot.id,
                    'timestamp': datetime.datetime.fromtimestamp(snapshot.created_at).strftime('%H:%M:%S.%f')[:-3],
                    'label': snapshot.label or f"Snapshot #{index}",
                    'depth': snapshot.depth,
                    'parent_id': snapshot.parent.id if snapshot.parent else None,
                    'num_children': len(snapshot.children),
                    'is_current': snapshot is self._cursor,
                    'on_current_path': snapshot.id in on_path,
                })
        return result

    # ========== CHANGE NOTIFICATION ==========

    def connect_listener(self, callback: Callable[[], None]) -> None:
        """Subscribe to history changes (snapshot recorded, undo, redo, jump)."""
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)
            logger.debug(f"Connected history listener: {callback}")

    def disconnect_listener(self, callback: Callable[[], None]) -> None:
        """Unsubscribe from history changes."""
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)
            logger.debug(f"Disconnected history listener: {callback}")

    def _fire_history_changed(self) -> None:
        """Fire all history changed callbacks (best-effort)."""
        for callback in list(self._change_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in history_changed callback: {e}")
