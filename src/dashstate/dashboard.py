"""
DashboardState: the public accessor surface used by the rendering layer.

One instance per dashboard session. It owns the HistoryGraph holding the
widget tree and the DataCache backing data-bound views, and forwards change
notifications from both to a single set of listeners.
"""
import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

from dashstate import config_tree
from dashstate.config import EngineConfig
from dashstate.config_tree import ConfigNode
from dashstate.data_cache import DataCache, EntryState, Fetcher, Record
from dashstate.history import HistoryGraph, Mutation
from dashstate.history_layout import HistoryLayout, Point, layout
from dashstate.row_filter import Filter, apply_filters, filters_from_properties
from dashstate.settings import get_engine_config
from dashstate.snapshot_model import HistorySnapshot

logger = logging.getLogger(__name__)

DEFAULT_DATA_SOURCE = 'https://gbfs.lyft.com/gbfs/1.1/bos/en/station_information.json'


class DashboardState:
    """Widget tree with branching history plus the record cache.

    Listener callbacks take no arguments and fire after any history change
    (edit, undo, redo, jump) and any cache entry transition.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        fetcher: Optional[Fetcher] = None,
        initial_tree: Optional[ConfigNode] = None,
        default_data_source: str = DEFAULT_DATA_SOURCE,
    ):
        self._config = config if config is not None else get_engine_config()
        self.history = HistoryGraph(initial_tree, config=self._config.history)
        self.cache = DataCache(fetcher, config=self._config.cache)
        self.default_data_source = default_data_source
        self._last_layout: Optional[HistoryLayout] = None
        self._change_callbacks: List[Callable[[], None]] = []

        self.history.connect_listener(self._on_history_changed)
        self.cache.connect_listener(self._on_cache_changed)

    # ========== TREE ==========

    def current_tree(self) -> ConfigNode:
        return self.history.current_tree()

    def apply(self, mutation_fn: Mutation, label: str = "") -> ConfigNode:
        return self.history.apply(mutation_fn, label)

    def find_widget(self, node_id: str) -> Optional[ConfigNode]:
        return config_tree.find(self.current_tree(), node_id)

    def add_widget(self, parent_id: str, child: Optional[ConfigNode] = None) -> ConfigNode:
        """Append child (default: a fresh empty container) under parent_id.

        Raises:
            MalformedSnapshotError: If child reuses an id already in the tree.
        """
        return self.apply(lambda tree: config_tree.add_child(tree, parent_id, child), label="add widget")

    def remove_widget(self, node_id: str) -> ConfigNode:
        return self.apply(lambda tree: config_tree.remove(tree, node_id), label="remove widget")

    def update_widget(self, node_id: str, new_node: ConfigNode) -> ConfigNode:
        return self.apply(lambda tree: config_tree.replace(tree, node_id, new_node), label="update widget")

    def update_properties(self, node_id: str, **changes: Any) -> ConfigNode:
        """Merge property changes into one widget as a single history step.

        A value of None removes the property instead of storing a null, so
        update_properties(id, title=None) falls back to the default title.
        """
        return self.apply(
            lambda tree: config_tree.update_properties(tree, node_id, **changes),
            label=f"edit {', '.join(sorted(changes))}",
        )

    # ========== HISTORY ==========

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    def jump(self, node_ref: HistorySnapshot) -> bool:
        return self.history.jump(node_ref)

    def export_json(self) -> str:
        return self.history.export_json()

    def import_json(self, text: str) -> ConfigNode:
        return self.history.import_json(text)

    def layout_history(self) -> HistoryLayout:
        """Lay out the whole history graph, remembering it for hit_test()."""
        self._last_layout = layout(self.history.root, self.history.cursor.id, self._config.layout)
        return self._last_layout

    def hit_test(self, point: Point, pan_offset: Point = (0.0, 0.0)) -> Optional[str]:
        """Snapshot id under point in the most recent layout (computed on demand)."""
        current = self._last_layout
        if current is None:
            current = self.layout_history()
        return current.hit_test(point, pan_offset)

    def jump_to_point(self, point: Point, pan_offset: Point = (0.0, 0.0)) -> bool:
        """Jump to the snapshot clicked in the visualization, if any."""
        snapshot_id = self.hit_test(point, pan_offset)
        if snapshot_id is None:
            return False
        return self.history.jump_to_id(snapshot_id)

    # ========== DATA ==========

    async def fetch(self, key: str) -> List[Record]:
        return await self.cache.fetch(key)

    def records_for(self, key: str) -> Optional[List[Record]]:
        return self.cache.get_records(key)

    def apply_filters(self, records: Sequence[Record], filters: Sequence[Filter]) -> List[Record]:
        return apply_filters(records, filters)

    def data_source_for(self, node_id: str) -> Optional[str]:
        """Data-source key a view node reads from, or None if the node is unknown."""
        node = self.find_widget(node_id)
        if node is None:
            return None
        return config_tree.data_source(node, self.default_data_source)

    def visible_rows(self, node_id: str) -> Tuple[str, Optional[List[Record]]]:
        """What a data-bound view should show right now.

        Returns:
            (status, rows). rows are filtered by the node's 'filters' property
            when status is 'ready' and None otherwise. Other statuses:
            'missing' (unknown node), 'disabled' (data switched off on the
            node or an ancestor), 'loading' (request in flight), 'error'
            (last request failed, see cache.last_error()) and 'absent'
            (never requested). After 'error' or 'absent' the view may call
            fetch() to retry.
        """
        tree = self.current_tree()
        node = config_tree.find(tree, node_id)
        if node is None:
            return 'missing', None
        if not config_tree.is_data_enabled(tree, node_id):
            return 'disabled', None
        key = config_tree.data_source(node, self.default_data_source)
        records = self.cache.get_records(key)
        if records is not None:
            return 'ready', apply_filters(records, filters_from_properties(node.properties))
        if self.cache.state(key) is EntryState.PENDING:
            return 'loading', None
        if self.cache.last_error(key) is not None:
            return 'error', None
        return 'absent', None

    # ========== CHANGE NOTIFICATION ==========

    def connect_listener(self, callback: Callable[[], None]) -> None:
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)

    def disconnect_listener(self, callback: Callable[[], None]) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)

    def _on_history_changed(self) -> None:
        self._last_layout = None
        self._notify_change()

    def _on_cache_changed(self, key: str) -> None:
        self._notify_change()

    def _notify_change(self) -> None:
        for callback in list(self._change_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Dashboard change callback failed: {e}")
