"""
State engine for runtime-configurable dashboards.

A dashboard is a tree of widgets (layout containers and data-bound views)
that users edit interactively. This package holds the state behind it:

Key Features:
- Copy-on-write widget configuration tree
- Branching edit history: undo, redo and jump anywhere, no branch ever lost
- Canonical snapshot encoding used for no-op detection and export/import
- Layout and hit testing for drawing the history tree
- Record cache with one in-flight request per data source
- Fail-closed row filtering for data-bound views

Quick Start:
    >>> from dashstate import DashboardState
    >>> state = DashboardState()
    >>> root = state.current_tree()
    >>> tree = state.add_widget(root.id)
    >>> len(tree.children)
    1
    >>> state.undo()
    True
    >>> len(state.current_tree().children)
    0

Modules:
    - config_tree: ConfigNode and structural edits
    - snapshot_codec: canonical encode/decode
    - snapshot_model: HistorySnapshot
    - history: HistoryGraph
    - history_layout: layout() and hit testing
    - data_cache: DataCache and the default HTTP fetcher
    - row_filter: Filter and apply_filters()
    - dashboard: DashboardState facade
    - config / settings: engine configuration
"""

# Tree
from dashstate.config_tree import (
    ConfigNode,
    WidgetKind,
    LAYOUT_KINDS,
    VIEW_KINDS,
    find,
    find_parent,
    add_child,
    remove,
    replace,
    update_properties,
    walk,
    is_data_enabled,
)

# Codec
from dashstate.snapshot_codec import encode, decode

# History
from dashstate.snapshot_model import HistorySnapshot
from dashstate.history import HistoryGraph
from dashstate.history_layout import HistoryLayout, NodePosition, layout

# Data
from dashstate.data_cache import DataCache, EntryState, fetch_records
from dashstate.row_filter import Filter, FilterOperator, apply_filters, filters_from_properties

# Facade
from dashstate.dashboard import DashboardState

# Configuration
from dashstate.config import CacheConfig, EngineConfig, HistoryConfig, LayoutConfig
from dashstate.settings import get_engine_config, set_engine_config, reset_engine_config

# Errors
from dashstate.errors import DashStateError, FetchError, MalformedSnapshotError

__all__ = [
    # Tree
    'ConfigNode',
    'WidgetKind',
    'LAYOUT_KINDS',
    'VIEW_KINDS',
    'find',
    'find_parent',
    'add_child',
    'remove',
    'replace',
    'update_properties',
    'walk',
    'is_data_enabled',
    # Codec
    'encode',
    'decode',
    # History
    'HistorySnapshot',
    'HistoryGraph',
    'HistoryLayout',
    'NodePosition',
    'layout',
    # Data
    'DataCache',
    'EntryState',
    'fetch_records',
    'Filter',
    'FilterOperator',
    'apply_filters',
    'filters_from_properties',
    # Facade
    'DashboardState',
    # Configuration
    'CacheConfig',
    'EngineConfig',
    'HistoryConfig',
    'LayoutConfig',
    'get_engine_config',
    'set_engine_config',
    'reset_engine_config',
    # Errors
    'DashStateError',
    'FetchError',
    'MalformedSnapshotError',
]

__version__ = "0.1.0"
