"""
Configuration dataclasses for the dashboard state engine.

Configuration is immutable and provided as Python objects. Every component
accepts an explicit config; when none is given it falls back to the active
EngineConfig held by dashstate.settings.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class LayoutConfig:
    """Geometry of the history visualization (all values in pixels)."""
    column_width: float = 80.0  # Horizontal step per history depth
    margin: float = 40.0
    default_span: float = 40.0  # Vertical band allotted to a leaf snapshot
    node_radius: float = 12.0  # Hit-test circle radius


@dataclass(frozen=True)
class HistoryConfig:
    """Retention policy for the history graph.

    Snapshots are never deleted, so the graph grows for the life of the
    session. warn_size only makes that growth visible: once the graph holds
    more snapshots than this, a warning is logged. None disables the warning.
    """
    warn_size: Optional[int] = None


@dataclass(frozen=True)
class CacheConfig:
    """Policy for the record cache.

    max_entries: None keeps every fetched record set until process end.
                 An integer evicts the oldest present entry once exceeded.
    records_path: Keys leading from the fetched JSON document to the record array.
    timeout: Seconds passed to the default HTTP fetcher (None = no timeout).
    """
    max_entries: Optional[int] = None
    records_path: Tuple[str, ...] = ("data", "stations")
    timeout: Optional[float] = None


@dataclass(frozen=True)
class EngineConfig:
    """Bundle of all engine settings."""
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
