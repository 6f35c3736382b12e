"""Pytest configuration and shared fixtures."""
import asyncio
from typing import Dict, List, Optional

import pytest

from dashstate import ConfigNode
from dashstate.errors import FetchError
from dashstate.settings import reset_engine_config


STATION_RECORDS = [
    {'station_id': 'A1', 'name': 'Kendall T', 'capacity': 19, 'lat': 42.3625, 'lon': -71.0861},
    {'station_id': 'B2', 'name': 'Boston Public Library', 'capacity': 27, 'lat': 42.3495, 'lon': -71.0783},
    {'station_id': 'C3', 'name': 'Harvard Square', 'capacity': 8, 'lat': 42.3734, 'lon': -71.1189},
]


class FakeFetcher:
    """Async fetcher that records calls and resolves when released.

    By default every call resolves immediately. With gated=True each call
    waits until release() is called, so tests can observe the pending state.
    """

    def __init__(self, responses: Optional[Dict[str, List[dict]]] = None, gated: bool = False):
        self.responses = responses or {}
        self.failures: Dict[str, FetchError] = {}
        self.calls: List[str] = []
        self._gate: Optional[asyncio.Event] = asyncio.Event() if gated else None

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    async def __call__(self, key: str) -> List[dict]:
        self.calls.append(key)
        if self._gate is not None:
            await self._gate.wait()
        if key in self.failures:
            raise self.failures[key]
        return [dict(record) for record in self.responses.get(key, [])]


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset the thread-local engine config around each test."""
    reset_engine_config()
    yield
    reset_engine_config()


@pytest.fixture
def sample_tree():
    """Provide a small dashboard: a row holding a table and a graph."""
    table = ConfigNode(id='table', kind='tableView',
                       properties={'title': 'Stations', 'dataSourceUrl': 'info'})
    graph = ConfigNode(id='graph', kind='graphView',
                       properties={'title': 'Capacity', 'categoryCol': 'name', 'valueCol': 'capacity'})
    row = ConfigNode(id='row', kind='row', properties={'title': 'Main row'}, children=[table, graph])
    return ConfigNode(id='root', kind='container',
                      properties={'title': 'Dashboard', 'isDataEnabled': True}, children=[row])


@pytest.fixture
def station_records():
    """Provide a copy of the sample station records."""
    return [dict(record) for record in STATION_RECORDS]


@pytest.fixture
def make_fetcher():
    """Provide the FakeFetcher class for tests that need custom responses."""
    return FakeFetcher


@pytest.fixture
def fake_fetcher(station_records):
    """Provide an immediate fetcher serving the sample records under 'info'."""
    return FakeFetcher({'info': station_records})
