from __future__ import annotations

import pytest

from tests._fixtures.fact_graph import FactGraph


@pytest.fixture
def fact_graph() -> FactGraph:
    """Provide an empty package graph for closure tests."""
    return FactGraph()
