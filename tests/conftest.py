"""
Shared fixtures: canonical graphs for validation and repair cases.
"""

import pytest

from flowguard.config import RepairSettings
from tests.graph_builders import node, conn, graph, start, end, gateway


@pytest.fixture
def settings():
    return RepairSettings()


@pytest.fixture
def linear_graph():
    """start → review → end, no violations of any severity."""
    return graph(
        [start(), node("review", label="Review request"), end()],
        [conn("start", "review", "c1"), conn("review", "end", "c2")],
    )


@pytest.fixture
def cyclic_graph():
    """start → A → B → A, plus A → end."""
    return graph(
        [start(), node("A"), node("B"), end()],
        [
            conn("start", "A", "c1"),
            conn("A", "B", "c2"),
            conn("B", "A", "c3"),
            conn("A", "end", "c4"),
        ],
    )


@pytest.fixture
def gateway_graph():
    """Exclusive gateway with two outgoing branches, neither default."""
    return graph(
        [start(), gateway("gw"), node("approve"), node("reject"), end()],
        [
            conn("start", "gw", "c1"),
            conn("gw", "approve", "c2", condition="amount < 1000"),
            conn("gw", "reject", "c3"),
            conn("approve", "end", "c4"),
            conn("reject", "end", "c5"),
        ],
    )


@pytest.fixture
def dangling_field_graph():
    """A task referencing a field nothing declares."""
    return graph(
        [
            start(processData=[{"key": "amount", "type": "number"}]),
            node("review", label="Review", dataField="processData.ghost", assignee="ops"),
            end(),
        ],
        [conn("start", "review", "c1"), conn("review", "end", "c2")],
    )
