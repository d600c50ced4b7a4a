"""
reqdoc — unit tests for the dependency graph.

File: tests/unit/corpus/test_graph.py

Purpose
- Validate deterministic ordering, closure queries and cycle reporting.
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from reqdoc.corpus import DependencyGraph
from reqdoc.domain.errors import CycleError


@pytest.mark.unit
def test_topological_order_puts_dependencies_first_and_breaks_ties_by_id() -> None:
    graph = DependencyGraph.from_dependencies(
        {"CART-2": ["AUTH-001"], "PAY-7": ["CART-2", "AUTH-001"], "AUTH-001": [], "BLOG-1": []}
    )

    assert graph.topological_order() == ("AUTH-001", "BLOG-1", "CART-2", "PAY-7")


@pytest.mark.unit
def test_transitive_dependencies_and_dependents() -> None:
    graph = DependencyGraph.from_dependencies({"C": ["B"], "B": ["A"], "A": []})

    assert graph.dependencies("C") == ("B",)
    assert graph.dependencies("C", transitive=True) == ("A", "B")
    assert graph.dependents("A", transitive=True) == ("B", "C")
    with pytest.raises(KeyError, match="unknown requirement"):
        graph.dependencies("Z")


@pytest.mark.unit
def test_two_node_cycle_is_reported_once_in_canonical_rotation() -> None:
    graph = DependencyGraph.from_dependencies({"B": ["A"], "A": ["B"]})

    assert graph.detect_cycles() == (("A", "B"),)
    with pytest.raises(CycleError) as excinfo:
        graph.topological_order()

    assert excinfo.value.cycle == ("A", "B")
    assert excinfo.value.message == "dependency cycle: A -> B -> A"


@pytest.mark.unit
def test_disjoint_cycles_are_all_found() -> None:
    graph = DependencyGraph.from_dependencies(
        {"A": ["B"], "B": ["A"], "X": ["Z"], "Y": ["X"], "Z": ["Y"], "OK": []}
    )

    cycles = graph.detect_cycles()

    assert ("A", "B") in cycles
    assert len(cycles) == 2
    assert all(cycle[0] == min(cycle) for cycle in cycles)


@pytest.mark.unit
def test_to_dict_is_deterministic() -> None:
    graph = DependencyGraph(edges=[("A", "C"), ("A", "B")])

    assert graph.to_dict() == {"nodes": ["A", "B", "C"], "edges": [["A", "B"], ["A", "C"]]}


@settings(max_examples=50, deadline=None)
@given(
    edges=st.lists(
        st.tuples(st.integers(min_value=0, max_value=9), st.integers(min_value=0, max_value=9)),
        max_size=25,
    )
)
def test_acyclic_graphs_order_every_edge(edges: list[tuple[int, int]]) -> None:
    # Orient every edge low -> high so the graph is a DAG.
    graph = DependencyGraph(
        nodes=[f"N{index}" for index in range(10)],
        edges=[(f"N{min(a, b)}", f"N{max(a, b)}") for a, b in edges if a != b],
    )

    order = graph.topological_order()
    position = {node: index for index, node in enumerate(order)}

    assert graph.detect_cycles() == ()
    assert sorted(order) == list(graph.nodes)
    for dependency, dependent in graph.edges:
        assert position[dependency] < position[dependent]
