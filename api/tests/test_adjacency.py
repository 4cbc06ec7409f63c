from __future__ import annotations

from curriculum_rollup_api.services.adjacency import ancestor_chain, build_adjacency, upstream_order
from curriculum_rollup_api.services.entities import Edge, Entity, EntityKind


def _entities(*ids: str) -> list[Entity]:
    return [Entity(id=entity_id, kind=EntityKind.ITEM) for entity_id in ids]


def test_indexes_roots_and_leaves() -> None:
    adjacency = build_adjacency(
        _entities("s", "c", "o", "q"),
        [Edge("s", "c"), Edge("c", "o"), Edge("o", "q")],
    )
    assert adjacency.children_of == {"s": ["c"], "c": ["o"], "o": ["q"], "q": []}
    assert adjacency.parent_of == {"c": "s", "o": "c", "q": "o"}
    assert adjacency.roots == ["s"]
    assert adjacency.leaves == ["q"]


def test_unknown_ids_are_ignored() -> None:
    adjacency = build_adjacency(_entities("a", "b"), [Edge("a", "b"), Edge("ghost", "b"), Edge("a", "missing")])
    assert adjacency.children_of == {"a": ["b"], "b": []}
    assert adjacency.parent_of == {"b": "a"}


def test_last_edge_wins_for_single_parent_index() -> None:
    adjacency = build_adjacency(_entities("p1", "p2", "x"), [Edge("p1", "x"), Edge("p2", "x")])
    assert adjacency.parent_of["x"] == "p2"
    assert adjacency.parents_of["x"] == ["p1", "p2"]
    assert ancestor_chain("x", adjacency.parent_of) == ["x", "p2"]


def test_ancestor_chain_stops_on_cycle() -> None:
    assert ancestor_chain("a", {"a": "b", "b": "a"}) == ["a", "b"]
    assert ancestor_chain("root", {}) == ["root"]


def test_upstream_order_on_tree_matches_chain() -> None:
    adjacency = build_adjacency(
        _entities("s", "c1", "c2", "o", "q"),
        [Edge("s", "c1"), Edge("s", "c2"), Edge("c1", "o"), Edge("o", "q")],
    )
    assert upstream_order("q", adjacency) == ["q", "o", "c1", "s"]


def test_upstream_order_diamond_visits_shared_ancestor_last() -> None:
    adjacency = build_adjacency(
        _entities("root", "left", "right", "x"),
        [Edge("root", "left"), Edge("root", "right"), Edge("left", "x"), Edge("right", "x")],
    )
    order = upstream_order("x", adjacency)
    assert order[0] == "x"
    assert order[-1] == "root"
    assert set(order) == {"x", "left", "right", "root"}
