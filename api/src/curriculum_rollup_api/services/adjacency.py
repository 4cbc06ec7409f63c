from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .entities import Edge, Entity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Adjacency:
    children_of: dict[str, list[str]]
    # Single parent per child; when several edges point at a child the last one wins.
    parent_of: dict[str, str]
    parents_of: dict[str, list[str]]
    roots: list[str]
    leaves: list[str]


def build_adjacency(entities: Sequence[Entity], edges: Sequence[Edge]) -> Adjacency:
    """
    Index parent/child relations for a snapshot.

    Edges that reference ids missing from the entity list are dropped: the snapshot
    may come from an eventually-consistent store.
    """
    known = {entity.id for entity in entities}
    children_of: dict[str, list[str]] = {entity.id: [] for entity in entities}
    parent_of: dict[str, str] = {}
    parents_of: dict[str, list[str]] = {}

    skipped = 0
    for edge in edges:
        if edge.source not in known or edge.target not in known:
            skipped += 1
            continue
        if edge.target not in children_of[edge.source]:
            children_of[edge.source].append(edge.target)
        parent_of[edge.target] = edge.source
        parents = parents_of.setdefault(edge.target, [])
        if edge.source not in parents:
            parents.append(edge.source)

    if skipped:
        logger.debug("Ignored %d edge(s) referencing unknown entities", skipped)

    roots = [entity.id for entity in entities if entity.id not in parents_of]
    leaves = [entity.id for entity in entities if not children_of[entity.id]]
    return Adjacency(
        children_of=children_of,
        parent_of=parent_of,
        parents_of=parents_of,
        roots=roots,
        leaves=leaves,
    )


def ancestor_chain(entity_id: str, parent_of: dict[str, str]) -> list[str]:
    chain = [entity_id]
    seen = {entity_id}
    current = parent_of.get(entity_id)
    while current is not None and current not in seen:
        chain.append(current)
        seen.add(current)
        current = parent_of.get(current)
    return chain


def upstream_order(entity_id: str, adjacency: Adjacency) -> list[str]:
    """
    Every entity reachable from ``entity_id`` through parent edges, including itself,
    ordered so that each entity comes after all of its reachable descendants.

    On a tree this is exactly ``ancestor_chain``.
    """
    reachable: set[str] = set()
    stack = [entity_id]
    while stack:
        current = stack.pop()
        if current in reachable:
            continue
        reachable.add(current)
        stack.extend(adjacency.parents_of.get(current, []))

    # Kahn's algorithm restricted to the reachable subgraph, children first.
    pending = {
        node: sum(1 for child in adjacency.children_of.get(node, []) if child in reachable)
        for node in reachable
    }
    ready = [entity_id] if pending.get(entity_id) == 0 else []
    ordered: list[str] = []
    while ready:
        current = ready.pop(0)
        ordered.append(current)
        for parent in adjacency.parents_of.get(current, []):
            if parent not in pending:
                continue
            pending[parent] -= 1
            if pending[parent] == 0:
                ready.append(parent)

    if len(ordered) < len(reachable):
        # A cycle blocks the topological walk; fall back to the single-parent chain.
        logger.warning("Cycle detected above %s; using single-parent chain", entity_id)
        return ancestor_chain(entity_id, adjacency.parent_of)
    return ordered
