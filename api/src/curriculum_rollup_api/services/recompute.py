from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from .adjacency import Adjacency, build_adjacency, upstream_order
from .entities import Edge, Entity
from .kpi import compute_entity_kpis
from .status_rules import RuleSet, resolve_status

logger = logging.getLogger(__name__)


def _recompute_entity(entity: Entity, children: Sequence[Entity], rule_set: RuleSet) -> Entity:
    kpis = compute_entity_kpis(entity, children)
    status = resolve_status(entity.kind, kpis, rule_set, entity.status_override)
    if entity.computed_kpis == kpis and entity.computed_status is status:
        return entity
    return replace(entity, computed_kpis=kpis, computed_status=status)


def _children(entity_id: str, adjacency: Adjacency, working: dict[str, Entity]) -> list[Entity]:
    return [working[child_id] for child_id in adjacency.children_of.get(entity_id, []) if child_id in working]


def recompute_upstream(
    entities: Sequence[Entity],
    edges: Sequence[Edge],
    changed_id: str,
    rule_set: RuleSet,
) -> list[Entity]:
    """
    Recompute KPIs and status for ``changed_id`` and everything above it.

    Entities off the ancestor path come back as the very same objects, in input order,
    so callers can diff by identity.
    """
    working = {entity.id: entity for entity in entities}
    if changed_id not in working:
        logger.debug("Recompute skipped: %s is not in the snapshot", changed_id)
        return list(entities)

    adjacency = build_adjacency(entities, edges)
    order = upstream_order(changed_id, adjacency)
    for entity_id in order:
        working[entity_id] = _recompute_entity(
            working[entity_id],
            _children(entity_id, adjacency, working),
            rule_set,
        )

    logger.debug("Recomputed %d entit(ies) above %s", len(order), changed_id)
    return [working[entity.id] for entity in entities]


def _bottom_up_order(adjacency: Adjacency, ids: Sequence[str]) -> list[str]:
    ordered: list[str] = []
    visited: set[str] = set()

    for start in ids:
        if start in visited:
            continue
        # Iterative post-order DFS so deep hierarchies do not hit the recursion limit.
        stack: list[tuple[str, bool]] = [(start, False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                ordered.append(node)
                continue
            if node in visited:
                continue
            visited.add(node)
            stack.append((node, True))
            for child in reversed(adjacency.children_of.get(node, [])):
                if child not in visited:
                    stack.append((child, False))
    return ordered


def recompute_all(entities: Sequence[Entity], edges: Sequence[Edge], rule_set: RuleSet) -> list[Entity]:
    """Full bottom-up recomputation of every entity in the snapshot."""
    adjacency = build_adjacency(entities, edges)
    working = {entity.id: entity for entity in entities}
    ids = adjacency.roots + [entity.id for entity in entities]
    for entity_id in _bottom_up_order(adjacency, ids):
        working[entity_id] = _recompute_entity(
            working[entity_id],
            _children(entity_id, adjacency, working),
            rule_set,
        )
    return [working[entity.id] for entity in entities]


def changed_entities(before: Sequence[Entity], after: Sequence[Entity]) -> list[Entity]:
    previous = {entity.id: entity for entity in before}
    return [entity for entity in after if previous.get(entity.id) is not entity]
