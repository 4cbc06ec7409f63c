from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import GraphEdge, GraphNode
from .entities import Edge, Entity, EntityKind, Status

logger = logging.getLogger(__name__)

# Graph-editor meta keys -> raw data keys understood by the KPI extractor.
META_FIELD_ALIASES = {
    "averagePct": "average_pct",
    "difficultyPct": "difficulty_pct",
    "achievementPct": "achievement_pct",
    "courseAvgPct": "course_avg_pct",
    "compliancePct": "compliance_pct",
    "weightPct": "weight_pct",
    "maxPoints": "max_points",
    "cohortSize": "cohort_size",
}


def node_entity_id(node_id: int) -> str:
    return str(node_id)


def meta_to_raw_data(meta: Mapping[str, Any] | None) -> dict[str, Any]:
    raw: dict[str, Any] = {}
    for key, value in (meta or {}).items():
        if key in {"weight", "statusOverride", "status_override"}:
            continue
        raw[META_FIELD_ALIASES.get(key, key)] = value
    return raw


def _parse_override(value: Any, node_id: int) -> Status | None:
    if value in (None, ""):
        return None
    try:
        return Status.parse(value)
    except ValueError:
        logger.debug("Ignoring invalid status override %r on node %s", value, node_id)
        return None


def _parse_weight(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def node_to_entity(node: GraphNode) -> Entity | None:
    try:
        kind = EntityKind.parse(node.kind)
    except ValueError:
        logger.debug("Skipping node %s with unsupported kind %r", node.id, node.kind)
        return None
    meta = node.meta or {}
    return Entity(
        id=node_entity_id(node.id),
        kind=kind,
        raw_data=meta_to_raw_data(meta),
        weight=_parse_weight(meta.get("weight")),
        status_override=_parse_override(meta.get("statusOverride", meta.get("status_override")), node.id),
        label=node.title,
    )


def load_snapshot(db: Session, map_id: int) -> tuple[list[Entity], list[Edge]]:
    """Read one curriculum map's graph as an immutable entity/edge snapshot."""
    nodes = db.scalars(select(GraphNode).where(GraphNode.map_id == map_id).order_by(GraphNode.id.asc())).all()
    rows = db.scalars(select(GraphEdge).where(GraphEdge.map_id == map_id).order_by(GraphEdge.id.asc())).all()

    entities = [entity for entity in (node_to_entity(node) for node in nodes) if entity is not None]
    edges = [
        Edge(
            id=str(row.id),
            source=node_entity_id(row.source_id),
            target=node_entity_id(row.target_id),
        )
        for row in rows
    ]
    return entities, edges
