from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query, status
from sqlalchemy.orm import Session as DBSession

from .config import get_settings
from .db import Base, engine, get_db
from .models import CurriculumMap, GraphNode
from .schemas import (
    EdgeIn,
    EntityIn,
    EntityOut,
    EvidenceNodeOut,
    FullRecomputeRequest,
    HealthOut,
    NodePatchIn,
    RecomputeRequest,
    RollupOut,
    StandardEvidenceOut,
    StandardMeanOut,
    StatusConfigIn,
    StatusConfigOut,
)
from .services.entities import Edge, Entity, EntityKind, KpiKey, Status
from .services.evidence import EvidenceNode, build_standard_evidence
from .services.recompute import changed_entities, recompute_all, recompute_upstream
from .services.rule_config import get_rule_set, save_rule_set
from .services.snapshot import load_snapshot, meta_to_raw_data, node_entity_id
from .services.status_rules import RuleSet, rule_set_from_dict, rule_set_to_dict

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Curriculum Rollup API",
    version="0.1.0",
    description=(
        "Weighted KPI rollup and traffic-light status for curriculum maps, "
        "plus per-cohort evidence trees for accreditation standards."
    ),
)


@app.on_event("startup")
def on_startup() -> None:
    logging.basicConfig(level=get_settings().log_level)
    Base.metadata.create_all(bind=engine)


def _entity_from_payload(payload: EntityIn) -> Entity:
    computed = None
    if payload.computed_kpis is not None:
        computed = {KpiKey(key): value for key, value in payload.computed_kpis.items()}
    return Entity(
        id=payload.id,
        kind=EntityKind.parse(payload.kind),
        raw_data=dict(payload.raw_data),
        weight=payload.weight,
        status_override=Status.parse(payload.status_override) if payload.status_override else None,
        label=payload.label,
        computed_kpis=computed,
        computed_status=Status.parse(payload.computed_status),
    )


def _entity_out(entity: Entity, palette: Mapping[Status, str]) -> EntityOut:
    return EntityOut(
        id=entity.id,
        kind=entity.kind.value,
        label=entity.label,
        raw_data=dict(entity.raw_data),
        weight=entity.weight,
        status_override=entity.status_override.value if entity.status_override else None,
        computed_kpis=(
            {key.value: value for key, value in entity.computed_kpis.items()}
            if entity.computed_kpis is not None
            else None
        ),
        computed_status=entity.computed_status.value,
        color=palette.get(entity.computed_status, ""),
    )


def _rollup_out(
    before: Sequence[Entity],
    after: Sequence[Entity],
    edges: Sequence[Edge],
    rule_set: RuleSet,
) -> RollupOut:
    return RollupOut(
        entities=[_entity_out(entity, rule_set.palette) for entity in after],
        edges=[EdgeIn(source=edge.source, target=edge.target, id=edge.id) for edge in edges],
        palette={key.value: colour for key, colour in rule_set.palette.items()},
        changed_ids=[entity.id for entity in changed_entities(before, after)],
    )


def _parse_snapshot(entities: list[EntityIn], edges: list[EdgeIn]) -> tuple[list[Entity], list[Edge]]:
    try:
        parsed = [_entity_from_payload(entity) for entity in entities]
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return parsed, [Edge(source=edge.source, target=edge.target, id=edge.id) for edge in edges]


def _resolve_rule_set(db: DBSession, config: StatusConfigIn | None) -> RuleSet:
    try:
        if config is not None:
            return rule_set_from_dict(config.model_dump())
        return get_rule_set(db)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _must_get_map(db: DBSession, map_id: int) -> CurriculumMap:
    curriculum_map = db.get(CurriculumMap, map_id)
    if curriculum_map is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Map not found")
    return curriculum_map


def _evidence_out(node: EvidenceNode) -> EvidenceNodeOut:
    return EvidenceNodeOut.model_validate(node)


@app.get("/health", response_model=HealthOut)
def health() -> HealthOut:
    return HealthOut(ok=True, service="curriculum-rollup-api")


@app.get("/v1/status-config", response_model=StatusConfigOut)
def get_status_config(db: Annotated[DBSession, Depends(get_db)]) -> dict:
    return rule_set_to_dict(_resolve_rule_set(db, None))


@app.put("/v1/status-config", response_model=StatusConfigOut)
def put_status_config(payload: StatusConfigIn, db: Annotated[DBSession, Depends(get_db)]) -> dict:
    try:
        rule_set = save_rule_set(db, payload.model_dump())
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    db.commit()
    return rule_set_to_dict(rule_set)


@app.post("/v1/rollup/recompute", response_model=RollupOut)
def recompute_snapshot(payload: RecomputeRequest, db: Annotated[DBSession, Depends(get_db)]) -> RollupOut:
    entities, edges = _parse_snapshot(payload.entities, payload.edges)
    rule_set = _resolve_rule_set(db, payload.config)
    updated = recompute_upstream(entities, edges, payload.changed_id, rule_set)
    return _rollup_out(entities, updated, edges, rule_set)


@app.post("/v1/rollup/full", response_model=RollupOut)
def recompute_full_snapshot(payload: FullRecomputeRequest, db: Annotated[DBSession, Depends(get_db)]) -> RollupOut:
    entities, edges = _parse_snapshot(payload.entities, payload.edges)
    rule_set = _resolve_rule_set(db, payload.config)
    updated = recompute_all(entities, edges, rule_set)
    return _rollup_out(entities, updated, edges, rule_set)


@app.get("/v1/maps/{map_id}/rollup", response_model=RollupOut)
def get_map_rollup(map_id: int, db: Annotated[DBSession, Depends(get_db)]) -> RollupOut:
    _must_get_map(db, map_id)
    entities, edges = load_snapshot(db, map_id)
    rule_set = _resolve_rule_set(db, None)
    updated = recompute_all(entities, edges, rule_set)
    logger.info("Rolled up map %s: %d entities", map_id, len(updated))
    return _rollup_out(entities, updated, edges, rule_set)


def _apply_patch(entity: Entity, patch: NodePatchIn) -> Entity:
    changes: dict = {}
    if "raw_data" in patch.model_fields_set:
        changes["raw_data"] = {**entity.raw_data, **meta_to_raw_data(patch.raw_data)}
    if "weight" in patch.model_fields_set:
        changes["weight"] = patch.weight
    if "status_override" in patch.model_fields_set:
        changes["status_override"] = Status.parse(patch.status_override) if patch.status_override else None
    return replace(entity, **changes)


@app.post("/v1/maps/{map_id}/nodes/{node_id}/preview", response_model=RollupOut)
def preview_node_change(
    map_id: int,
    node_id: int,
    patch: NodePatchIn,
    db: Annotated[DBSession, Depends(get_db)],
) -> RollupOut:
    """Statuses the map would show if ``node_id`` were edited; nothing is written."""
    _must_get_map(db, map_id)
    node = db.get(GraphNode, node_id)
    if node is None or node.map_id != map_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Node not found")

    entities, edges = load_snapshot(db, map_id)
    rule_set = _resolve_rule_set(db, None)
    # Stored graphs carry no computed values, so settle the snapshot before the incremental pass.
    baseline = recompute_all(entities, edges, rule_set)

    changed_id = node_entity_id(node_id)
    try:
        edited = [_apply_patch(entity, patch) if entity.id == changed_id else entity for entity in baseline]
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    updated = recompute_upstream(edited, edges, changed_id, rule_set)
    return _rollup_out(baseline, updated, edges, rule_set)


@app.get("/v1/rollup/details", response_model=StandardEvidenceOut)
def get_standard_evidence(
    db: Annotated[DBSession, Depends(get_db)],
    cohort_id: Annotated[int | None, Query()] = None,
    standard_node_id: Annotated[int | None, Query()] = None,
) -> StandardEvidenceOut:
    if not cohort_id or not standard_node_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="cohort_id and standard_node_id are required (ints)",
        )
    evidence = build_standard_evidence(db, cohort_id, standard_node_id)
    return StandardEvidenceOut(
        cohort_id=cohort_id,
        standard_node_id=standard_node_id,
        evidence=_evidence_out(evidence),
    )


@app.get("/v1/rollup/standard-mean", response_model=StandardMeanOut)
def get_standard_mean(
    db: Annotated[DBSession, Depends(get_db)],
    cohort_id: Annotated[int | None, Query()] = None,
    standard_node_id: Annotated[int | None, Query()] = None,
) -> StandardMeanOut:
    if not cohort_id or not standard_node_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="cohort_id and standard_node_id are required (ints)",
        )
    evidence = build_standard_evidence(db, cohort_id, standard_node_id)
    return StandardMeanOut(
        cohort_id=cohort_id,
        standard_node_id=standard_node_id,
        mean_pct=evidence.mean_pct,
        n_courses=evidence.n_children,
    )
