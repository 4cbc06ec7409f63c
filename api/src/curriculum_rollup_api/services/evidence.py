from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import (
    Course,
    GraphNode,
    Objective,
    Question,
    QuestionObjective,
    QuestionResult,
    StandardCourseWeight,
)
from .kpi import DEFAULT_WEIGHT, normalize_weights, weighted_mean

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvidenceNode:
    id: str
    label: str
    # Share of the parent's mean carried by this node; 0 when it had no data.
    weight: float
    raw_weight: float
    mean_pct: float | None
    n_children: int = 0
    children: tuple[EvidenceNode, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class _Pending:
    id: str
    label: str
    raw_weight: float
    mean_pct: float | None
    n_children: int = 0
    children: tuple[EvidenceNode, ...] = ()


def _raw_weight(value: float | None) -> float:
    if value is None:
        return DEFAULT_WEIGHT
    return max(0.0, float(value))


def result_mean_pct(result: QuestionResult | None) -> float | None:
    if result is None:
        return None
    if result.mean_points is not None and result.max_points is not None and result.max_points > 0:
        return float(result.mean_points) / float(result.max_points)
    if result.n_attempted and result.n_attempted > 0 and result.n_correct is not None:
        return float(result.n_correct) / float(result.n_attempted)
    return None


def _combine(pending: Sequence[_Pending]) -> tuple[float | None, list[EvidenceNode]]:
    """Weight-normalize the contributing siblings and attach the normalized share."""
    positions = [index for index, entry in enumerate(pending) if entry.mean_pct is not None]
    shares = dict(zip(positions, normalize_weights([pending[index].raw_weight for index in positions])))

    mean = weighted_mean([(pending[index].mean_pct, shares[index]) for index in positions])
    nodes = [
        EvidenceNode(
            id=entry.id,
            label=entry.label,
            weight=shares.get(index, 0.0),
            raw_weight=entry.raw_weight,
            mean_pct=entry.mean_pct,
            n_children=entry.n_children,
            children=entry.children,
        )
        for index, entry in enumerate(pending)
    ]
    return mean, nodes


def _objective_pending(db: Session, cohort_id: int, objective: Objective) -> _Pending:
    mappings = db.scalars(
        select(QuestionObjective)
        .where(QuestionObjective.objective_id == objective.id)
        .order_by(QuestionObjective.id.asc())
    ).all()

    question_ids = [m.question_id for m in mappings]
    results: dict[int, QuestionResult] = {}
    labels: dict[int, str] = {}
    if question_ids:
        results = {
            r.question_id: r
            for r in db.scalars(
                select(QuestionResult).where(
                    QuestionResult.cohort_id == cohort_id,
                    QuestionResult.question_id.in_(question_ids),
                )
            ).all()
        }
        labels = {
            q.id: q.label for q in db.scalars(select(Question).where(Question.id.in_(question_ids))).all()
        }

    items = [
        _Pending(
            id=f"question:{m.question_id}",
            label=labels.get(m.question_id, f"Q{m.question_id}"),
            raw_weight=_raw_weight(m.weight),
            mean_pct=result_mean_pct(results.get(m.question_id)),
        )
        for m in mappings
    ]
    mean, children = _combine(items)
    return _Pending(
        id=f"objective:{objective.id}",
        label=f"{objective.code} {objective.title}".strip() if objective.code else objective.title,
        raw_weight=_raw_weight(objective.weight_in_course),
        mean_pct=mean,
        n_children=sum(1 for child in children if child.mean_pct is not None),
        children=tuple(children),
    )


def _course_pending(db: Session, cohort_id: int, course: Course, *, node_id: int, raw_weight: float) -> _Pending:
    objectives = db.scalars(
        select(Objective).where(Objective.course_id == course.id).order_by(Objective.id.asc())
    ).all()
    mean, children = _combine([_objective_pending(db, cohort_id, objective) for objective in objectives])
    return _Pending(
        id=f"course:{node_id}",
        label=f"{course.code} {course.title}".strip(),
        raw_weight=raw_weight,
        mean_pct=mean,
        n_children=sum(1 for child in children if child.mean_pct is not None),
        children=tuple(children),
    )


def resolve_backing_course(db: Session, course_node: GraphNode) -> Course | None:
    """Course row behind a graph node: ``meta.courseId`` first, then a code match."""
    meta = course_node.meta or {}
    course_id = meta.get("courseId", meta.get("course_id"))
    if isinstance(course_id, int) and not isinstance(course_id, bool):
        return db.get(Course, course_id)
    if course_node.code:
        return db.scalars(
            select(Course).where(Course.code == course_node.code).order_by(Course.id.asc()).limit(1)
        ).first()
    return None


def build_standard_evidence(db: Session, cohort_id: int, standard_node_id: int) -> EvidenceNode:
    """
    Evidence tree for one standard and one cohort, read straight from the canonical tables.

    Items, objectives and courses without data stay in the tree with ``mean_pct=None``
    and a zero share; each level renormalizes over the siblings that have data.
    """
    standard = db.get(GraphNode, standard_node_id)
    links = db.scalars(
        select(StandardCourseWeight)
        .where(StandardCourseWeight.standard_node_id == standard_node_id)
        .order_by(StandardCourseWeight.id.asc())
    ).all()

    courses: list[_Pending] = []
    for link in links:
        course_node = db.get(GraphNode, link.course_node_id)
        if course_node is None:
            logger.debug("Standard %s links missing course node %s", standard_node_id, link.course_node_id)
            continue
        course = resolve_backing_course(db, course_node)
        if course is None:
            logger.debug("Course node %s has no backing course row", course_node.id)
            continue
        courses.append(
            _course_pending(
                db,
                cohort_id,
                course,
                node_id=course_node.id,
                raw_weight=_raw_weight(link.weight_in_standard),
            )
        )

    mean, children = _combine(courses)
    evidence = EvidenceNode(
        id=f"standard:{standard_node_id}",
        label=standard.title if standard is not None else f"Standard {standard_node_id}",
        weight=1.0,
        raw_weight=1.0,
        mean_pct=mean,
        n_children=sum(1 for child in children if child.mean_pct is not None),
        children=tuple(children),
    )
    logger.info(
        "Built evidence for standard %s cohort %s: mean=%s courses=%d",
        standard_node_id,
        cohort_id,
        evidence.mean_pct,
        evidence.n_children,
    )
    return evidence


def compute_objective_mean(db: Session, cohort_id: int, objective_id: int) -> tuple[float | None, int]:
    objective = db.get(Objective, objective_id)
    if objective is None:
        return None, 0
    pending = _objective_pending(db, cohort_id, objective)
    return pending.mean_pct, pending.n_children


def compute_course_mean(db: Session, cohort_id: int, course_id: int) -> tuple[float | None, int]:
    course = db.get(Course, course_id)
    if course is None:
        return None, 0
    pending = _course_pending(db, cohort_id, course, node_id=course.id, raw_weight=DEFAULT_WEIGHT)
    return pending.mean_pct, pending.n_children


def compute_standard_mean(db: Session, cohort_id: int, standard_node_id: int) -> tuple[float | None, int]:
    evidence = build_standard_evidence(db, cohort_id, standard_node_id)
    return evidence.mean_pct, evidence.n_children
