from __future__ import annotations

import json

from sqlalchemy.orm import Session

from curriculum_rollup_api.db import Base, SessionLocal, engine
from curriculum_rollup_api.models import (
    Assessment,
    Cohort,
    Course,
    CurriculumMap,
    GraphEdge,
    GraphNode,
    Objective,
    Question,
    QuestionObjective,
    QuestionResult,
    StandardCourseWeight,
)


def _node(db: Session, map_id: int, kind: str, title: str, *, code: str | None = None, meta: dict | None = None) -> GraphNode:
    node = GraphNode(map_id=map_id, kind=kind, title=title, code=code, meta=meta or {})
    db.add(node)
    db.flush()
    return node


def _edge(db: Session, map_id: int, parent: GraphNode, child: GraphNode) -> None:
    db.add(GraphEdge(map_id=map_id, source_id=parent.id, target_id=child.id))


def seed(db: Session) -> dict:
    curriculum_map = CurriculumMap(name="Pharmacy Demo", framework_tag="ACPE")
    cohort = Cohort(name="Class of 2027", term="Fall", year=2025)
    db.add_all([curriculum_map, cohort])
    db.flush()

    foundations = Course(code="PHRM101", title="Foundations I", term="Fall", year=2025, credits=3)
    pharmacology = Course(code="PHRM102", title="Pharmacology I", term="Fall", year=2025, credits=4)
    db.add_all([foundations, pharmacology])
    db.flush()

    m = curriculum_map.id
    standard = _node(db, m, "STANDARD", "Std 1 Foundational knowledge", code="Std 1")
    course_nodes = {
        course.code: _node(db, m, "COURSE", course.title, code=course.code, meta={"courseId": course.id})
        for course in (foundations, pharmacology)
    }
    db.add_all(
        [
            StandardCourseWeight(standard_node_id=standard.id, course_node_id=course_nodes["PHRM101"].id, weight_in_standard=2),
            StandardCourseWeight(standard_node_id=standard.id, course_node_id=course_nodes["PHRM102"].id, weight_in_standard=1),
        ]
    )
    for course_node in course_nodes.values():
        _edge(db, m, standard, course_node)

    results = {"PHRM101": [(0.85, 1.0), (0.95, 1.0)], "PHRM102": [(0.55, 1.0), (0.65, 1.0)]}
    for course in (foundations, pharmacology):
        objective = Objective(course_id=course.id, code=f"{course.code}-O1", title="Core concepts", weight_in_course=1)
        assessment = Assessment(course_id=course.id, title=f"{course.code} Midterm", kind="Exam")
        db.add_all([objective, assessment])
        db.flush()

        objective_node = _node(db, m, "OBJECTIVE", objective.title, code=objective.code)
        assessment_node = _node(db, m, "ASSESSMENT", assessment.title)
        _edge(db, m, course_nodes[course.code], objective_node)
        _edge(db, m, objective_node, assessment_node)

        for index, (pct, weight) in enumerate(results[course.code], start=1):
            question = Question(assessment_id=assessment.id, label=f"Q{index}")
            db.add(question)
            db.flush()
            db.add(QuestionObjective(question_id=question.id, objective_id=objective.id, weight=weight))
            db.add(QuestionResult(cohort_id=cohort.id, question_id=question.id, n_attempted=100, n_correct=round(pct * 100)))
            item_node = _node(db, m, "ITEM", question.label, meta={"averagePct": pct * 100})
            _edge(db, m, assessment_node, item_node)

    db.flush()
    return {"map_id": m, "cohort_id": cohort.id, "standard_node_id": standard.id}


def main() -> int:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        ids = seed(db)
        db.commit()
    print(json.dumps(ids, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
