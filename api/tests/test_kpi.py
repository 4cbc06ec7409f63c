from __future__ import annotations

import math

import pytest

from curriculum_rollup_api.services.entities import Entity, EntityKind, KpiKey
from curriculum_rollup_api.services.kpi import (
    AGGREGATE_PRECISION,
    aggregate_child_kpis,
    compute_entity_kpis,
    entity_weight,
    extract_kpis,
    normalize_weights,
    weighted_mean,
)


def _item(entity_id: str, pct: float | None, weight: float | None = None) -> Entity:
    raw = {} if pct is None else {"average_pct": pct}
    return Entity(id=entity_id, kind=EntityKind.ITEM, raw_data=raw, weight=weight)


def test_extract_per_kind() -> None:
    assert extract_kpis(EntityKind.ITEM, {"average_pct": 85}) == {KpiKey.PROFICIENCY: 0.85}
    assert extract_kpis(EntityKind.ITEM, {"difficulty_pct": 40}) == {KpiKey.PROFICIENCY: 0.4}
    assert extract_kpis(EntityKind.ASSESSMENT, {"average_pct": 72}) == {KpiKey.PROFICIENCY: 0.72}
    assert extract_kpis(EntityKind.OBJECTIVE, {"achievement_pct": 90}) == {KpiKey.ALIGNMENT: 0.9}
    assert extract_kpis(EntityKind.COURSE, {"course_avg_pct": 65}) == {KpiKey.COMPLETION: 0.65}
    assert extract_kpis(EntityKind.STANDARD, {"compliance_pct": 99}) == {}


def test_extract_clamps_out_of_range_percentages() -> None:
    assert extract_kpis(EntityKind.ITEM, {"average_pct": 140}) == {KpiKey.PROFICIENCY: 1.0}
    assert extract_kpis(EntityKind.COURSE, {"course_avg_pct": -12}) == {KpiKey.COMPLETION: 0.0}


@pytest.mark.parametrize("bad", [None, "n/a", math.nan, math.inf, True, [50]])
def test_extract_ignores_non_finite_values(bad: object) -> None:
    assert extract_kpis(EntityKind.ASSESSMENT, {"average_pct": bad}) == {}


def test_item_prefers_average_over_difficulty() -> None:
    kpis = extract_kpis(EntityKind.ITEM, {"average_pct": 80, "difficulty_pct": 20})
    assert kpis == {KpiKey.PROFICIENCY: 0.8}
    kpis = extract_kpis(EntityKind.ITEM, {"average_pct": None, "difficulty_pct": 20})
    assert kpis == {KpiKey.PROFICIENCY: 0.2}


def test_entity_weight_defaults_and_legacy_percent() -> None:
    assert entity_weight(_item("a", 50)) == 1.0
    assert entity_weight(_item("a", 50, weight=0.25)) == 0.25
    assert entity_weight(Entity(id="b", kind=EntityKind.ITEM, raw_data={"weight_pct": 40})) == pytest.approx(0.4)
    assert entity_weight(_item("a", 50, weight=-3)) == 0.0


def test_weights_above_one_are_relative_not_capped() -> None:
    assert entity_weight(_item("a", 50, weight=3)) == 3.0
    assert entity_weight(Entity(id="b", kind=EntityKind.ITEM, raw_data={"weight_pct": 250})) == pytest.approx(2.5)
    # (0.9 * 3 + 0.5 * 1) / 4; capping the first weight at 1 would give 0.7.
    children = [_item("q1", 90, 3.0), _item("q2", 50, 1.0)]
    assert aggregate_child_kpis(EntityKind.ASSESSMENT, children) == {KpiKey.PROFICIENCY: 0.8}


def test_assessment_scenario_green_to_amber_values() -> None:
    children = [_item("q1", 85), _item("q2", 70), _item("q3", 95)]
    assert aggregate_child_kpis(EntityKind.ASSESSMENT, children) == {KpiKey.PROFICIENCY: 0.8333}

    children[2] = _item("q3", None)
    assert aggregate_child_kpis(EntityKind.ASSESSMENT, children) == {KpiKey.PROFICIENCY: 0.775}


def test_aggregation_is_scale_invariant() -> None:
    weights = [0.2, 0.7, 0.35]
    values = [61, 88, 47]
    base = aggregate_child_kpis(
        EntityKind.ASSESSMENT, [_item(f"q{i}", v, w) for i, (v, w) in enumerate(zip(values, weights))]
    )
    for factor in (0.01, 3.0, 250.0):
        scaled = aggregate_child_kpis(
            EntityKind.ASSESSMENT,
            [_item(f"q{i}", v, w * factor) for i, (v, w) in enumerate(zip(values, weights))],
        )
        assert scaled == base


def test_missing_child_does_not_touch_denominator() -> None:
    with_gap = [_item("q1", 60, 1.0), _item("q2", None, 5.0), _item("q3", 90, 1.0)]
    without = [_item("q1", 60, 1.0), _item("q3", 90, 1.0)]
    assert aggregate_child_kpis(EntityKind.ASSESSMENT, with_gap) == aggregate_child_kpis(
        EntityKind.ASSESSMENT, without
    )


def test_no_data_children_leave_kpi_undefined() -> None:
    assert aggregate_child_kpis(EntityKind.ASSESSMENT, [_item("q1", None), _item("q2", None)]) == {}
    assert aggregate_child_kpis(EntityKind.ASSESSMENT, [_item("q1", 50, 0.0)]) == {}


def test_dispatch_table_and_fallbacks() -> None:
    objective_from_alignment = aggregate_child_kpis(
        EntityKind.OBJECTIVE,
        [Entity(id="o", kind=EntityKind.OBJECTIVE, raw_data={"achievement_pct": 70})],
    )
    assert objective_from_alignment == {KpiKey.ALIGNMENT: 0.7}

    course = aggregate_child_kpis(
        EntityKind.COURSE,
        [
            Entity(id="o1", kind=EntityKind.OBJECTIVE, raw_data={"achievement_pct": 80}),
            Entity(id="o2", kind=EntityKind.OBJECTIVE, raw_data={"achievement_pct": 60}),
        ],
    )
    assert course == {KpiKey.COMPLETION: 0.7}

    standard = aggregate_child_kpis(
        EntityKind.STANDARD,
        [
            Entity(id="c1", kind=EntityKind.COURSE, raw_data={"course_avg_pct": 90}, weight=2),
            Entity(id="c2", kind=EntityKind.COURSE, raw_data={"course_avg_pct": 60}, weight=1),
        ],
    )
    assert standard == {KpiKey.COMPLETION: 0.8}

    assert aggregate_child_kpis(EntityKind.ITEM, [_item("q", 50)]) == {}


def test_computed_kpis_take_precedence_over_raw_data() -> None:
    child = Entity(
        id="a",
        kind=EntityKind.ASSESSMENT,
        raw_data={"average_pct": 10},
        computed_kpis={KpiKey.PROFICIENCY: 0.9},
    )
    assert aggregate_child_kpis(EntityKind.OBJECTIVE, [child]) == {KpiKey.ALIGNMENT: 0.9}


def test_self_value_survives_when_aggregation_is_undefined() -> None:
    assessment = Entity(id="a", kind=EntityKind.ASSESSMENT, raw_data={"average_pct": 64})
    assert compute_entity_kpis(assessment, [_item("q1", None)]) == {KpiKey.PROFICIENCY: 0.64}
    assert compute_entity_kpis(assessment, [_item("q1", 90)]) == {KpiKey.PROFICIENCY: 0.9}


def test_rounding_precision() -> None:
    value = aggregate_child_kpis(EntityKind.ASSESSMENT, [_item("q1", 100), _item("q2", 0), _item("q3", 0)])
    assert AGGREGATE_PRECISION == 4
    assert value == {KpiKey.PROFICIENCY: 0.3333}


def test_weighted_mean_and_normalize_helpers() -> None:
    assert weighted_mean([]) is None
    assert weighted_mean([(0.9, 2.0), (0.6, 1.0)]) == pytest.approx(0.8)
    assert normalize_weights([2.0, 2.0]) == [0.5, 0.5]
    assert normalize_weights([0.0, 0.0, 0.0]) == pytest.approx([1 / 3] * 3)
    assert normalize_weights([]) == []
