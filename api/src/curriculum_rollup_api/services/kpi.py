from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

from .entities import Entity, EntityKind, KpiKey, KpiMap

# Aggregated KPI values are stored rounded so repeated runs compare equal.
AGGREGATE_PRECISION = 4

DEFAULT_WEIGHT = 1.0


def _finite_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def clamp01(value: Any) -> float | None:
    number = _finite_number(value)
    if number is None:
        return None
    return max(0.0, min(1.0, number))


def pct_to_unit(value: Any) -> float | None:
    number = _finite_number(value)
    if number is None:
        return None
    return clamp01(number / 100.0)


def extract_kpis(kind: EntityKind, raw_data: Mapping[str, Any] | None) -> KpiMap:
    if not raw_data:
        return {}

    if kind is EntityKind.ITEM:
        pct = raw_data.get("average_pct")
        if _finite_number(pct) is None:
            pct = raw_data.get("difficulty_pct")
        proficiency = pct_to_unit(pct)
        return {KpiKey.PROFICIENCY: proficiency} if proficiency is not None else {}

    if kind is EntityKind.ASSESSMENT:
        proficiency = pct_to_unit(raw_data.get("average_pct"))
        return {KpiKey.PROFICIENCY: proficiency} if proficiency is not None else {}

    if kind is EntityKind.OBJECTIVE:
        alignment = pct_to_unit(raw_data.get("achievement_pct"))
        return {KpiKey.ALIGNMENT: alignment} if alignment is not None else {}

    if kind is EntityKind.COURSE:
        completion = pct_to_unit(raw_data.get("course_avg_pct"))
        return {KpiKey.COMPLETION: completion} if completion is not None else {}

    if kind is EntityKind.STANDARD:
        return {}

    raise ValueError(f"Unsupported entity kind: {kind}")


def _non_negative(value: Any) -> float | None:
    number = _finite_number(value)
    if number is None:
        return None
    return max(0.0, number)


def entity_weight(entity: Entity) -> float:
    # Weights are relative: they are renormalized over contributing siblings.
    weight = _non_negative(entity.weight)
    if weight is not None:
        return weight
    legacy = _non_negative(entity.raw_data.get("weight_pct")) if entity.raw_data else None
    if legacy is not None:
        return legacy / 100.0
    return DEFAULT_WEIGHT


def effective_kpis(entity: Entity) -> Mapping[KpiKey, float]:
    if entity.computed_kpis is not None:
        return entity.computed_kpis
    return extract_kpis(entity.kind, entity.raw_data)


def weighted_mean(pairs: Sequence[tuple[float, float]]) -> float | None:
    """Weighted mean of ``(value, weight)`` pairs, None when the weights sum to zero."""
    total_weight = sum(weight for _, weight in pairs)
    if total_weight <= 0:
        return None
    return sum(value * weight for value, weight in pairs) / total_weight


def normalize_weights(weights: Sequence[float]) -> list[float]:
    total = sum(weights)
    if total <= 0:
        if not weights:
            return []
        return [1.0 / len(weights)] * len(weights)
    return [weight / total for weight in weights]


def _pull(children: Sequence[Entity], key: KpiKey) -> float | None:
    pairs: list[tuple[float, float]] = []
    for child in children:
        value = effective_kpis(child).get(key)
        if value is None:
            continue
        pairs.append((value, entity_weight(child)))
    mean = weighted_mean(pairs)
    if mean is None:
        return None
    return round(mean, AGGREGATE_PRECISION)


def _first_defined(*values: float | None) -> float | None:
    for value in values:
        if value is not None:
            return value
    return None


def aggregate_child_kpis(kind: EntityKind, children: Sequence[Entity]) -> KpiMap:
    """
    Roll child KPIs up into the parent's KPI vocabulary.

    Only keys with a defined value are returned, so callers can merge the result over
    self-extracted KPIs without erasing them.
    """
    if kind is EntityKind.ASSESSMENT:
        key, value = KpiKey.PROFICIENCY, _pull(children, KpiKey.PROFICIENCY)
    elif kind is EntityKind.OBJECTIVE:
        key = KpiKey.ALIGNMENT
        value = _first_defined(
            _pull(children, KpiKey.PROFICIENCY),
            _pull(children, KpiKey.ALIGNMENT),
        )
    elif kind is EntityKind.COURSE:
        key, value = KpiKey.COMPLETION, _pull(children, KpiKey.ALIGNMENT)
    elif kind is EntityKind.STANDARD:
        key = KpiKey.COMPLETION
        value = _first_defined(
            _pull(children, KpiKey.COMPLETION),
            _pull(children, KpiKey.ALIGNMENT),
        )
    elif kind is EntityKind.ITEM:
        return {}
    else:
        raise ValueError(f"Unsupported entity kind: {kind}")

    return {key: value} if value is not None else {}


def compute_entity_kpis(entity: Entity, children: Sequence[Entity]) -> KpiMap:
    kpis = extract_kpis(entity.kind, entity.raw_data)
    if children:
        kpis.update(aggregate_child_kpis(entity.kind, children))
    return kpis
