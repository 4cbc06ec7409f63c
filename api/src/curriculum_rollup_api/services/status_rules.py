from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from .entities import EntityKind, KpiKey, Status

ANY_SCOPE: Literal["any"] = "any"


class Direction(str, Enum):
    HIGHER_IS_BETTER = "higher_is_better"
    LOWER_IS_BETTER = "lower_is_better"


class RuleConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Thresholds:
    green: float
    amber: float
    gray_if_missing: bool = False


@dataclass(frozen=True)
class StatusRule:
    scope: EntityKind | Literal["any"]
    kpi_key: KpiKey
    direction: Direction
    thresholds: Thresholds

    def applies_to(self, kind: EntityKind) -> bool:
        return self.scope == ANY_SCOPE or self.scope == kind


DEFAULT_PALETTE: dict[Status, str] = {
    Status.GREEN: "#22c55e",
    Status.AMBER: "#f59e0b",
    Status.RED: "#ef4444",
    Status.GRAY: "#9ca3af",
}


@dataclass(frozen=True)
class RuleSet:
    rules: tuple[StatusRule, ...] = ()
    palette: Mapping[Status, str] = field(default_factory=lambda: dict(DEFAULT_PALETTE))


def _classify(value: float, rule: StatusRule) -> Status:
    green = rule.thresholds.green
    amber = rule.thresholds.amber
    if rule.direction is Direction.HIGHER_IS_BETTER:
        if value >= green:
            return Status.GREEN
        if value >= amber:
            return Status.AMBER
        return Status.RED
    if value <= green:
        return Status.GREEN
    if value <= amber:
        return Status.AMBER
    return Status.RED


def evaluate_status(kind: EntityKind, kpis: Mapping[KpiKey, float], rule_set: RuleSet) -> Status:
    """
    First rule whose scope matches ``kind`` and whose KPI is present decides the status.

    A matching rule with a missing KPI short-circuits to GRAY when it asks for that,
    otherwise evaluation moves on. Nothing matching at all is GRAY as well.
    """
    for rule in rule_set.rules:
        if not rule.applies_to(kind):
            continue
        value = kpis.get(rule.kpi_key)
        if value is None:
            if rule.thresholds.gray_if_missing:
                return Status.GRAY
            continue
        return _classify(value, rule)
    return Status.GRAY


def resolve_status(
    kind: EntityKind,
    kpis: Mapping[KpiKey, float],
    rule_set: RuleSet,
    status_override: Status | None,
) -> Status:
    if status_override is not None:
        return status_override
    return evaluate_status(kind, kpis, rule_set)


DEFAULT_RULE_SET = RuleSet(
    rules=(
        # Item: share of correct responses.
        StatusRule(EntityKind.ITEM, KpiKey.PROFICIENCY, Direction.HIGHER_IS_BETTER, Thresholds(0.85, 0.6, True)),
        StatusRule(EntityKind.ASSESSMENT, KpiKey.PROFICIENCY, Direction.HIGHER_IS_BETTER, Thresholds(0.8, 0.5, True)),
        StatusRule(EntityKind.OBJECTIVE, KpiKey.ALIGNMENT, Direction.HIGHER_IS_BETTER, Thresholds(0.9, 0.7, True)),
        StatusRule(EntityKind.COURSE, KpiKey.COMPLETION, Direction.HIGHER_IS_BETTER, Thresholds(0.9, 0.7, True)),
        StatusRule(EntityKind.STANDARD, KpiKey.COMPLETION, Direction.HIGHER_IS_BETTER, Thresholds(0.9, 0.7, False)),
        # Days since last review.
        StatusRule(EntityKind.STANDARD, KpiKey.FRESHNESS, Direction.LOWER_IS_BETTER, Thresholds(30, 90, True)),
    ),
)


def _parse_rule(raw: Any, index: int) -> StatusRule:
    if not isinstance(raw, Mapping):
        raise RuleConfigError(f"rules[{index}] must be an object")
    try:
        scope_raw = str(raw.get("scope", ANY_SCOPE)).strip().lower()
        scope: EntityKind | Literal["any"] = ANY_SCOPE if scope_raw == ANY_SCOPE else EntityKind.parse(scope_raw)
        kpi_key = KpiKey(str(raw.get("kpi", raw.get("kpi_key", ""))).strip().lower())
        direction = Direction(str(raw.get("direction", "")).strip().lower())
        thresholds = raw.get("thresholds") or {}
        if not isinstance(thresholds, Mapping):
            raise RuleConfigError(f"rules[{index}].thresholds must be an object")
        gray_if_missing = thresholds.get("gray_if_missing", thresholds.get("grayIfMissing", False))
        return StatusRule(
            scope=scope,
            kpi_key=kpi_key,
            direction=direction,
            thresholds=Thresholds(
                green=float(thresholds["green"]),
                amber=float(thresholds["amber"]),
                gray_if_missing=bool(gray_if_missing),
            ),
        )
    except RuleConfigError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise RuleConfigError(f"rules[{index}] is invalid: {exc}") from exc


def rule_set_from_dict(payload: Mapping[str, Any]) -> RuleSet:
    rules_raw = payload.get("rules", [])
    if not isinstance(rules_raw, Sequence) or isinstance(rules_raw, (str, bytes)):
        raise RuleConfigError("rules must be a list")
    rules = tuple(_parse_rule(raw, index) for index, raw in enumerate(rules_raw))

    palette = dict(DEFAULT_PALETTE)
    palette_raw = payload.get("palette") or {}
    if not isinstance(palette_raw, Mapping):
        raise RuleConfigError("palette must be an object")
    for key, colour in palette_raw.items():
        try:
            palette[Status.parse(key)] = str(colour)
        except ValueError as exc:
            raise RuleConfigError(str(exc)) from exc
    return RuleSet(rules=rules, palette=palette)


def rule_set_to_dict(rule_set: RuleSet) -> dict[str, Any]:
    return {
        "palette": {status.value: colour for status, colour in rule_set.palette.items()},
        "rules": [
            {
                "scope": rule.scope if rule.scope == ANY_SCOPE else rule.scope.value.lower(),
                "kpi": rule.kpi_key.value,
                "direction": rule.direction.value,
                "thresholds": {
                    "green": rule.thresholds.green,
                    "amber": rule.thresholds.amber,
                    "gray_if_missing": rule.thresholds.gray_if_missing,
                },
            }
            for rule in rule_set.rules
        ],
    }
