from __future__ import annotations

import pytest

from curriculum_rollup_api.services.entities import EntityKind, KpiKey, Status
from curriculum_rollup_api.services.status_rules import (
    DEFAULT_PALETTE,
    DEFAULT_RULE_SET,
    Direction,
    RuleConfigError,
    RuleSet,
    StatusRule,
    Thresholds,
    evaluate_status,
    resolve_status,
    rule_set_from_dict,
    rule_set_to_dict,
)


def _rule(scope, kpi=KpiKey.PROFICIENCY, direction=Direction.HIGHER_IS_BETTER, green=0.8, amber=0.5, gray=False):
    return StatusRule(scope, kpi, direction, Thresholds(green, amber, gray))


def test_higher_is_better_bands() -> None:
    rules = RuleSet(rules=(_rule(EntityKind.ASSESSMENT),))
    assert evaluate_status(EntityKind.ASSESSMENT, {KpiKey.PROFICIENCY: 0.8333}, rules) is Status.GREEN
    assert evaluate_status(EntityKind.ASSESSMENT, {KpiKey.PROFICIENCY: 0.8}, rules) is Status.GREEN
    assert evaluate_status(EntityKind.ASSESSMENT, {KpiKey.PROFICIENCY: 0.775}, rules) is Status.AMBER
    assert evaluate_status(EntityKind.ASSESSMENT, {KpiKey.PROFICIENCY: 0.49}, rules) is Status.RED


def test_lower_is_better_bands() -> None:
    rules = RuleSet(
        rules=(_rule(EntityKind.STANDARD, KpiKey.FRESHNESS, Direction.LOWER_IS_BETTER, green=30, amber=90),)
    )
    assert evaluate_status(EntityKind.STANDARD, {KpiKey.FRESHNESS: 30}, rules) is Status.GREEN
    assert evaluate_status(EntityKind.STANDARD, {KpiKey.FRESHNESS: 60}, rules) is Status.AMBER
    assert evaluate_status(EntityKind.STANDARD, {KpiKey.FRESHNESS: 91}, rules) is Status.RED


def test_first_matching_rule_wins() -> None:
    strict = _rule(EntityKind.COURSE, KpiKey.COMPLETION, green=0.95, amber=0.9)
    lenient = _rule(EntityKind.COURSE, KpiKey.COMPLETION, green=0.5, amber=0.2)
    kpis = {KpiKey.COMPLETION: 0.7}
    assert evaluate_status(EntityKind.COURSE, kpis, RuleSet(rules=(strict, lenient))) is Status.RED
    assert evaluate_status(EntityKind.COURSE, kpis, RuleSet(rules=(lenient, strict))) is Status.GREEN


def test_scope_filtering_and_any_scope() -> None:
    rules = RuleSet(rules=(_rule(EntityKind.ITEM, green=0.9, amber=0.8), _rule("any", green=0.5, amber=0.1)))
    assert evaluate_status(EntityKind.ASSESSMENT, {KpiKey.PROFICIENCY: 0.6}, rules) is Status.GREEN
    assert evaluate_status(EntityKind.ITEM, {KpiKey.PROFICIENCY: 0.6}, rules) is Status.RED


def test_missing_kpi_gray_or_fall_through() -> None:
    gray_first = RuleSet(rules=(_rule(EntityKind.COURSE, KpiKey.COMPLETION, gray=True), _rule("any", KpiKey.ALIGNMENT)))
    skip_first = RuleSet(rules=(_rule(EntityKind.COURSE, KpiKey.COMPLETION, gray=False), _rule("any", KpiKey.ALIGNMENT)))
    kpis = {KpiKey.ALIGNMENT: 0.9}
    assert evaluate_status(EntityKind.COURSE, kpis, gray_first) is Status.GRAY
    assert evaluate_status(EntityKind.COURSE, kpis, skip_first) is Status.GREEN


def test_no_matching_rule_is_gray() -> None:
    assert evaluate_status(EntityKind.COURSE, {KpiKey.COMPLETION: 1.0}, RuleSet()) is Status.GRAY
    rules = RuleSet(rules=(_rule(EntityKind.ITEM),))
    assert evaluate_status(EntityKind.COURSE, {KpiKey.COMPLETION: 1.0}, rules) is Status.GRAY
    rules = RuleSet(rules=(_rule(EntityKind.COURSE, KpiKey.COMPLETION, gray=False),))
    assert evaluate_status(EntityKind.COURSE, {}, rules) is Status.GRAY


def test_override_short_circuits() -> None:
    kpis = {KpiKey.PROFICIENCY: 1.0}
    assert resolve_status(EntityKind.ITEM, kpis, DEFAULT_RULE_SET, Status.RED) is Status.RED
    assert resolve_status(EntityKind.ITEM, {}, RuleSet(), Status.RED) is Status.RED
    assert resolve_status(EntityKind.ITEM, kpis, DEFAULT_RULE_SET, None) is Status.GREEN


def test_default_rule_set_standard_completion() -> None:
    assert evaluate_status(EntityKind.STANDARD, {KpiKey.COMPLETION: 0.8}, DEFAULT_RULE_SET) is Status.AMBER
    assert evaluate_status(EntityKind.STANDARD, {}, DEFAULT_RULE_SET) is Status.GRAY


def test_config_round_trip_keeps_rule_order_and_palette() -> None:
    payload = {
        "palette": {"green": "#00ff00"},
        "rules": [
            {"scope": "question", "kpi": "proficiency", "direction": "higher_is_better",
             "thresholds": {"green": 0.85, "amber": 0.6, "grayIfMissing": True}},
            {"scope": "any", "kpi": "completion", "direction": "lower_is_better",
             "thresholds": {"green": 0.1, "amber": 0.2}},
        ],
    }
    rule_set = rule_set_from_dict(payload)
    assert rule_set.rules[0].scope is EntityKind.ITEM
    assert rule_set.rules[0].thresholds.gray_if_missing is True
    assert rule_set.rules[1].scope == "any"
    assert rule_set.palette[Status.GREEN] == "#00ff00"
    assert rule_set.palette[Status.RED] == DEFAULT_PALETTE[Status.RED]
    assert rule_set_from_dict(rule_set_to_dict(rule_set)) == rule_set


@pytest.mark.parametrize(
    "payload",
    [
        {"rules": "nope"},
        {"rules": [{"scope": "planet", "kpi": "proficiency", "direction": "higher_is_better",
                    "thresholds": {"green": 1, "amber": 0}}]},
        {"rules": [{"scope": "any", "kpi": "speed", "direction": "higher_is_better",
                    "thresholds": {"green": 1, "amber": 0}}]},
        {"rules": [{"scope": "any", "kpi": "proficiency", "direction": "sideways",
                    "thresholds": {"green": 1, "amber": 0}}]},
        {"rules": [{"scope": "any", "kpi": "proficiency", "direction": "higher_is_better",
                    "thresholds": {"green": 1}}]},
        {"palette": {"PURPLE": "#800080"}},
    ],
)
def test_invalid_config_raises(payload: dict) -> None:
    with pytest.raises(RuleConfigError):
        rule_set_from_dict(payload)
