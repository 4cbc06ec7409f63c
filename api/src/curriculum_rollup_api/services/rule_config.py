from __future__ import annotations

import datetime as dt
import json
import logging
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from ..config import get_settings
from ..models import StatusConfigRecord
from .status_rules import DEFAULT_RULE_SET, RuleConfigError, RuleSet, rule_set_from_dict, rule_set_to_dict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_KEY = "default"


def load_rule_set_file(path: str | Path) -> RuleSet:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise RuleConfigError(f"Cannot read status config file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise RuleConfigError(f"Status config file {path} is not valid JSON: {exc}") from exc
    return rule_set_from_dict(payload)


def fallback_rule_set() -> RuleSet:
    path = get_settings().status_config_path
    if path:
        return load_rule_set_file(path)
    return DEFAULT_RULE_SET


def get_rule_set(db: Session, key: str = DEFAULT_CONFIG_KEY) -> RuleSet:
    record = db.get(StatusConfigRecord, key)
    if record is None:
        return fallback_rule_set()
    return rule_set_from_dict(record.config_json)


def save_rule_set(db: Session, payload: dict[str, Any], key: str = DEFAULT_CONFIG_KEY) -> RuleSet:
    # Parse first so an invalid config never reaches the table.
    rule_set = rule_set_from_dict(payload)
    record = db.get(StatusConfigRecord, key)
    if record is None:
        record = StatusConfigRecord(key=key, config_json=rule_set_to_dict(rule_set))
        db.add(record)
    else:
        record.config_json = rule_set_to_dict(rule_set)
        record.updated_at = dt.datetime.now(dt.timezone.utc)
    db.flush()
    logger.info("Saved status config %s with %d rule(s)", key, len(rule_set.rules))
    return rule_set
