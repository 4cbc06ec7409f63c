from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EntityKind(str, Enum):
    STANDARD = "STANDARD"
    COURSE = "COURSE"
    OBJECTIVE = "OBJECTIVE"
    ASSESSMENT = "ASSESSMENT"
    ITEM = "ITEM"

    @classmethod
    def parse(cls, value: str | EntityKind) -> EntityKind:
        if isinstance(value, EntityKind):
            return value
        key = str(value).strip().upper()
        # The graph editor calls items "questions".
        if key == "QUESTION":
            return cls.ITEM
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unsupported entity kind: {value}") from None


class Status(str, Enum):
    GREEN = "GREEN"
    AMBER = "AMBER"
    RED = "RED"
    GRAY = "GRAY"

    @classmethod
    def parse(cls, value: str | Status) -> Status:
        if isinstance(value, Status):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unsupported status: {value}") from None


class KpiKey(str, Enum):
    PROFICIENCY = "proficiency"
    ALIGNMENT = "alignment"
    COMPLETION = "completion"
    # Reserved for standards: days since last review.
    FRESHNESS = "freshness"


KpiMap = dict[KpiKey, float]


@dataclass(frozen=True)
class Entity:
    id: str
    kind: EntityKind
    raw_data: Mapping[str, Any] = field(default_factory=dict)
    weight: float | None = None
    status_override: Status | None = None
    label: str = ""
    # None means the entity has never been through recomputation.
    computed_kpis: Mapping[KpiKey, float] | None = None
    computed_status: Status = Status.GRAY


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    id: str | None = None
