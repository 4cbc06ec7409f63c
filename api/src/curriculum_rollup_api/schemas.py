from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class APIModel(BaseModel):
    model_config = {"from_attributes": True}


class ThresholdsIn(BaseModel):
    green: float
    amber: float
    gray_if_missing: bool = False


class StatusRuleIn(BaseModel):
    scope: str = Field(default="any", min_length=1, max_length=20)
    kpi: Literal["proficiency", "alignment", "completion", "freshness"]
    direction: Literal["higher_is_better", "lower_is_better"]
    thresholds: ThresholdsIn


class StatusConfigIn(BaseModel):
    palette: dict[str, str] = Field(default_factory=dict)
    rules: list[StatusRuleIn] = Field(default_factory=list)


class StatusConfigOut(BaseModel):
    palette: dict[str, str]
    rules: list[StatusRuleIn]


class EntityIn(BaseModel):
    id: str = Field(min_length=1, max_length=120)
    kind: str = Field(min_length=1, max_length=20)
    label: str = ""
    raw_data: dict[str, Any] = Field(default_factory=dict)
    weight: float | None = None
    status_override: str | None = None
    computed_kpis: dict[str, float] | None = None
    computed_status: str = "GRAY"


class EdgeIn(BaseModel):
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    id: str | None = None


class RecomputeRequest(BaseModel):
    entities: list[EntityIn]
    edges: list[EdgeIn] = Field(default_factory=list)
    changed_id: str = Field(min_length=1)
    config: StatusConfigIn | None = None


class FullRecomputeRequest(BaseModel):
    entities: list[EntityIn]
    edges: list[EdgeIn] = Field(default_factory=list)
    config: StatusConfigIn | None = None


class EntityOut(APIModel):
    id: str
    kind: str
    label: str
    raw_data: dict[str, Any]
    weight: float | None
    status_override: str | None
    computed_kpis: dict[str, float] | None
    computed_status: str
    color: str


class RollupOut(APIModel):
    entities: list[EntityOut]
    edges: list[EdgeIn]
    palette: dict[str, str]
    changed_ids: list[str]


class EvidenceNodeOut(APIModel):
    id: str
    label: str
    weight: float
    raw_weight: float
    mean_pct: float | None
    n_children: int
    children: list[EvidenceNodeOut] = Field(default_factory=list)


class StandardEvidenceOut(APIModel):
    cohort_id: int
    standard_node_id: int
    evidence: EvidenceNodeOut


class StandardMeanOut(APIModel):
    cohort_id: int
    standard_node_id: int
    mean_pct: float | None
    n_courses: int


class HealthOut(BaseModel):
    ok: bool
    service: str


class NodePatchIn(BaseModel):
    raw_data: dict[str, Any] | None = None
    weight: float | None = None
    status_override: str | None = None
