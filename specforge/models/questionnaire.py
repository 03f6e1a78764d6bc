from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from specforge.models.hospital import HospitalProfile

RequirementCategory = Literal["technical", "operational", "compliance"]


class ProcessedQuestionnaire(BaseModel):
    model_config = ConfigDict(frozen=True)

    profile: HospitalProfile
    responses: dict[str, Any]
    sections: dict[str, list[str]]
    completeness: float
    missing_sections: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    entities: dict[str, list[str]] = Field(default_factory=dict)
    quality_score: float = 0.0


class Requirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    category: RequirementCategory
    section: str
    field: str
    description: str
    value: Any = None
    clinical_weight: float
    urgency_weight: float
    complexity_weight: float
    overall_priority: float
    status: Literal["active", "superseded"] = "active"
    resolution: str | None = None


class RequirementConflict(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule: str
    winner_id: str
    loser_id: str
    description: str


class RequirementSet(BaseModel):
    """Prioritized requirements with conflicts already resolved."""

    model_config = ConfigDict(frozen=True)

    profile: HospitalProfile
    requirements: list[Requirement]
    conflicts: list[RequirementConflict] = Field(default_factory=list)
    quality_score: float = 0.0

    def active(self) -> list[Requirement]:
        return [req for req in self.requirements if req.status == "active"]

    def by_category(self) -> dict[str, list[Requirement]]:
        buckets: dict[str, list[Requirement]] = {"technical": [], "operational": [], "compliance": []}
        for req in self.requirements:
            buckets[req.category].append(req)
        return buckets
