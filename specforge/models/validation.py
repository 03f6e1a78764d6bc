from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FeasibilityCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float
    issues: list[str] = Field(default_factory=list)


class FeasibilityBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    technical: FeasibilityCheck
    resource: FeasibilityCheck
    timeline: FeasibilityCheck
    budget: FeasibilityCheck

    @property
    def overall(self) -> float:
        scores = [self.technical.score, self.resource.score, self.timeline.score, self.budget.score]
        return sum(scores) / len(scores)

    def issues(self) -> list[str]:
        return self.technical.issues + self.resource.issues + self.timeline.issues + self.budget.issues


class OptimizationRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    priority: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """Scored quality dimensions for one specification."""

    model_config = ConfigDict(frozen=True)

    quality_score: float
    feasibility_score: float
    sub_scores: dict[str, float]
    feasibility: FeasibilityBreakdown
    missing_sections: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    uncovered_requirements: list[str] = Field(default_factory=list)
    optimization_recommendations: list[OptimizationRecommendation] = Field(default_factory=list)
    refinement_required: bool = False
