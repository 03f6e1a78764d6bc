from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RiskCategory = Literal["technical", "operational", "financial", "regulatory"]
RiskLevel = Literal["Low", "Medium", "High"]


class CompatibilityFactors(BaseModel):
    model_config = ConfigDict(frozen=True)

    fhir: float
    hl7: float
    custom_integration: float
    third_party: float


class VendorProfile(BaseModel):
    """Static knowledge about an EHR vendor."""

    model_config = ConfigDict(frozen=True)

    name: str
    complexity_score: float
    integration_difficulty: float
    api_maturity: float
    compatibility_factors: CompatibilityFactors
    deployment_success_rate: float
    average_implementation_time_months: int


class VendorCompatibility(BaseModel):
    model_config = ConfigDict(frozen=True)

    vendor_name: str
    base_compatibility_score: float
    compatibility_score: float
    predicted_success_probability: float
    predicted_timeline_months: float
    ranking_score: float = 0.0
    risk_factors: list[str] = Field(default_factory=list)


class RiskItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: RiskCategory
    risk: str
    severity: Literal["low", "medium", "high"]
    mitigation: str


class RiskAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    risks: dict[str, list[RiskItem]]
    total_risks: int
    risk_level: RiskLevel
    mitigation_strategies: list[str] = Field(default_factory=list)


class HospitalAssessment(BaseModel):
    """Complexity, vendor fit and risk for one hospital profile."""

    model_config = ConfigDict(frozen=True)

    cache_key: str
    hospital_name: str
    complexity_score: float
    vendor_compatibility: list[VendorCompatibility]
    risk_assessment: RiskAssessment
    recommended_approach: str
    estimated_timeline_months: float
    key_recommendations: list[str] = Field(default_factory=list)
    quality_score: float = 0.0
