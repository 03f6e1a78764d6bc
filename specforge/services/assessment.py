import logging
import math
from collections.abc import Mapping

from specforge.models.assessment import (
    HospitalAssessment,
    RiskAssessment,
    RiskItem,
    VendorCompatibility,
    VendorProfile,
)
from specforge.models.hospital import HospitalProfile
from specforge.services.assessment_cache import AssessmentCache
from specforge.services.vendors import DEFAULT_VENDORS, ApiMaturityPredictor, CompatibilityPredictor

logger = logging.getLogger(__name__)

COMPATIBILITY_THRESHOLD = 0.6
MAX_RECOMMENDED_VENDORS = 5

LOCATION_SCORES = {"Urban": 8.0, "Suburban": 6.0, "Rural": 4.0, "Critical Access": 3.0}
DEFAULT_LOCATION_SCORE = 5.0

TYPE_SCORES = {
    "academic": 9.0,
    "multi_site": 8.0,
    "specialty": 7.0,
    "community": 6.0,
    "general": 5.0,
    "critical_access": 4.0,
}
DEFAULT_TYPE_SCORE = 6.0

# Wi of the logarithmic complexity model; every Vi is normalized to [0, 1]
COMPLEXITY_WEIGHTS = {
    "size": 2.5,
    "volume": 2.0,
    "location": 1.5,
    "type": 1.8,
    "maturity": 2.2,
}

RISK_CATEGORIES = ("technical", "operational", "financial", "regulatory")
COST_PER_BED = 15000
FINANCIAL_RISK_THRESHOLD = 5_000_000


def calculate_complexity_score(profile: HospitalProfile) -> float:
    """Weighted sum of ``W * log2(1 + V)`` over five normalized variables, in [0, 10]."""
    values = {
        "size": min(profile.bed_count / 1000, 1.0),
        "volume": min((profile.annual_volume or 0) / 100_000, 1.0),
        "location": min(LOCATION_SCORES.get(profile.location or "", DEFAULT_LOCATION_SCORE) / 10, 1.0),
        "type": min(TYPE_SCORES.get(profile.type, DEFAULT_TYPE_SCORE) / 10, 1.0),
        "maturity": min(profile.technology_maturity / 10, 1.0),
    }
    score = sum(COMPLEXITY_WEIGHTS[name] * math.log2(1 + value) for name, value in values.items())
    return round(max(0.0, min(10.0, score)), 2)


def integration_compatibility(vendor: VendorProfile, profile: HospitalProfile) -> float:
    """Importance-weighted average of the vendor's integration factors (0-1)."""
    standards = " ".join(profile.interoperability_standards).lower()
    needs = " ".join(profile.integration_needs).lower()
    importance = {
        "fhir": 1.0 if "fhir" in standards else 0.5,
        "hl7": 1.0 if "hl7" in standards else 0.5,
        "custom_integration": 1.0 if ("api" in needs or "custom" in needs) else 0.3,
        "third_party": min(1.0, 0.5 + 0.1 * len(profile.clinical_systems)),
    }
    factors = vendor.compatibility_factors.model_dump()
    total = sum(importance.values())
    return sum(factors[name] / 10 * weight for name, weight in importance.items()) / total


def base_compatibility(vendor: VendorProfile, profile: HospitalProfile) -> float:
    score = 0.5
    if profile.is_large and vendor.complexity_score > 7.0:
        score += 0.2
    elif profile.is_small and vendor.complexity_score < 6.0:
        score += 0.15
    score += (1 - abs(profile.technology_maturity - vendor.api_maturity) / 10) * 0.2
    score += integration_compatibility(vendor, profile) * 0.3
    return min(score, 1.0)


def historical_adjustment(vendor: VendorProfile) -> float:
    return max(0.9, min(1.05, vendor.deployment_success_rate / 0.9))


def vendor_risk_factors(vendor: VendorProfile, profile: HospitalProfile) -> list[str]:
    factors = []
    if vendor.complexity_score > 8.0:
        factors.append("High implementation complexity")
    if vendor.integration_difficulty > 7.5:
        factors.append("Difficult third-party integration")
    if vendor.api_maturity < 7.5:
        factors.append("Limited API maturity")
    if profile.is_small and vendor.complexity_score > 7.0:
        factors.append("Vendor complexity exceeds facility scale")
    return factors


def rank_vendor_compatibilities(
    candidates: list[VendorCompatibility],
    threshold: float = COMPATIBILITY_THRESHOLD,
    limit: int = MAX_RECOMMENDED_VENDORS,
) -> list[VendorCompatibility]:
    """Keep vendors above ``threshold`` and order them by expected value.

    The ranking score is ``compatibility * success * (1 - min(months / 24, 1) * 0.2)``,
    so a slightly less compatible vendor with a better track record and a
    shorter rollout can outrank the raw compatibility leader.
    """
    ranked = []
    for candidate in candidates:
        if candidate.compatibility_score <= threshold:
            continue
        timeline_penalty = min(candidate.predicted_timeline_months / 24, 1.0)
        ranking = (
            candidate.compatibility_score
            * candidate.predicted_success_probability
            * (1 - timeline_penalty * 0.2)
        )
        ranked.append(candidate.model_copy(update={"ranking_score": round(ranking, 4)}))
    ranked.sort(key=lambda item: (-item.ranking_score, item.vendor_name))
    return ranked[:limit]


def risk_level_for(total_risks: int) -> str:
    if total_risks > 5:
        return "High"
    if total_risks > 2:
        return "Medium"
    return "Low"


class HospitalAssessmentEngine:
    """Scores complexity, vendor fit and risk, reading and writing through the cache."""

    def __init__(
        self,
        cache: AssessmentCache,
        vendors: Mapping[str, VendorProfile] = DEFAULT_VENDORS,
        predictor: CompatibilityPredictor | None = None,
    ) -> None:
        self.cache = cache
        self.vendors = vendors
        self.predictor = predictor or ApiMaturityPredictor()
        self.assessment_count = 0

    @staticmethod
    def cache_key(profile: HospitalProfile) -> str:
        return f"hospital_{profile.name}_{profile.bed_count}_{profile.type}"

    def assess_hospital(self, profile: HospitalProfile) -> HospitalAssessment:
        key = self.cache_key(profile)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Assessment cache hit for %s", key)
            return cached

        complexity = calculate_complexity_score(profile)
        candidates = [self.score_vendor(vendor, profile, complexity) for vendor in self.vendors.values()]
        recommended = rank_vendor_compatibilities(candidates)
        risk_assessment = self.assess_risks(profile)
        approach = self.recommended_approach(complexity)

        if recommended:
            timeline = recommended[0].predicted_timeline_months
            quality = sum(item.compatibility_score for item in recommended) / len(recommended)
        else:
            timeline = 12.0
            quality = 0.5

        assessment = HospitalAssessment(
            cache_key=key,
            hospital_name=profile.name,
            complexity_score=complexity,
            vendor_compatibility=recommended,
            risk_assessment=risk_assessment,
            recommended_approach=approach,
            estimated_timeline_months=timeline,
            key_recommendations=self.key_recommendations(profile, recommended, risk_assessment, approach),
            quality_score=round(quality, 3),
        )
        self.cache.set(
            key,
            assessment,
            {"clinical": True, "bed_count": profile.bed_count, "complexity_score": complexity},
        )
        self.assessment_count += 1
        logger.info(
            "Assessed %s: complexity=%.2f, %d vendors above threshold, risk=%s",
            profile.name,
            complexity,
            len(recommended),
            risk_assessment.risk_level,
        )
        return assessment

    def score_vendor(self, vendor: VendorProfile, profile: HospitalProfile, complexity: float) -> VendorCompatibility:
        base = base_compatibility(vendor, profile)
        predicted = max(0.0, min(1.0, self.predictor.predict(vendor, profile)))
        blended = (base * 0.7 + predicted * 0.3) * historical_adjustment(vendor)

        months = float(vendor.average_implementation_time_months)
        if complexity > 7.0:
            months *= 1.2
        elif complexity < 4.0:
            months *= 0.8

        return VendorCompatibility(
            vendor_name=vendor.name,
            base_compatibility_score=round(base, 4),
            compatibility_score=round(max(0.0, min(1.0, blended)), 4),
            predicted_success_probability=vendor.deployment_success_rate,
            predicted_timeline_months=float(round(months)),
            risk_factors=vendor_risk_factors(vendor, profile),
        )

    def assess_risks(self, profile: HospitalProfile) -> RiskAssessment:
        risks: dict[str, list[RiskItem]] = {category: [] for category in RISK_CATEGORIES}
        standards = " ".join(profile.interoperability_standards).lower()
        frameworks = {item.strip().lower() for item in profile.compliance_frameworks}

        if profile.technology_maturity < 5.0:
            risks["technical"].append(RiskItem(
                category="technical",
                risk="Low technology maturity may slow system adoption",
                severity="high",
                mitigation="Stage infrastructure upgrades ahead of integration work",
            ))
        if "fhir" not in standards and "hl7" not in standards:
            risks["technical"].append(RiskItem(
                category="technical",
                risk="No interoperability standard (FHIR or HL7) in place",
                severity="medium",
                mitigation="Deploy an integration engine with HL7 v2 and FHIR R4 interfaces",
            ))
        if profile.additional_ehrs:
            risks["technical"].append(RiskItem(
                category="technical",
                risk="Multiple EHR platforms widen the integration surface",
                severity="medium",
                mitigation="Consolidate interfaces behind a single integration hub",
            ))
        if profile.is_large:
            risks["operational"].append(RiskItem(
                category="operational",
                risk="Large facility increases change-management scope",
                severity="medium",
                mitigation="Use department-by-department rollout with super users",
            ))
        if profile.it_staff_count is not None and profile.it_staff_count < 10:
            risks["operational"].append(RiskItem(
                category="operational",
                risk="Limited in-house IT staff",
                severity="medium",
                mitigation="Contract vendor implementation support for go-live",
            ))
        if COST_PER_BED * profile.bed_count > FINANCIAL_RISK_THRESHOLD:
            risks["financial"].append(RiskItem(
                category="financial",
                risk="Estimated implementation cost exceeds $5M",
                severity="high",
                mitigation="Phase capital spending across fiscal years",
            ))
        if "hipaa" not in frameworks:
            risks["regulatory"].append(RiskItem(
                category="regulatory",
                risk="HIPAA compliance not declared",
                severity="high",
                mitigation="Complete a HIPAA security risk analysis before go-live",
            ))

        total = sum(len(items) for items in risks.values())
        mitigations = [item.mitigation for category in RISK_CATEGORIES for item in risks[category]]
        return RiskAssessment(
            risks=risks,
            total_risks=total,
            risk_level=risk_level_for(total),
            mitigation_strategies=mitigations,
        )

    @staticmethod
    def recommended_approach(complexity: float) -> str:
        if complexity > 7.5:
            return "Phased Implementation"
        if complexity > 5.0:
            return "Standard Implementation"
        return "Accelerated Implementation"

    @staticmethod
    def key_recommendations(
        profile: HospitalProfile,
        vendors: list[VendorCompatibility],
        risks: RiskAssessment,
        approach: str,
    ) -> list[str]:
        recommendations = [f"Plan for {approach.lower()}"]
        if vendors:
            recommendations.append(
                f"Prioritize {vendors[0].vendor_name} (compatibility {vendors[0].compatibility_score:.2f})"
            )
        if not any("fhir" in item.lower() for item in profile.interoperability_standards):
            recommendations.append("Adopt FHIR R4 APIs for new integrations")
        if risks.risk_level == "High":
            recommendations.append("Establish a dedicated risk management office")
        return recommendations
