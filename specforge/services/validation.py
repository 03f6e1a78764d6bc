import logging
import math
from typing import Any

from specforge.models.questionnaire import RequirementSet
from specforge.models.specification import (
    SPECIFICATION_SECTIONS,
    ImplementationPhase,
    RefinementSuggestion,
    Specification,
)
from specforge.models.validation import (
    FeasibilityBreakdown,
    FeasibilityCheck,
    OptimizationRecommendation,
    ValidationResult,
)
from specforge.services.questionnaire import ON_PREMISE
from specforge.services.specification import (
    basic_section_content,
    is_cloud_deployment,
    rebalance_phases,
    risk_adjusted_weeks,
)

logger = logging.getLogger(__name__)

QUALITY_WEIGHTS = {
    "completeness": 0.25,
    "accuracy": 0.25,
    "feasibility": 0.20,
    "consistency": 0.15,
    "compliance": 0.10,
    "technical_validity": 0.05,
}

FEASIBILITY_REFINEMENT_THRESHOLD = 0.8
COMPLETENESS_OPTIMIZATION_THRESHOLD = 0.9

# Fields a section must carry to count as complete
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "infrastructure": ("compute_requirements", "storage_requirements", "network_requirements"),
    "integration": ("emr_integration", "api_requirements"),
    "security": ("access_control", "encryption_requirements"),
    "compliance": ("selected_frameworks", "recommended_frameworks"),
    "deployment": ("approach", "environments"),
    "monitoring": ("uptime_target", "alerting"),
    "backup_recovery": ("rpo_hours", "rto_hours"),
    "implementation_timeline": ("phases", "total_weeks"),
}

SERVER_BOUNDS = (1, 100)
STORAGE_BOUNDS_GB = (100, 100_000)
MAX_UNSTAGED_SIDI = 2.5

TECHNICAL_PENALTY = 0.2
RESOURCE_PENALTY = 0.3
TIMELINE_PENALTY = 0.4
BUDGET_PENALTY = 0.3

NO_FRAMEWORK_ISSUE = "At least one compliance framework (e.g., HIPAA) should be selected"

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def _within(value: Any, bounds: tuple[int, int]) -> bool:
    return isinstance(value, (int, float)) and bounds[0] <= value <= bounds[1]


def _phases(specification: Specification) -> list[ImplementationPhase]:
    return [
        ImplementationPhase.model_validate(item)
        for item in specification.implementation_timeline.get("phases", [])
    ]


class ValidationEngine:
    def __init__(self, refinement_threshold: float = FEASIBILITY_REFINEMENT_THRESHOLD) -> None:
        self.refinement_threshold = refinement_threshold
        self.validation_count = 0

    def validate_specification(
        self,
        specification: Specification,
        requirements: RequirementSet | None = None,
    ) -> ValidationResult:
        """Score a specification on six weighted dimensions.

        ``refinement_required`` is set when the mean of the four feasibility
        checks falls below the refinement threshold.
        """
        completeness, missing = self.check_completeness(specification)
        accuracy, uncovered = self.check_accuracy(specification, requirements)
        consistency, consistency_issues, warnings = self.check_consistency(specification)
        compliance = self.check_compliance(specification)
        technical, technical_issues = self.check_technical_validity(specification)
        feasibility = self.assess_feasibility(specification)

        sub_scores = {
            "completeness": round(completeness, 4),
            "accuracy": round(accuracy, 4),
            "consistency": round(consistency, 4),
            "compliance": round(compliance, 4),
            "technical_validity": round(technical, 4),
            "feasibility": round(feasibility.overall, 4),
        }
        quality = sum(QUALITY_WEIGHTS[name] * score for name, score in sub_scores.items())
        issues = consistency_issues + technical_issues + feasibility.issues()

        recommendations = self.optimization_recommendations(
            specification, sub_scores, missing, feasibility, consistency_issues
        )
        refinement_required = feasibility.overall < self.refinement_threshold

        self.validation_count += 1
        logger.info(
            "Validated specification for %s: quality=%.3f feasibility=%.3f refinement=%s",
            specification.metadata.get("hospital_name", "unknown"),
            quality,
            feasibility.overall,
            refinement_required,
        )
        return ValidationResult(
            quality_score=round(quality, 4),
            feasibility_score=round(feasibility.overall, 4),
            sub_scores=sub_scores,
            feasibility=feasibility,
            missing_sections=missing,
            issues=issues,
            warnings=warnings,
            uncovered_requirements=uncovered,
            optimization_recommendations=recommendations,
            refinement_required=refinement_required,
        )

    @staticmethod
    def check_completeness(specification: Specification) -> tuple[float, list[str]]:
        scores = []
        missing = []
        for section, fields in REQUIRED_FIELDS.items():
            content = specification.section(section)
            if not content:
                missing.append(section)
                scores.append(0.0)
                continue
            present = sum(1 for field in fields if content.get(field) is not None)
            scores.append(present / len(fields))
        missing.extend(
            name for name in SPECIFICATION_SECTIONS
            if name not in REQUIRED_FIELDS and not specification.section(name)
        )
        return sum(scores) / len(scores), missing

    @staticmethod
    def check_accuracy(
        specification: Specification,
        requirements: RequirementSet | None,
    ) -> tuple[float, list[str]]:
        """Share of active requirements traced to a non-empty section."""
        active = requirements.active() if requirements is not None else []
        if not active:
            return 0.8, []
        covered = set()
        for section, ids in specification.requirement_trace.items():
            if specification.section(section):
                covered.update(ids)
        uncovered = [req.id for req in active if req.id not in covered]
        return (len(active) - len(uncovered)) / len(active), uncovered

    @staticmethod
    def check_consistency(specification: Specification) -> tuple[float, list[str], list[str]]:
        issues: list[str] = []
        warnings: list[str] = []
        compliance = specification.compliance
        infrastructure = specification.infrastructure
        backup = specification.backup_recovery
        timeline = specification.implementation_timeline
        metadata = specification.metadata

        if compliance and not compliance.get("selected_frameworks"):
            issues.append(NO_FRAMEWORK_ISSUE)

        residency = compliance.get("data_residency")
        if is_cloud_deployment(infrastructure.get("deployment_model")) and residency in ON_PREMISE:
            issues.append("Cloud deployment model conflicts with on-premise data residency")

        if backup.get("backup_storage_gb") is not None and backup.get("primary_storage_gb") is not None:
            if backup["backup_storage_gb"] < backup["primary_storage_gb"]:
                issues.append("Backup storage is smaller than primary storage")

        phases = timeline.get("phases")
        if phases and timeline.get("total_weeks") != sum(item["duration_weeks"] for item in phases):
            issues.append("Implementation timeline total does not match its phase durations")

        if metadata.get("hospital_type") == "critical_access" and (metadata.get("bed_count") or 0) > 500:
            warnings.append("Critical access hospitals typically have < 100 beds")
        if "primary_ehr" in metadata and not metadata["primary_ehr"]:
            warnings.append("Primary EHR not specified; integration plan uses generic interfaces")

        return max(0.0, 1.0 - 0.1 * len(issues)), issues, warnings

    @staticmethod
    def check_compliance(specification: Specification) -> float:
        """Mean of HIPAA, HITECH, state and accreditation checks."""
        security = specification.security
        compliance = specification.compliance
        monitoring = specification.monitoring
        selected = {item.lower() for item in compliance.get("selected_frameworks", [])}

        hipaa = 1.0
        if security.get("encryption_requirements", {}).get("at_rest") != "AES-256":
            hipaa -= 0.3
        if not security.get("audit_logging", {}).get("enabled"):
            hipaa -= 0.2
        if not security.get("access_control"):
            hipaa -= 0.2
        if "hipaa" not in selected:
            hipaa = min(hipaa, 0.5)

        hitech = 1.0 if compliance.get("breach_notification", {}).get("required") else 0.5
        state = 1.0 if compliance.get("data_residency") else 0.8
        accreditation = 1.0 if monitoring.get("audit_trail") and monitoring.get("clinical_quality_reporting") else 0.85
        return (max(0.0, hipaa) + hitech + state + accreditation) / 4

    @staticmethod
    def check_technical_validity(specification: Specification) -> tuple[float, list[str]]:
        issues = []

        infrastructure = specification.infrastructure
        present = sum(1 for field in REQUIRED_FIELDS["infrastructure"] if infrastructure.get(field))
        infrastructure_score = present / len(REQUIRED_FIELDS["infrastructure"])
        if present < len(REQUIRED_FIELDS["infrastructure"]):
            issues.append("Infrastructure section lacks compute, storage or network requirements")

        protocols = {
            item.upper()
            for item in specification.integration.get("emr_integration", {}).get("protocols", [])
        }
        integration_score = 0.5 * ("HL7" in protocols) + 0.5 * ("FHIR" in protocols)
        if integration_score < 1.0:
            issues.append("EHR integration should support both HL7 and FHIR")

        encryption = specification.security.get("encryption_requirements", {})
        security_score = 1.0 if encryption.get("at_rest") and encryption.get("in_transit") else 0.5
        if security_score < 1.0:
            issues.append("Encryption at rest and in transit must both be specified")

        return (infrastructure_score + integration_score + security_score) / 3, issues

    @staticmethod
    def assess_feasibility(specification: Specification) -> FeasibilityBreakdown:
        infrastructure = specification.infrastructure
        integration = specification.integration
        resources = specification.resource_allocation
        timeline = specification.implementation_timeline

        technical = 1.0
        technical_issues = []
        compute = infrastructure.get("compute_requirements", {})
        storage = infrastructure.get("storage_requirements", {})
        if compute or storage:
            if not _within(compute.get("total_servers"), SERVER_BOUNDS) or not _within(
                storage.get("primary_storage_gb"), STORAGE_BOUNDS_GB
            ):
                technical -= TECHNICAL_PENALTY
                technical_issues.append("Server or storage requirements are outside supported bounds")
        if (integration.get("difficulty_index") or 0) > MAX_UNSTAGED_SIDI and not integration.get("staged_rollout"):
            technical -= TECHNICAL_PENALTY
            technical_issues.append("Integration difficulty requires a staged rollout")

        resource = 1.0
        resource_issues = []
        available = resources.get("available_staff")
        peak = resources.get("peak_staff_demand")
        if available is not None and peak is not None and peak > available:
            resource -= RESOURCE_PENALTY
            resource_issues.append(f"Peak staffing of {peak} exceeds {available} available IT staff")

        timeline_score = 1.0
        timeline_issues = []
        target = timeline.get("target_weeks")
        adjusted = timeline.get("risk_adjusted_weeks")
        if target is not None and adjusted is not None and adjusted > target:
            timeline_score -= TIMELINE_PENALTY
            timeline_issues.append(f"Risk-adjusted plan of {adjusted} weeks exceeds the {target}-week target")

        budget_score = 1.0
        budget_issues = []
        cost = resources.get("estimated_cost")
        budget = resources.get("implementation_budget")
        if cost is not None and budget is not None and cost > budget and resources.get("funding_model") != "phased":
            budget_score -= BUDGET_PENALTY
            budget_issues.append(f"Estimated cost ${cost:,.0f} exceeds budget ${budget:,.0f}")

        return FeasibilityBreakdown(
            technical=FeasibilityCheck(score=round(technical, 4), issues=technical_issues),
            resource=FeasibilityCheck(score=round(resource, 4), issues=resource_issues),
            timeline=FeasibilityCheck(score=round(timeline_score, 4), issues=timeline_issues),
            budget=FeasibilityCheck(score=round(budget_score, 4), issues=budget_issues),
        )

    def generate_refinement_suggestions(
        self,
        specification: Specification,
        validation: ValidationResult,
    ) -> list[RefinementSuggestion]:
        """Concrete field-level fixes for every failed check, high priority first."""
        suggestions: list[RefinementSuggestion] = []
        feasibility = validation.feasibility

        for section in validation.missing_sections:
            suggestions.append(RefinementSuggestion(
                section=section,
                field="complete_section",
                recommended_value=basic_section_content(section),
                reason=f"Section {section} was missing",
                priority="high",
            ))

        if feasibility.technical.issues:
            suggestions.extend(self._technical_suggestions(specification))

        resources = specification.resource_allocation
        timeline = dict(specification.implementation_timeline)
        if feasibility.resource.issues:
            available = resources["available_staff"]
            phases = rebalance_phases(_phases(specification), available)
            total = sum(phase.duration_weeks for phase in phases)
            timeline["total_weeks"] = total
            timeline["risk_adjusted_weeks"] = risk_adjusted_weeks(total, timeline.get("risk_factor", 0.0))
            suggestions.extend([
                RefinementSuggestion(
                    section="implementation_timeline",
                    field="phases",
                    recommended_value=[phase.model_dump() for phase in phases],
                    reason=f"Cap phase staffing at {available} and extend durations",
                    priority="medium",
                ),
                RefinementSuggestion(
                    section="implementation_timeline",
                    field="total_weeks",
                    recommended_value=total,
                    reason="Recalculate total after rebalancing phases",
                    priority="medium",
                ),
                RefinementSuggestion(
                    section="implementation_timeline",
                    field="risk_adjusted_weeks",
                    recommended_value=timeline["risk_adjusted_weeks"],
                    reason="Recalculate risk-adjusted duration after rebalancing phases",
                    priority="medium",
                ),
                RefinementSuggestion(
                    section="resource_allocation",
                    field="peak_staff_demand",
                    recommended_value=max(phase.staffing.total for phase in phases),
                    reason="Peak demand after rebalancing phases",
                    priority="medium",
                ),
            ])

        if feasibility.timeline.issues or feasibility.resource.issues:
            adjusted = timeline.get("risk_adjusted_weeks")
            target = timeline.get("target_weeks")
            if adjusted is not None and target is not None and adjusted > target:
                suggestions.extend([
                    RefinementSuggestion(
                        section="implementation_timeline",
                        field="target_weeks",
                        recommended_value=adjusted,
                        reason=f"Extend target timeline from {target} to {adjusted} weeks",
                        priority="medium",
                    ),
                    RefinementSuggestion(
                        section="implementation_timeline",
                        field="timeline",
                        recommended_value=f"{adjusted} weeks",
                        reason="Align stated timeline with the risk-adjusted plan",
                        priority="low",
                    ),
                ])

        if feasibility.budget.issues:
            cost = resources["estimated_cost"]
            budget = resources["implementation_budget"]
            suggestions.extend([
                RefinementSuggestion(
                    section="resource_allocation",
                    field="funding_model",
                    recommended_value="phased",
                    reason="Spread implementation cost across funding phases",
                    priority="medium",
                ),
                RefinementSuggestion(
                    section="resource_allocation",
                    field="funding_phases",
                    recommended_value=math.ceil(cost / budget),
                    reason=f"Fund ${cost:,.0f} in tranches of at most ${budget:,.0f}",
                    priority="low",
                ),
            ])

        suggestions.sort(key=lambda item: _PRIORITY_ORDER[item.priority])
        logger.info("Generated %d refinement suggestions", len(suggestions))
        return suggestions

    @staticmethod
    def _technical_suggestions(specification: Specification) -> list[RefinementSuggestion]:
        suggestions = []
        compute = dict(specification.infrastructure.get("compute_requirements", {}))
        storage = dict(specification.infrastructure.get("storage_requirements", {}))
        total = compute.get("total_servers")
        if compute and not _within(total, SERVER_BOUNDS):
            low, high = SERVER_BOUNDS
            if isinstance(total, (int, float)) and total > high:
                scale = high / total
                for role in ("app_servers", "web_servers", "db_servers"):
                    compute[role] = max(1, int(compute.get(role, 1) * scale))
                compute["total_servers"] = compute["app_servers"] + compute["web_servers"] + compute["db_servers"]
                compute["consolidation"] = "larger instances"
            else:
                compute.update({"app_servers": low, "web_servers": 0, "db_servers": 0, "total_servers": low})
            suggestions.append(RefinementSuggestion(
                section="infrastructure",
                field="compute_requirements",
                recommended_value=compute,
                reason=f"Consolidate compute to within {low}-{high} servers",
                priority="high",
            ))
        primary = storage.get("primary_storage_gb")
        if storage and not _within(primary, STORAGE_BOUNDS_GB):
            low, high = STORAGE_BOUNDS_GB
            bounded = min(max(primary if isinstance(primary, (int, float)) else low, low), high)
            storage["primary_storage_gb"] = bounded
            storage["backup_storage_gb"] = max(storage.get("backup_storage_gb") or 0, bounded)
            suggestions.append(RefinementSuggestion(
                section="infrastructure",
                field="storage_requirements",
                recommended_value=storage,
                reason=f"Keep primary storage within {low:,}-{high:,} GB",
                priority="high",
            ))
        integration = specification.integration
        if (integration.get("difficulty_index") or 0) > MAX_UNSTAGED_SIDI and not integration.get("staged_rollout"):
            suggestions.append(RefinementSuggestion(
                section="integration",
                field="staged_rollout",
                recommended_value=True,
                reason="Stage integrations for high interface difficulty",
                priority="high",
            ))
        return suggestions

    @staticmethod
    def optimization_recommendations(
        specification: Specification,
        sub_scores: dict[str, float],
        missing_sections: list[str],
        feasibility: FeasibilityBreakdown,
        consistency_issues: list[str],
    ) -> list[OptimizationRecommendation]:
        recommendations = []
        if sub_scores["completeness"] < COMPLETENESS_OPTIMIZATION_THRESHOLD and missing_sections:
            recommendations.append(OptimizationRecommendation(
                type="completeness_improvement",
                priority="high",
                description="Complete missing specification sections",
                parameters={"missing_sections": list(missing_sections)},
            ))
        if feasibility.overall < FEASIBILITY_REFINEMENT_THRESHOLD:
            recommendations.append(OptimizationRecommendation(
                type="feasibility_optimization",
                priority="high",
                description="Review resource, timeline and budget constraints",
                parameters={"issues": feasibility.issues()},
            ))
        gaps = specification.compliance.get("gaps") or []
        if gaps:
            recommendations.append(OptimizationRecommendation(
                type="compliance_alignment",
                priority="medium",
                description="Evaluate recommended compliance frameworks not yet selected",
                parameters={"gaps": list(gaps)},
            ))
        if consistency_issues:
            recommendations.append(OptimizationRecommendation(
                type="consistency_review",
                priority="medium",
                description="Resolve cross-section inconsistencies",
                parameters={"issues": list(consistency_issues)},
            ))
        return recommendations
