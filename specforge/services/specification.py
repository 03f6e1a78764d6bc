import copy
import logging
import math
from typing import Any

from specforge.models.assessment import HospitalAssessment
from specforge.models.hospital import HospitalProfile
from specforge.models.metrics import ComputedMetrics
from specforge.models.questionnaire import RequirementSet
from specforge.models.specification import (
    SPECIFICATION_SECTIONS,
    SUPPLEMENTARY_SECTIONS,
    ImplementationPhase,
    ImplementationPlan,
    PhaseStaffing,
    RefinementSuggestion,
    ResourceOptimization,
    Specification,
    SpecificationMapping,
)
from specforge.models.validation import OptimizationRecommendation
from specforge.services.formulas import round_half_up
from specforge.services.questionnaire import CLOUD_DEPLOYMENTS, ON_PREMISE

logger = logging.getLogger(__name__)

HOSPITAL_TEMPLATES: dict[str, dict[str, Any]] = {
    "academic": {
        "infrastructure_complexity": "high",
        "integration_requirements": ["research_systems", "teaching_tools", "clinical_trials"],
        "compliance_frameworks": ["HIPAA", "HITECH", "FDA_21CFR11", "GCP"],
        "resource_multiplier": 1.4,
    },
    "community": {
        "infrastructure_complexity": "medium",
        "integration_requirements": ["basic_clinical", "financial_systems"],
        "compliance_frameworks": ["HIPAA", "HITECH"],
        "resource_multiplier": 1.0,
    },
    "specialty": {
        "infrastructure_complexity": "medium",
        "integration_requirements": ["specialty_systems", "clinical_workflows"],
        "compliance_frameworks": ["HIPAA", "HITECH"],
        "resource_multiplier": 1.2,
    },
    "critical_access": {
        "infrastructure_complexity": "low",
        "integration_requirements": ["core_ehr", "basic_interfaces"],
        "compliance_frameworks": ["HIPAA"],
        "resource_multiplier": 0.7,
    },
    "multi_site": {
        "infrastructure_complexity": "high",
        "integration_requirements": ["enterprise_master_patient_index", "cross_site_scheduling", "regional_reporting"],
        "compliance_frameworks": ["HIPAA", "HITECH", "HITRUST"],
        "resource_multiplier": 1.3,
    },
    "general": {
        "infrastructure_complexity": "medium",
        "integration_requirements": ["basic_clinical", "financial_systems"],
        "compliance_frameworks": ["HIPAA", "HITECH"],
        "resource_multiplier": 1.0,
    },
}

VENDOR_TEMPLATES: dict[str, dict[str, Any]] = {
    "Epic": {
        "deployment_approach": "big_bang",
        "required_infrastructure": ["high_performance_servers", "dedicated_network", "backup_systems"],
        "integration_methods": ["Epic_APIs", "MyChart_integration", "FHIR_R4"],
        "timeline_base_months": 18,
        "resource_requirements": {"technical_staff": 8, "clinical_staff": 12, "project_managers": 3},
    },
    "Cerner": {
        "deployment_approach": "phased",
        "required_infrastructure": ["scalable_servers", "network_optimization", "data_storage"],
        "integration_methods": ["Cerner_APIs", "HealtheLife", "SMART_on_FHIR"],
        "timeline_base_months": 16,
        "resource_requirements": {"technical_staff": 6, "clinical_staff": 10, "project_managers": 2},
    },
    "MEDITECH": {
        "deployment_approach": "phased",
        "required_infrastructure": ["virtualized_servers", "shared_storage", "backup_systems"],
        "integration_methods": ["MEDITECH_APIs", "HL7_v2", "FHIR_R4"],
        "timeline_base_months": 14,
        "resource_requirements": {"technical_staff": 5, "clinical_staff": 8, "project_managers": 2},
    },
}

# key, name, base weeks, (technical, project, clinical) staff, activities
PHASES: tuple[tuple[str, str, int, tuple[int, int, int], list[str]], ...] = (
    (
        "infrastructure",
        "Infrastructure Preparation",
        8,
        (4, 1, 0),
        ["Provision servers and storage", "Network configuration", "Security hardening"],
    ),
    (
        "integration",
        "System Integration",
        12,
        (6, 2, 4),
        ["EHR interface build", "Data migration", "Third-party system connections"],
    ),
    (
        "testing",
        "Testing and Validation",
        6,
        (4, 1, 6),
        ["Integration testing", "User acceptance testing", "Performance testing"],
    ),
    (
        "golive",
        "Training and Go-Live",
        4,
        (8, 2, 10),
        ["End-user training", "Cutover", "Hypercare support"],
    ),
)

TIMELINE_TARGET_WEEKS = {
    "30_days": 5,
    "60_days": 9,
    "90_days": 13,
    "6_months": 26,
    "1_year": 52,
}

RISK_TIMELINE_FACTORS = {"High": 0.2, "Medium": 0.1, "Low": 0.0}
CONTINGENCY_PERCENT = {"High": 20, "Medium": 15, "Low": 10}

REQUIREMENT_SECTIONS = {
    "clinical_systems": "integration",
    "network_infrastructure": "infrastructure",
    "compute_environment": "infrastructure",
    "security_compliance": "security",
    "data_governance": "compliance",
    "clinical_workflow": "deployment",
    "ai_ml_configuration": "integration",
}
REQUIREMENT_FIELD_SECTIONS = {"compliance_frameworks": "compliance"}

BASIC_SECTION_CONTENT: dict[str, dict[str, Any]] = {
    "infrastructure": {
        "compute_requirements": {"app_servers": 2, "web_servers": 2, "db_servers": 1, "total_servers": 5},
        "storage_requirements": {"primary_storage_gb": 500, "backup_storage_gb": 1500},
        "network_requirements": {"network_type": "segmented", "bandwidth": "1 Gbps"},
    },
    "integration": {
        "emr_integration": {"protocols": ["HL7", "FHIR"]},
        "api_requirements": {"integration_methods": ["REST", "FHIR_R4"]},
    },
    "security": {
        "access_control": {"model": "RBAC", "mfa_required": True},
        "encryption_requirements": {"at_rest": "AES-256", "in_transit": "TLS 1.2+"},
    },
    "compliance": {
        "selected_frameworks": [],
        "recommended_frameworks": ["HIPAA"],
        "breach_notification": {"required": True, "window_days": 60},
    },
    "deployment": {
        "approach": "standard",
        "environments": ["development", "test", "training", "production"],
    },
    "monitoring": {
        "uptime_target": "99.9%",
        "alerting": {"channels": ["email", "pager"], "escalation_minutes": 15},
    },
    "backup_recovery": {"rpo_hours": 4, "rto_hours": 8},
    "implementation_timeline": {"phases": [], "total_weeks": 0},
    "resource_allocation": {"funding_model": "single_phase"},
    "risk_mitigation": {"strategies": []},
    "testing_strategy": {"stages": ["integration", "user_acceptance"]},
    "training_plan": {"delivery": ["classroom", "e-learning"]},
}


def basic_section_content(section: str) -> dict[str, Any]:
    return copy.deepcopy(BASIC_SECTION_CONTENT.get(section, {}))


def complexity_multiplier(bed_count: int) -> float:
    if bed_count > 500:
        return 1.4
    if bed_count > 200:
        return 1.2
    if bed_count < 50:
        return 0.8
    return 1.0


def determine_approach(complexity_score: float, bed_count: int) -> str:
    if complexity_score > 7.5 or bed_count > 500:
        return "phased"
    if complexity_score < 4.0 and bed_count < 100:
        return "accelerated"
    return "standard"


def sequence_phases(phases: list[ImplementationPhase]) -> list[ImplementationPhase]:
    start = 0
    sequenced = []
    for phase in phases:
        sequenced.append(phase.model_copy(update={"start_week": start}))
        start += phase.duration_weeks
    return sequenced


def rebalance_phases(phases: list[ImplementationPhase], available_staff: int) -> list[ImplementationPhase]:
    """Cap each phase's team at ``available_staff``, stretching its duration to keep staff-weeks."""
    available = max(1, available_staff)
    rebalanced = []
    for phase in phases:
        demand = phase.staffing.total
        if demand <= available:
            rebalanced.append(phase)
            continue
        staffing = PhaseStaffing(
            technical=phase.staffing.technical * available // demand,
            project=phase.staffing.project * available // demand,
            clinical=phase.staffing.clinical * available // demand,
        )
        if staffing.total == 0:
            staffing = PhaseStaffing(technical=1, project=0, clinical=0)
        staff_weeks = phase.duration_weeks * demand
        duration = (staff_weeks + staffing.total - 1) // staffing.total
        rebalanced.append(phase.model_copy(update={"staffing": staffing, "duration_weeks": duration}))
    return sequence_phases(rebalanced)


def risk_adjusted_weeks(total_weeks: int, risk_factor: float) -> int:
    # rounded first so 30 * 1.1 stays 33
    return math.ceil(round(total_weeks * (1 + risk_factor), 6))


def _active_value(requirements: RequirementSet, field: str) -> Any:
    for req in requirements.requirements:
        if req.field == field:
            return req.value if req.status == "active" else None
    return None


def _token(value: Any) -> str:
    return str(value).strip().lower().replace("-", "_").replace(" ", "_")


class SpecificationGenerator:
    """Maps a hospital's requirements and assessment onto a technical specification."""

    def __init__(
        self,
        hospital_templates: dict[str, dict[str, Any]] | None = None,
        vendor_templates: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.hospital_templates = hospital_templates or HOSPITAL_TEMPLATES
        self.vendor_templates = vendor_templates or VENDOR_TEMPLATES
        self.generation_count = 0

    def select_template(self, profile: HospitalProfile) -> tuple[str, dict[str, Any]]:
        name = profile.type if profile.type in self.hospital_templates else "general"
        return name, self.hospital_templates[name]

    def select_vendor_overlay(self, profile: HospitalProfile) -> tuple[str | None, dict[str, Any] | None]:
        if not profile.primary_ehr:
            return None, None
        lowered = profile.primary_ehr.lower()
        for name, overlay in self.vendor_templates.items():
            if name.lower() == lowered:
                return name, overlay
        return None, None

    def generate_implementation_plan(
        self,
        profile: HospitalProfile,
        assessment: HospitalAssessment,
        resource_multiplier: float = 1.0,
    ) -> ImplementationPlan:
        approach = determine_approach(assessment.complexity_score, profile.bed_count)
        multiplier = complexity_multiplier(profile.bed_count)

        phases = []
        for key, name, base_weeks, staff, activities in PHASES:
            technical, project, clinical = (
                max(1, round_half_up(count * resource_multiplier)) if count else 0 for count in staff
            )
            phases.append(
                ImplementationPhase(
                    key=key,
                    name=name,
                    start_week=0,
                    duration_weeks=max(1, round_half_up(base_weeks * multiplier)),
                    staffing=PhaseStaffing(technical=technical, project=project, clinical=clinical),
                    activities=list(activities),
                )
            )
        phases = sequence_phases(phases)

        peak = max(phase.staffing.total for phase in phases)
        available = profile.it_staff_count
        if available is None:
            optimization = ResourceOptimization(
                available_staff=None,
                peak_demand=peak,
                utilization=None,
                shortfall=0,
                strategy="No staffing constraint provided",
            )
        else:
            shortfall = max(0, peak - available)
            optimization = ResourceOptimization(
                available_staff=available,
                peak_demand=peak,
                utilization=round(peak / available, 3),
                shortfall=shortfall,
                strategy=(
                    "Within available capacity"
                    if shortfall == 0
                    else "Supplement with vendor or contract staff"
                ),
            )

        total = sum(phase.duration_weeks for phase in phases)
        risk_factor = RISK_TIMELINE_FACTORS[assessment.risk_assessment.risk_level]
        return ImplementationPlan(
            approach=approach,
            phases=phases,
            resource_optimization=optimization,
            complexity_multiplier=multiplier,
            total_weeks=total,
            risk_adjusted_weeks=risk_adjusted_weeks(total, risk_factor),
            target_weeks=TIMELINE_TARGET_WEEKS.get(profile.timeline or ""),
        )

    def map_requirements_to_specification(
        self,
        requirements: RequirementSet,
        assessment: HospitalAssessment,
        metrics: ComputedMetrics,
    ) -> SpecificationMapping:
        profile = requirements.profile
        template_name, template = self.select_template(profile)
        overlay_name, overlay = self.select_vendor_overlay(profile)
        resource_multiplier = template["resource_multiplier"]
        plan = self.generate_implementation_plan(profile, assessment, resource_multiplier)

        context = {
            "profile": profile,
            "requirements": requirements,
            "assessment": assessment,
            "metrics": metrics,
            "template": template,
            "overlay": overlay,
            "plan": plan,
        }
        sections = {
            "infrastructure": self._infrastructure(context),
            "integration": self._integration(context),
            "security": self._security(context),
            "compliance": self._compliance(context),
            "deployment": self._deployment(context),
            "monitoring": self._monitoring(context),
            "backup_recovery": self._backup_recovery(context),
            "implementation_timeline": self._implementation_timeline(context),
            "resource_allocation": self._resource_allocation(context),
            "risk_mitigation": self._risk_mitigation(context),
            "testing_strategy": self._testing_strategy(context),
            "training_plan": self._training_plan(context),
        }

        trace: dict[str, list[str]] = {}
        for req in requirements.active():
            section = REQUIREMENT_FIELD_SECTIONS.get(req.field) or REQUIREMENT_SECTIONS[req.section]
            trace.setdefault(section, []).append(req.id)

        present = sum(1 for name in SPECIFICATION_SECTIONS if sections.get(name))
        logger.info(
            "Mapped %d requirements onto %s template (vendor overlay: %s)",
            len(requirements.active()),
            template_name,
            overlay_name or "none",
        )
        return SpecificationMapping(
            requirements=requirements,
            assessment=assessment,
            metrics=metrics,
            template=template_name,
            vendor_overlay=overlay_name,
            resource_multiplier=resource_multiplier,
            implementation_plan=plan,
            sections=sections,
            requirement_trace=trace,
            quality_score=round(present / len(SPECIFICATION_SECTIONS), 3),
        )

    def generate_specification(self, mapping: SpecificationMapping) -> Specification:
        profile = mapping.requirements.profile
        sections = copy.deepcopy(mapping.sections)
        active = mapping.requirements.active()
        traced = {req_id for ids in mapping.requirement_trace.values() for req_id in ids}
        present = sum(1 for name in SPECIFICATION_SECTIONS if sections.get(name))
        coverage = len(traced) / len(active) if active else 1.0

        self.generation_count += 1
        return Specification(
            metadata={
                "hospital_id": profile.hospital_id,
                "hospital_name": profile.name,
                "hospital_type": profile.type,
                "bed_count": profile.bed_count,
                "primary_ehr": profile.primary_ehr,
                "template": mapping.template,
                "vendor_overlay": mapping.vendor_overlay,
                "hcs": mapping.metrics.hcs,
                "sidi": mapping.metrics.sidi,
                "complexity_score": mapping.assessment.complexity_score,
            },
            requirement_trace=copy.deepcopy(mapping.requirement_trace),
            quality_score=round(0.7 * present / len(SPECIFICATION_SECTIONS) + 0.3 * coverage, 3),
            **sections,
        )

    def refine_specification(
        self,
        specification: Specification,
        suggestions: list[RefinementSuggestion],
    ) -> Specification:
        """Return a new specification with each suggestion applied; the input is left untouched."""
        if not suggestions:
            return specification
        sections: dict[str, dict[str, Any]] = {}
        log = list(specification.refinements)
        for suggestion in suggestions:
            name = suggestion.section
            if name not in SPECIFICATION_SECTIONS and name not in SUPPLEMENTARY_SECTIONS:
                raise ValueError(f"Unknown specification section in refinement: {name}")
            if name not in sections:
                sections[name] = copy.deepcopy(specification.section(name))
            if suggestion.field == "complete_section":
                sections[name] = copy.deepcopy(suggestion.recommended_value)
            else:
                sections[name][suggestion.field] = copy.deepcopy(suggestion.recommended_value)
            sections[name].setdefault("refinement_notes", []).append(suggestion.reason)
            log.append({
                "section": name,
                "field": suggestion.field,
                "reason": suggestion.reason,
                "priority": suggestion.priority,
            })
        logger.info("Applied %d refinement suggestions", len(suggestions))
        return specification.model_copy(update={**sections, "refinements": log})

    def optimize_specification(
        self,
        specification: Specification,
        recommendations: list[OptimizationRecommendation],
    ) -> Specification:
        if not recommendations:
            return specification
        updates: dict[str, Any] = {}

        def section(name: str) -> dict[str, Any]:
            if name not in updates:
                updates[name] = copy.deepcopy(specification.section(name))
            return updates[name]

        for recommendation in recommendations:
            if recommendation.type == "completeness_improvement":
                for name in recommendation.parameters.get("missing_sections", []):
                    content = section(name)
                    for key, value in basic_section_content(name).items():
                        content.setdefault(key, value)
            elif recommendation.type == "feasibility_optimization":
                section("risk_mitigation")["feasibility_notes"] = list(
                    recommendation.parameters.get("issues", [])
                )
            elif recommendation.type == "compliance_alignment":
                section("compliance")["gap_actions"] = [
                    f"Evaluate {framework} applicability"
                    for framework in recommendation.parameters.get("gaps", [])
                ]
            elif recommendation.type == "consistency_review":
                metadata = updates.setdefault("metadata", copy.deepcopy(specification.metadata))
                metadata["review_items"] = list(recommendation.parameters.get("issues", []))

        metadata = updates.setdefault("metadata", copy.deepcopy(specification.metadata))
        metadata["optimizations_applied"] = [item.type for item in recommendations]
        return specification.model_copy(update=updates)

    # Section builders

    def _infrastructure(self, ctx: dict[str, Any]) -> dict[str, Any]:
        profile: HospitalProfile = ctx["profile"]
        raf = ctx["metrics"].raf
        responses_network = _active_value(ctx["requirements"], "network_type")
        bandwidth = _active_value(ctx["requirements"], "internet_bandwidth")
        return {
            "complexity_tier": ctx["template"]["infrastructure_complexity"],
            "deployment_model": self._deployment_model(ctx["requirements"]),
            "compute_requirements": {
                "app_servers": raf.app_servers,
                "web_servers": raf.web_servers,
                "db_servers": raf.db_servers,
                "total_servers": raf.total_servers,
                "cpu_cores": raf.cpu_cores,
                "memory_gb": raf.memory_gb,
            },
            "storage_requirements": {
                "primary_storage_gb": raf.primary_storage_gb,
                "backup_storage_gb": raf.backup_storage_gb,
                "tiering": ["hot", "warm", "archive"],
            },
            "network_requirements": {
                "network_type": _token(responses_network) if responses_network else "segmented",
                "bandwidth": bandwidth or ("10 Gbps" if profile.bed_count > 200 else "1 Gbps"),
                "redundant_links": profile.bed_count > 200,
            },
            "required_infrastructure": list(ctx["overlay"]["required_infrastructure"]) if ctx["overlay"] else [],
            "capacity_headroom_percent": round_half_up(20 * ctx["template"]["resource_multiplier"]),
        }

    @staticmethod
    def _deployment_model(requirements: RequirementSet) -> str:
        preference = _active_value(requirements, "deployment_preference")
        if preference:
            return _token(preference)
        residency = _active_value(requirements, "data_residency")
        network = _active_value(requirements, "network_type")
        if (residency and _token(residency) in ON_PREMISE) or (network and _token(network) == "air_gapped"):
            return "on_premise"
        strategy = _active_value(requirements, "cloud_strategy")
        if strategy and _token(strategy) == "cloud_only":
            return "cloud"
        return "hybrid"

    def _integration(self, ctx: dict[str, Any]) -> dict[str, Any]:
        profile: HospitalProfile = ctx["profile"]
        overlay = ctx["overlay"]
        sidi = ctx["metrics"].sidi
        needs = " ".join(profile.integration_needs).lower()
        return {
            "emr_integration": {
                "primary_ehr": profile.primary_ehr or "Unspecified",
                "additional_ehrs": list(profile.additional_ehrs),
                "protocols": ["HL7", "FHIR"],
                "existing_standards": list(profile.interoperability_standards),
            },
            "api_requirements": {
                "integration_methods": list(overlay["integration_methods"]) if overlay else ["REST", "FHIR_R4"],
                "custom_apis": "api" in needs or "custom" in needs,
                "gateway": "API gateway with OAuth 2.0",
            },
            "interfaces": list(profile.clinical_systems),
            "integration_requirements": list(ctx["template"]["integration_requirements"]),
            "difficulty_index": sidi,
            "staged_rollout": ctx["plan"].approach == "phased",
        }

    def _security(self, ctx: dict[str, Any]) -> dict[str, Any]:
        retention = _active_value(ctx["requirements"], "data_retention_years")
        return {
            "access_control": {"model": "RBAC", "mfa_required": True, "sso": True},
            "encryption_requirements": {"at_rest": "AES-256", "in_transit": "TLS 1.2+"},
            "audit_logging": {"enabled": True, "retention_years": max(6, int(retention or 0))},
            "network_security": ["next_generation_firewall", "intrusion_detection", "network_segmentation"],
            "security_team": bool(_active_value(ctx["requirements"], "has_security_team")),
        }

    def _compliance(self, ctx: dict[str, Any]) -> dict[str, Any]:
        profile: HospitalProfile = ctx["profile"]
        selected = list(profile.compliance_frameworks)
        recommended = list(ctx["template"]["compliance_frameworks"])
        chosen = {item.lower() for item in selected}
        residency = _active_value(ctx["requirements"], "data_residency")
        return {
            "selected_frameworks": selected,
            "recommended_frameworks": recommended,
            "gaps": [item for item in recommended if item.lower() not in chosen],
            "data_residency": _token(residency) if residency else None,
            "breach_notification": {"required": True, "window_days": 60},
        }

    def _deployment(self, ctx: dict[str, Any]) -> dict[str, Any]:
        plan: ImplementationPlan = ctx["plan"]
        overlay = ctx["overlay"]
        return {
            "approach": plan.approach,
            "vendor_approach": overlay["deployment_approach"] if overlay else None,
            "deployment_model": self._deployment_model(ctx["requirements"]),
            "environments": ["development", "test", "training", "production"],
            "rollout_strategy": "department_by_department" if plan.approach == "phased" else "facility_wide",
        }

    def _monitoring(self, ctx: dict[str, Any]) -> dict[str, Any]:
        profile: HospitalProfile = ctx["profile"]
        critical = profile.type == "academic" or profile.is_large
        return {
            "uptime_target": "99.99%" if critical else "99.9%",
            "metrics": ["availability", "response_time", "interface_queue_depth", "error_rate"],
            "alerting": {"channels": ["email", "pager"], "escalation_minutes": 5 if critical else 15},
            "audit_trail": True,
            "clinical_quality_reporting": True,
        }

    def _backup_recovery(self, ctx: dict[str, Any]) -> dict[str, Any]:
        profile: HospitalProfile = ctx["profile"]
        raf = ctx["metrics"].raf
        return {
            "backup_storage_gb": raf.backup_storage_gb,
            "primary_storage_gb": raf.primary_storage_gb,
            "rpo_hours": 1 if profile.is_large else 4,
            "rto_hours": 4 if profile.is_large else 8,
            "backup_frequency": "hourly incremental, daily full",
            "offsite_copies": 2 if profile.is_large else 1,
            "disaster_recovery_site": "warm_standby" if profile.is_large else "cloud_recovery",
        }

    def _implementation_timeline(self, ctx: dict[str, Any]) -> dict[str, Any]:
        plan: ImplementationPlan = ctx["plan"]
        assessment: HospitalAssessment = ctx["assessment"]
        overlay = ctx["overlay"]
        return {
            "approach": plan.approach,
            "phases": [phase.model_dump() for phase in plan.phases],
            "total_weeks": plan.total_weeks,
            "risk_factor": RISK_TIMELINE_FACTORS[assessment.risk_assessment.risk_level],
            "risk_adjusted_weeks": plan.risk_adjusted_weeks,
            "target_weeks": plan.target_weeks,
            "timeline": f"{plan.risk_adjusted_weeks} weeks",
            "vendor_timeline_months": (
                overlay["timeline_base_months"] if overlay else assessment.estimated_timeline_months
            ),
        }

    def _resource_allocation(self, ctx: dict[str, Any]) -> dict[str, Any]:
        profile: HospitalProfile = ctx["profile"]
        plan: ImplementationPlan = ctx["plan"]
        overlay = ctx["overlay"]
        multiplier = ctx["template"]["resource_multiplier"]
        vendor_team = {}
        if overlay:
            vendor_team = {
                role: max(1, round_half_up(count * multiplier))
                for role, count in overlay["resource_requirements"].items()
            }
        return {
            "estimated_cost": ctx["metrics"].raf.estimated_cost,
            "implementation_budget": profile.implementation_budget,
            "funding_model": "single_phase",
            "available_staff": plan.resource_optimization.available_staff,
            "peak_staff_demand": plan.resource_optimization.peak_demand,
            "resource_optimization": plan.resource_optimization.model_dump(),
            "vendor_team": vendor_team,
            "resource_multiplier": multiplier,
        }

    def _risk_mitigation(self, ctx: dict[str, Any]) -> dict[str, Any]:
        risk = ctx["assessment"].risk_assessment
        return {
            "risk_level": risk.risk_level,
            "risks": {category: [item.risk for item in items] for category, items in risk.risks.items()},
            "strategies": list(risk.mitigation_strategies),
            "contingency_percent": CONTINGENCY_PERCENT[risk.risk_level],
        }

    def _testing_strategy(self, ctx: dict[str, Any]) -> dict[str, Any]:
        plan: ImplementationPlan = ctx["plan"]
        testing = next(phase for phase in plan.phases if phase.key == "testing")
        return {
            "stages": ["unit", "integration", "user_acceptance", "performance", "failover"],
            "duration_weeks": testing.duration_weeks,
            "clinical_validation": True,
        }

    def _training_plan(self, ctx: dict[str, Any]) -> dict[str, Any]:
        profile: HospitalProfile = ctx["profile"]
        return {
            "super_users": max(2, profile.bed_count // 50),
            "end_user_hours": 8 if profile.type in ("critical_access", "community") else 12,
            "delivery": ["classroom", "e-learning", "at_the_elbow"],
        }


def is_cloud_deployment(model: str | None) -> bool:
    return bool(model) and _token(model) in CLOUD_DEPLOYMENTS
