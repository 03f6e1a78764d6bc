import logging
import math
import re
from collections.abc import Mapping
from typing import Any

from specforge.errors import ValidationError
from specforge.models.hospital import HOSPITAL_TYPES, HospitalProfile
from specforge.models.questionnaire import (
    ProcessedQuestionnaire,
    Requirement,
    RequirementConflict,
    RequirementSet,
)
from specforge.services.formulas import bounded_number

logger = logging.getLogger(__name__)

TAXONOMY_SECTIONS: tuple[str, ...] = (
    "facility_identity",
    "clinical_systems",
    "network_infrastructure",
    "compute_environment",
    "security_compliance",
    "data_governance",
    "clinical_workflow",
    "ai_ml_configuration",
)

# Field order here is the order requirement ids are assigned in.
FIELD_SECTIONS: dict[str, str] = {
    "hospital_id": "facility_identity",
    "facility_name": "facility_identity",
    "facility_type": "facility_identity",
    "bed_count": "facility_identity",
    "annual_patient_volume": "facility_identity",
    "location": "facility_identity",
    "primary_ehr": "clinical_systems",
    "ehr_status": "clinical_systems",
    "additional_ehrs": "clinical_systems",
    "clinical_systems": "clinical_systems",
    "epic_version": "clinical_systems",
    "epic_modules": "clinical_systems",
    "cerner_platform": "clinical_systems",
    "ehr_timeline": "clinical_systems",
    "interoperability_standards": "clinical_systems",
    "integration_needs": "clinical_systems",
    "internet_bandwidth": "network_infrastructure",
    "network_type": "network_infrastructure",
    "wireless_coverage": "network_infrastructure",
    "deployment_preference": "compute_environment",
    "cloud_strategy": "compute_environment",
    "virtualization_platform": "compute_environment",
    "server_count": "compute_environment",
    "storage_capacity": "compute_environment",
    "compliance_frameworks": "security_compliance",
    "security_posture": "security_compliance",
    "has_security_team": "security_compliance",
    "data_residency": "data_governance",
    "data_retention_years": "data_governance",
    "data_sharing_agreements": "data_governance",
    "clinical_departments": "clinical_workflow",
    "workflow_priorities": "clinical_workflow",
    "go_live_support": "clinical_workflow",
    "ai_use_cases": "ai_ml_configuration",
    "ml_model_hosting": "ai_ml_configuration",
    "enable_clinical_decision_support": "ai_ml_configuration",
    # Planning constraints, outside the taxonomy
    "timeline": "implementation_planning",
    "implementation_budget": "implementation_planning",
    "it_staff_count": "implementation_planning",
    "priority": "implementation_planning",
    "additional_requirements": "additional_info",
    "contact_email": "additional_info",
}

FIELD_ALIASES = {
    "name": "facility_name",
    "hospital_name": "facility_name",
    "type": "facility_type",
    "hospital_type": "facility_type",
    "beds": "bed_count",
    "annual_volume": "annual_patient_volume",
    "budget": "implementation_budget",
    "ehr": "primary_ehr",
    "current_ehr": "primary_ehr",
    "ehr_vendors": "additional_ehrs",
    "deployment_model": "deployment_preference",
}

METADATA_FIELDS = ("hospital_id", "timeline", "compliance_frameworks", "interoperability_standards")

SECTION_CATEGORIES = {
    "clinical_systems": "technical",
    "network_infrastructure": "technical",
    "compute_environment": "technical",
    "clinical_workflow": "operational",
    "data_governance": "operational",
    "ai_ml_configuration": "operational",
    "security_compliance": "compliance",
}

CATEGORY_PREFIXES = {"technical": "tech", "operational": "ops", "compliance": "comp"}

# (clinical, urgency, complexity)
SECTION_WEIGHTS: dict[str, tuple[float, float, float]] = {
    "clinical_systems": (0.9, 0.7, 0.8),
    "network_infrastructure": (0.5, 0.55, 0.6),
    "compute_environment": (0.5, 0.6, 0.7),
    "security_compliance": (0.8, 0.9, 0.6),
    "data_governance": (0.6, 0.7, 0.5),
    "clinical_workflow": (0.85, 0.6, 0.5),
    "ai_ml_configuration": (0.55, 0.4, 0.8),
}

FIELD_WEIGHTS: dict[str, tuple[float, float, float]] = {
    "primary_ehr": (1.0, 0.8, 0.9),
    "compliance_frameworks": (0.9, 1.0, 0.6),
    "deployment_preference": (0.6, 0.7, 0.8),
    "data_residency": (0.7, 0.8, 0.6),
    "cloud_strategy": (0.5, 0.5, 0.7),
    "network_type": (0.6, 0.6, 0.7),
}

TIMELINE_URGENCY_BOOST = {
    "30_days": 0.2,
    "60_days": 0.15,
    "90_days": 0.1,
    "6_months": 0.05,
}

HOSPITAL_TYPE_ALIASES = {
    "teaching": "academic",
    "university": "academic",
    "critical access": "critical_access",
    "cah": "critical_access",
    "multi-site": "multi_site",
    "multisite": "multi_site",
    "health_system": "multi_site",
    "health system": "multi_site",
    "government": "general",
}

LOCATIONS = {
    "urban": "Urban",
    "suburban": "Suburban",
    "rural": "Rural",
    "critical_access": "Critical Access",
    "critical access": "Critical Access",
}

HEALTHCARE_TERMINOLOGY = {
    "systems": ["Epic", "Cerner", "MEDITECH", "Allscripts", "athenahealth", "NextGen", "eClinicalWorks"],
    "departments": ["Emergency", "ICU", "Surgery", "Radiology", "Laboratory", "Pharmacy", "Cardiology"],
    "protocols": ["HL7", "FHIR", "DICOM", "X12", "CDA", "REST", "SOAP"],
    "frameworks": ["HIPAA", "HITECH", "HITRUST", "SOC2", "GDPR", "Joint Commission", "CMS"],
}

TERMINOLOGY_EXPANSIONS = {
    "EHR": "Electronic Health Record",
    "EMR": "Electronic Medical Record",
    "PACS": "Picture Archiving and Communication System",
    "LIS": "Laboratory Information System",
    "RIS": "Radiology Information System",
}

_NUMBER_TOKENS = {"count", "number", "volume", "budget", "years"}
_BOOLEAN_TOKENS = {"enable", "enabled", "support", "supports", "has", "is"}
_ARRAY_TOKENS = {
    "systems",
    "departments",
    "list",
    "frameworks",
    "standards",
    "needs",
    "modules",
    "ehrs",
    "cases",
    "priorities",
    "agreements",
}
_TRUE_STRINGS = {"yes", "true", "1", "on", "y"}

CLOUD_DEPLOYMENTS = {"cloud", "saas", "public_cloud", "hosted"}
ON_PREMISE = {"on_premise", "on_prem", "onsite", "on_site", "local"}

# (rule, field_a, values_a, field_b, values_b, description)
CONFLICT_RULES: tuple[tuple[str, str, frozenset[str], str, frozenset[str], str], ...] = (
    (
        "cloud_deployment_vs_on_premise_residency",
        "deployment_preference",
        frozenset(CLOUD_DEPLOYMENTS),
        "data_residency",
        frozenset(ON_PREMISE),
        "Cloud deployment cannot satisfy on-premise data residency",
    ),
    (
        "on_premise_deployment_vs_cloud_strategy",
        "deployment_preference",
        frozenset(ON_PREMISE),
        "cloud_strategy",
        frozenset({"cloud_only"}),
        "On-premise deployment contradicts a cloud-only strategy",
    ),
    (
        "air_gapped_network_vs_cloud",
        "network_type",
        frozenset({"air_gapped"}),
        "deployment_preference",
        frozenset(CLOUD_DEPLOYMENTS | {"hybrid"}),
        "Air-gapped network cannot reach cloud-hosted services",
    ),
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def to_snake_case(key: str) -> str:
    key = _CAMEL_BOUNDARY.sub("_", key.strip())
    return re.sub(r"[\s\-]+", "_", key).lower()


def _is_finite(number: int | float) -> bool:
    try:
        return math.isfinite(number)
    except OverflowError:
        return False


def infer_expected_type(question_id: str) -> str:
    tokens = set(question_id.split("_"))
    if tokens & _BOOLEAN_TOKENS:
        return "boolean"
    if tokens & _NUMBER_TOKENS:
        return "number"
    if tokens & _ARRAY_TOKENS:
        return "array"
    return "text"


def parse_response(response: Any, expected_type: str) -> Any:
    if expected_type == "number":
        if isinstance(response, bool):
            return None
        if isinstance(response, (int, float)):
            return response if _is_finite(response) else None
        text = str(response).strip().replace(",", "")
        try:
            number = int(text) if re.fullmatch(r"-?\d+", text) else float(text)
        except ValueError:
            return None
        # "inf", "nan" and literals past float range such as "1e400"
        return number if _is_finite(number) else None
    if expected_type == "boolean":
        if isinstance(response, bool):
            return response
        return str(response).strip().lower() in _TRUE_STRINGS
    if expected_type == "array":
        if isinstance(response, (list, tuple, set)):
            return [str(item).strip() for item in response if str(item).strip()]
        return [part.strip() for part in str(response).split(",") if part.strip()]
    if isinstance(response, (list, tuple)):
        return ", ".join(str(item) for item in response)
    return str(response).strip()


def standardize_terminology(text: str) -> str:
    for abbrev, full in TERMINOLOGY_EXPANSIONS.items():
        text = re.sub(rf"\b{abbrev}\b", full, text, flags=re.IGNORECASE)
    return text


def extract_healthcare_entities(text: str) -> dict[str, list[str]]:
    lowered = text.lower()
    return {
        kind: [term for term in terms if term.lower() in lowered]
        for kind, terms in HEALTHCARE_TERMINOLOGY.items()
    }


def _normalize_token(value: Any) -> str:
    return re.sub(r"[\s\-]+", "_", str(value).strip().lower())


def _normalize_hospital_type(value: Any) -> str | None:
    raw = str(value).strip().lower()
    token = _normalize_token(value)
    if token in HOSPITAL_TYPES:
        return token
    return HOSPITAL_TYPE_ALIASES.get(raw) or HOSPITAL_TYPE_ALIASES.get(token)


def _canonical_ehr(value: Any) -> str | None:
    if value is None or str(value).strip() == "":
        return None
    lowered = str(value).strip().lower()
    for name in HEALTHCARE_TERMINOLOGY["systems"]:
        if name.lower() == lowered:
            return name
    return str(value).strip()


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-") or "hospital"


def calculate_technology_maturity(
    primary_ehr: str | None,
    clinical_systems: list[str],
    standards: list[str],
    frameworks: list[str],
) -> float:
    """Score 0-10 from EHR presence, departmental systems, interoperability and compliance."""
    score = 3.0
    if primary_ehr:
        known = {name.lower() for name in HEALTHCARE_TERMINOLOGY["systems"]}
        score += 2.0 if primary_ehr.lower() in known else 1.0
    score += min(0.25 * len(clinical_systems), 2.0)
    joined = " ".join(standards).lower()
    if "fhir" in joined:
        score += 1.5
    if "hl7" in joined:
        score += 1.0
    score += min(0.5 * len(frameworks), 1.5)
    return round(max(0.0, min(10.0, score)), 1)


class QuestionnaireProcessor:
    """Validates raw questionnaires and turns them into prioritized requirements."""

    def __init__(self) -> None:
        self.processing_stats = {
            "total_questionnaires": 0,
            "total_requirements": 0,
            "conflicts_resolved": 0,
        }

    def normalize_responses(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        normalized: dict[str, Any] = {}
        metadata = raw.get("metadata") if isinstance(raw.get("metadata"), Mapping) else {}
        for key, value in raw.items():
            if key == "metadata":
                continue
            field = to_snake_case(str(key))
            normalized[FIELD_ALIASES.get(field, field)] = value
        for key, value in metadata.items():
            field = to_snake_case(str(key))
            field = FIELD_ALIASES.get(field, field)
            if field in METADATA_FIELDS and not _has_value(normalized.get(field)):
                normalized[field] = value
        return normalized

    def hospital_id_for(self, raw: Any) -> str | None:
        """Hospital id the profile will carry, read without validating anything else."""
        if not isinstance(raw, Mapping):
            return None
        normalized = self.normalize_responses(raw)
        if _has_value(normalized.get("hospital_id")):
            return parse_response(normalized["hospital_id"], "text")
        if _has_value(normalized.get("facility_name")):
            name = parse_response(normalized["facility_name"], "text")
            return f"hosp-{_slug(name)}"
        return None

    def process_questionnaire(self, raw: Mapping[str, Any]) -> ProcessedQuestionnaire:
        """Validate identity fields, type-check responses and score completeness.

        Raises ValidationError only when name, type or bed count is missing or
        unusable; every other gap lowers completeness or adds a warning.
        """
        if not isinstance(raw, Mapping):
            raise ValidationError(["questionnaire must be a mapping of question id to response"])

        normalized = self.normalize_responses(raw)
        problems: list[str] = []
        warnings: list[str] = []

        if not _has_value(normalized.get("facility_name")):
            problems.append("facility name is required")
        if not _has_value(normalized.get("facility_type")):
            problems.append("facility type is required")
        if not _has_value(normalized.get("bed_count")):
            problems.append("bed count is required")
        elif parse_response(normalized["bed_count"], "number") is None:
            problems.append("bed count must be a number")
        if problems:
            raise ValidationError(problems)

        responses: dict[str, Any] = {}
        confidences: list[float] = []
        for field, value in normalized.items():
            if not _has_value(value):
                continue
            expected = infer_expected_type(field)
            if field in ("facility_type", "timeline", "deployment_preference", "location"):
                expected = "text"
            parsed = parse_response(value, expected)
            if expected == "number" and parsed is None:
                warnings.append(f"{field} must be a number; response ignored")
                continue
            responses[field] = parsed
            confidence = 0.7 + (0.2 if expected != "text" else 0.0)
            if isinstance(parsed, str):
                matches = sum(len(found) for found in extract_healthcare_entities(parsed).values())
                confidence += min(matches * 0.1, 0.3)
            confidences.append(min(confidence, 1.0))

        sections: dict[str, list[str]] = {}
        for field in responses:
            section = FIELD_SECTIONS.get(field)
            if section in TAXONOMY_SECTIONS:
                sections.setdefault(section, []).append(field)
        missing_sections = [section for section in TAXONOMY_SECTIONS if section not in sections]
        completeness = round(len(sections) / len(TAXONOMY_SECTIONS), 3)

        profile = self._build_profile(responses, warnings)

        entity_text = " ".join(
            " ".join(value) if isinstance(value, list) else str(value)
            for value in responses.values()
        )
        entities = extract_healthcare_entities(entity_text)

        mean_confidence = sum(confidences) / len(confidences) if confidences else 0.0
        quality_score = round(0.5 * mean_confidence + 0.5 * completeness, 3)

        self.processing_stats["total_questionnaires"] += 1
        logger.info(
            "Processed questionnaire for %s: completeness=%.3f, %d warnings",
            profile.name,
            completeness,
            len(warnings),
        )
        return ProcessedQuestionnaire(
            profile=profile,
            responses=responses,
            sections=sections,
            completeness=completeness,
            missing_sections=missing_sections,
            warnings=warnings,
            entities=entities,
            quality_score=quality_score,
        )

    def _build_profile(self, responses: dict[str, Any], warnings: list[str]) -> HospitalProfile:
        name = str(responses["facility_name"])
        hospital_type = _normalize_hospital_type(responses["facility_type"])
        if hospital_type is None:
            warnings.append(f"Unknown facility type '{responses['facility_type']}'; using general")
            hospital_type = "general"

        requested_beds = float(responses["bed_count"])
        beds = int(round(bounded_number(requested_beds, 1, 5000, 100)))
        if beds != requested_beds:
            warnings.append(f"Bed count {requested_beds:g} outside 1-5000; clamped to {beds}")
        if hospital_type == "critical_access" and beds > 500:
            warnings.append("Critical access hospitals typically have < 100 beds")

        primary_ehr = _canonical_ehr(responses.get("primary_ehr"))
        if not primary_ehr:
            warnings.append("Primary EHR not specified; assumptions will be applied")

        frameworks = [item for item in responses.get("compliance_frameworks", []) if item]
        if not frameworks:
            warnings.append("No compliance frameworks selected")
        clinical_systems = responses.get("clinical_systems", [])
        standards = responses.get("interoperability_standards", [])

        location = responses.get("location")
        if location is not None:
            location = LOCATIONS.get(str(location).strip().lower(), str(location).strip())

        volume = responses.get("annual_patient_volume")
        budget = responses.get("implementation_budget")
        staff = responses.get("it_staff_count")

        return HospitalProfile(
            hospital_id=str(responses.get("hospital_id") or f"hosp-{_slug(name)}"),
            name=name,
            type=hospital_type,
            bed_count=beds,
            annual_volume=int(volume) if volume is not None and volume >= 0 else None,
            location=location,
            primary_ehr=primary_ehr,
            additional_ehrs=tuple(
                ehr for ehr in (_canonical_ehr(item) for item in responses.get("additional_ehrs", [])) if ehr
            ),
            clinical_systems=tuple(clinical_systems),
            compliance_frameworks=tuple(frameworks),
            interoperability_standards=tuple(standards),
            integration_needs=tuple(responses.get("integration_needs", [])),
            timeline=_normalize_token(responses["timeline"]) if "timeline" in responses else None,
            deployment_preference=(
                _normalize_token(responses["deployment_preference"])
                if "deployment_preference" in responses
                else None
            ),
            implementation_budget=float(budget) if budget is not None and budget > 0 else None,
            it_staff_count=int(staff) if staff is not None and staff > 0 else None,
            technology_maturity=calculate_technology_maturity(primary_ehr, clinical_systems, standards, frameworks),
        )

    def extract_requirements(self, processed: ProcessedQuestionnaire) -> RequirementSet:
        """Bucket answered fields into requirements, prioritize, then resolve conflicts."""
        urgency_boost = TIMELINE_URGENCY_BOOST.get(processed.profile.timeline or "", 0.0)
        counters = {"technical": 0, "operational": 0, "compliance": 0}
        requirements: list[Requirement] = []

        for field, section in FIELD_SECTIONS.items():
            category = SECTION_CATEGORIES.get(section)
            if category is None or field not in processed.responses:
                continue
            value = processed.responses[field]
            clinical, urgency, complexity = FIELD_WEIGHTS.get(field, SECTION_WEIGHTS[section])
            urgency = min(1.0, urgency + urgency_boost)
            if isinstance(value, list):
                complexity = min(1.0, complexity + 0.05 * max(0, len(value) - 1))

            counters[category] += 1
            requirements.append(
                Requirement(
                    id=f"{CATEGORY_PREFIXES[category]}-{counters[category]:03d}",
                    category=category,
                    section=section,
                    field=field,
                    description=self._describe(field, value),
                    value=value,
                    clinical_weight=round(clinical, 3),
                    urgency_weight=round(urgency, 3),
                    complexity_weight=round(complexity, 3),
                    overall_priority=round(0.4 * clinical + 0.35 * urgency + 0.25 * complexity, 4),
                )
            )

        requirements.sort(key=lambda req: (-req.overall_priority, req.id))
        requirements, conflicts = self.resolve_conflicts(requirements)

        expected = min(len(requirements) / 12, 1.0)
        quality_score = round(max(0.0, min(1.0, 0.6 + 0.4 * expected - 0.05 * len(conflicts))), 3)

        self.processing_stats["total_requirements"] += len(requirements)
        self.processing_stats["conflicts_resolved"] += len(conflicts)
        logger.info(
            "Extracted %d requirements (%d conflicts resolved) for %s",
            len(requirements),
            len(conflicts),
            processed.profile.name,
        )
        return RequirementSet(
            profile=processed.profile,
            requirements=requirements,
            conflicts=conflicts,
            quality_score=quality_score,
        )

    @staticmethod
    def _describe(field: str, value: Any) -> str:
        label = field.replace("_", " ")
        if isinstance(value, list):
            rendered = ", ".join(value)
        elif isinstance(value, bool):
            rendered = "yes" if value else "no"
        else:
            rendered = str(value)
        return standardize_terminology(f"{label}: {rendered}")

    @staticmethod
    def resolve_conflicts(
        requirements: list[Requirement],
    ) -> tuple[list[Requirement], list[RequirementConflict]]:
        """Supersede the lower-priority side of each mutually exclusive pair.

        Equal priorities go to the lexically lower requirement id.
        """
        by_field = {req.field: req for req in requirements}
        conflicts: list[RequirementConflict] = []

        for rule, field_a, values_a, field_b, values_b, description in CONFLICT_RULES:
            first = by_field.get(field_a)
            second = by_field.get(field_b)
            if first is None or second is None:
                continue
            if first.status != "active" or second.status != "active":
                continue
            if _normalize_token(first.value) not in values_a or _normalize_token(second.value) not in values_b:
                continue

            winner, loser = sorted((first, second), key=lambda req: (-req.overall_priority, req.id))
            by_field[loser.field] = loser.model_copy(
                update={
                    "status": "superseded",
                    "resolution": f"Superseded by {winner.id}: {description}",
                }
            )
            conflicts.append(
                RequirementConflict(rule=rule, winner_id=winner.id, loser_id=loser.id, description=description)
            )
            logger.info("Resolved conflict %s: %s supersedes %s", rule, winner.id, loser.id)

        return [by_field[req.field] for req in requirements], conflicts
