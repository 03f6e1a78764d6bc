"""Tests for questionnaire parsing, requirement extraction and conflict resolution."""

import pytest

from specforge.errors import ValidationError
from specforge.models.questionnaire import Requirement
from specforge.services.questionnaire import (
    QuestionnaireProcessor,
    calculate_technology_maturity,
    extract_healthcare_entities,
    infer_expected_type,
    parse_response,
    standardize_terminology,
    to_snake_case,
)


# --- Helpers ---


class TestResponseParsing:
    def test_snake_case_keys(self):
        assert to_snake_case("bedCount") == "bed_count"
        assert to_snake_case("primaryEHR") == "primary_ehr"
        assert to_snake_case("facility name") == "facility_name"

    def test_expected_type_from_question_id(self):
        assert infer_expected_type("bed_count") == "number"
        assert infer_expected_type("has_security_team") == "boolean"
        assert infer_expected_type("clinical_systems") == "array"
        assert infer_expected_type("facility_name") == "text"

    def test_numbers(self):
        assert parse_response("1,200", "number") == 1200
        assert parse_response("2.5", "number") == 2.5
        assert parse_response("several", "number") is None
        assert parse_response(True, "number") is None

    def test_non_finite_numbers(self):
        assert parse_response("inf", "number") is None
        assert parse_response("-Infinity", "number") is None
        assert parse_response("nan", "number") is None
        assert parse_response("1e400", "number") is None
        assert parse_response(float("inf"), "number") is None
        assert parse_response(10 ** 400, "number") is None
        assert parse_response("1e3", "number") == 1000.0

    def test_booleans(self):
        assert parse_response("Yes", "boolean") is True
        assert parse_response("no", "boolean") is False

    def test_arrays_from_comma_text(self):
        assert parse_response("HIPAA, SOC2 ,", "array") == ["HIPAA", "SOC2"]

    def test_terminology_expansion(self):
        assert standardize_terminology("EHR migration") == "Electronic Health Record migration"

    def test_entity_extraction(self):
        entities = extract_healthcare_entities("Epic with HL7 feeds to Radiology")
        assert entities["systems"] == ["Epic"]
        assert entities["protocols"] == ["HL7"]
        assert entities["departments"] == ["Radiology"]

    def test_technology_maturity(self):
        assert calculate_technology_maturity("Epic", [], [], ["HIPAA"]) == 5.5
        assert calculate_technology_maturity(None, [], [], []) == 3.0
        full = calculate_technology_maturity(
            "Epic", ["LIS", "RIS", "PACS", "Pharmacy"], ["FHIR R4", "HL7 v2"], ["HIPAA", "SOC2", "HITRUST"]
        )
        assert full == 10.0


# --- process_questionnaire ---


class TestProcessQuestionnaire:
    def test_community_profile(self, community_questionnaire):
        processed = QuestionnaireProcessor().process_questionnaire(community_questionnaire)
        profile = processed.profile
        assert profile.hospital_id == "hosp-riverside-community-hospital"
        assert profile.name == "Riverside Community Hospital"
        assert profile.type == "community"
        assert profile.bed_count == 100
        assert profile.primary_ehr == "Epic"
        assert profile.compliance_frameworks == ("HIPAA",)
        assert profile.technology_maturity == 5.5
        assert profile.timeline is None

    def test_completeness_counts_taxonomy_sections(self, community_questionnaire):
        processed = QuestionnaireProcessor().process_questionnaire(community_questionnaire)
        assert processed.completeness == 0.375
        assert "network_infrastructure" in processed.missing_sections
        assert "facility_identity" not in processed.missing_sections
        assert 0.0 < processed.quality_score <= 1.0

    def test_missing_identity_fields_raise(self):
        with pytest.raises(ValidationError) as exc_info:
            QuestionnaireProcessor().process_questionnaire({"primary_ehr": "Epic"})
        problems = exc_info.value.problems
        assert "facility name is required" in problems
        assert "facility type is required" in problems
        assert "bed count is required" in problems

    def test_non_numeric_bed_count_raises(self, community_questionnaire):
        raw = {**community_questionnaire, "bed_count": "many"}
        with pytest.raises(ValidationError, match="bed count must be a number"):
            QuestionnaireProcessor().process_questionnaire(raw)

    def test_non_mapping_raises(self):
        with pytest.raises(ValidationError):
            QuestionnaireProcessor().process_questionnaire(["not", "a", "mapping"])

    def test_camel_case_and_aliases(self):
        processed = QuestionnaireProcessor().process_questionnaire(
            {"hospitalName": "Mercy", "hospitalType": "Teaching", "bedCount": "350", "currentEHR": "cerner"}
        )
        assert processed.profile.name == "Mercy"
        assert processed.profile.type == "academic"
        assert processed.profile.bed_count == 350
        assert processed.profile.primary_ehr == "Cerner"

    def test_metadata_fills_gaps(self, community_questionnaire):
        raw = {**community_questionnaire, "metadata": {"hospitalId": "h-42", "timeline": "6 months"}}
        profile = QuestionnaireProcessor().process_questionnaire(raw).profile
        assert profile.hospital_id == "h-42"
        assert profile.timeline == "6_months"

    def test_hospital_id_for_matches_profile(self, community_questionnaire):
        processor = QuestionnaireProcessor()
        assert processor.hospital_id_for(community_questionnaire) == (
            processor.process_questionnaire(community_questionnaire).profile.hospital_id
        )
        assert processor.hospital_id_for({"metadata": {"hospitalId": " h-7 "}}) == "h-7"
        assert processor.hospital_id_for({"hospitalId": "h-8", "metadata": {"hospitalId": "h-9"}}) == "h-8"
        assert processor.hospital_id_for({"bedCount": 10}) is None
        assert processor.hospital_id_for(["not", "a", "mapping"]) is None

    def test_out_of_range_bed_count_is_clamped(self, community_questionnaire):
        raw = {**community_questionnaire, "bed_count": 9000}
        processed = QuestionnaireProcessor().process_questionnaire(raw)
        assert processed.profile.bed_count == 5000
        assert any("clamped" in warning for warning in processed.warnings)

    def test_unknown_type_becomes_general(self, community_questionnaire):
        raw = {**community_questionnaire, "facility_type": "veterinary"}
        processed = QuestionnaireProcessor().process_questionnaire(raw)
        assert processed.profile.type == "general"
        assert any("Unknown facility type" in warning for warning in processed.warnings)

    def test_bad_optional_number_is_a_warning(self, community_questionnaire):
        raw = {**community_questionnaire, "it_staff_count": "several"}
        processed = QuestionnaireProcessor().process_questionnaire(raw)
        assert processed.profile.it_staff_count is None
        assert "it_staff_count must be a number; response ignored" in processed.warnings

    @pytest.mark.parametrize("value", ["inf", "1e400", "NaN", float("inf")])
    def test_non_finite_optional_numbers_are_warnings(self, community_questionnaire, value):
        raw = {
            **community_questionnaire,
            "annual_patient_volume": value,
            "it_staff_count": value,
            "implementation_budget": value,
        }
        processed = QuestionnaireProcessor().process_questionnaire(raw)
        assert processed.profile.annual_volume is None
        assert processed.profile.it_staff_count is None
        assert processed.profile.implementation_budget is None
        assert "annual_patient_volume must be a number; response ignored" in processed.warnings
        assert "it_staff_count must be a number; response ignored" in processed.warnings

    def test_infinite_bed_count_raises(self, community_questionnaire):
        raw = {**community_questionnaire, "bed_count": "inf"}
        with pytest.raises(ValidationError, match="bed count must be a number"):
            QuestionnaireProcessor().process_questionnaire(raw)

    def test_missing_ehr_and_frameworks_warn(self):
        processed = QuestionnaireProcessor().process_questionnaire(
            {"facility_name": "Valley", "facility_type": "critical access", "bed_count": 25}
        )
        assert processed.profile.type == "critical_access"
        assert "Primary EHR not specified; assumptions will be applied" in processed.warnings
        assert "No compliance frameworks selected" in processed.warnings

    def test_comma_separated_frameworks(self, community_questionnaire):
        raw = {**community_questionnaire, "compliance_frameworks": "HIPAA, SOC2"}
        profile = QuestionnaireProcessor().process_questionnaire(raw).profile
        assert profile.compliance_frameworks == ("HIPAA", "SOC2")

    def test_stats(self, community_questionnaire):
        processor = QuestionnaireProcessor()
        processor.process_questionnaire(community_questionnaire)
        processor.process_questionnaire(community_questionnaire)
        assert processor.processing_stats["total_questionnaires"] == 2


# --- extract_requirements ---


class TestExtractRequirements:
    def test_community_requirements(self, community_questionnaire):
        processor = QuestionnaireProcessor()
        requirements = processor.extract_requirements(processor.process_questionnaire(community_questionnaire))

        assert [req.id for req in requirements.requirements] == ["tech-001", "comp-001"]
        ehr, frameworks = requirements.requirements
        assert ehr.field == "primary_ehr"
        assert ehr.overall_priority == pytest.approx(0.905)
        assert frameworks.field == "compliance_frameworks"
        assert frameworks.overall_priority == pytest.approx(0.86)
        assert requirements.quality_score == pytest.approx(0.667)
        assert requirements.conflicts == []

    def test_sorted_by_priority(self, community_questionnaire):
        raw = {
            **community_questionnaire,
            "network_type": "segmented",
            "clinical_departments": ["ICU", "Emergency"],
            "data_retention_years": 7,
        }
        processor = QuestionnaireProcessor()
        requirements = processor.extract_requirements(processor.process_questionnaire(raw))
        priorities = [req.overall_priority for req in requirements.requirements]
        assert priorities == sorted(priorities, reverse=True)

    def test_timeline_raises_urgency(self, community_questionnaire):
        processor = QuestionnaireProcessor()
        relaxed = processor.extract_requirements(processor.process_questionnaire(community_questionnaire))
        urgent = processor.extract_requirements(
            processor.process_questionnaire({**community_questionnaire, "timeline": "90_days"})
        )
        assert relaxed.requirements[0].urgency_weight == pytest.approx(0.8)
        assert urgent.requirements[0].urgency_weight == pytest.approx(0.9)
        assert urgent.requirements[1].urgency_weight == pytest.approx(1.0)

    def test_description_expands_terminology(self, community_questionnaire):
        processor = QuestionnaireProcessor()
        requirements = processor.extract_requirements(processor.process_questionnaire(community_questionnaire))
        assert requirements.requirements[0].description == "primary Electronic Health Record: Epic"

    def test_cloud_vs_on_premise_residency_conflict(self, community_questionnaire):
        raw = {**community_questionnaire, "deployment_preference": "cloud", "data_residency": "on_premise"}
        processor = QuestionnaireProcessor()
        requirements = processor.extract_requirements(processor.process_questionnaire(raw))

        assert len(requirements.conflicts) == 1
        conflict = requirements.conflicts[0]
        assert conflict.rule == "cloud_deployment_vs_on_premise_residency"
        assert conflict.winner_id == "ops-001"
        assert conflict.loser_id == "tech-002"

        by_id = {req.id: req for req in requirements.requirements}
        assert by_id["tech-002"].status == "superseded"
        assert by_id["tech-002"].resolution.startswith("Superseded by ops-001")
        assert by_id["ops-001"].status == "active"
        assert "tech-002" not in [req.id for req in requirements.active()]
        assert processor.processing_stats["conflicts_resolved"] == 1


class TestResolveConflicts:
    @staticmethod
    def _requirement(req_id, field, value, section="compute_environment"):
        return Requirement(
            id=req_id,
            category="technical",
            section=section,
            field=field,
            description=f"{field}: {value}",
            value=value,
            clinical_weight=0.5,
            urgency_weight=0.5,
            complexity_weight=0.5,
            overall_priority=0.5,
        )

    def test_equal_priority_goes_to_lower_id(self):
        network = self._requirement("tech-001", "network_type", "air gapped", "network_infrastructure")
        deployment = self._requirement("tech-002", "deployment_preference", "hybrid")
        resolved, conflicts = QuestionnaireProcessor.resolve_conflicts([network, deployment])

        assert conflicts[0].rule == "air_gapped_network_vs_cloud"
        assert conflicts[0].winner_id == "tech-001"
        assert resolved[0].status == "active"
        assert resolved[1].status == "superseded"

    def test_compatible_requirements_untouched(self):
        network = self._requirement("tech-001", "network_type", "segmented", "network_infrastructure")
        deployment = self._requirement("tech-002", "deployment_preference", "cloud")
        resolved, conflicts = QuestionnaireProcessor.resolve_conflicts([network, deployment])
        assert conflicts == []
        assert resolved == [network, deployment]
