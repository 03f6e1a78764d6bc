"""Tests for specification validation, feasibility and refinement suggestions."""

import pytest

from specforge.models.specification import Specification
from specforge.services.assessment import HospitalAssessmentEngine
from specforge.services.assessment_cache import AssessmentCache
from specforge.services.formulas import compute_all
from specforge.services.questionnaire import QuestionnaireProcessor
from specforge.services.specification import SpecificationGenerator
from specforge.services.validation import NO_FRAMEWORK_ISSUE, QUALITY_WEIGHTS, ValidationEngine


def build_specification(raw):
    processor = QuestionnaireProcessor()
    requirements = processor.extract_requirements(processor.process_questionnaire(raw))
    assessment = HospitalAssessmentEngine(AssessmentCache()).assess_hospital(requirements.profile)
    generator = SpecificationGenerator()
    mapping = generator.map_requirements_to_specification(
        requirements, assessment, compute_all(requirements.profile)
    )
    return requirements, generator.generate_specification(mapping)


class TestQualityWeights:
    def test_weights_sum_to_one(self):
        assert sum(QUALITY_WEIGHTS.values()) == pytest.approx(1.0)


# --- Community hospital: nothing to fix ---


class TestValidateCommunity:
    def test_sub_scores(self, community_questionnaire):
        requirements, specification = build_specification(community_questionnaire)
        result = ValidationEngine().validate_specification(specification, requirements)

        assert result.sub_scores["completeness"] == 1.0
        assert result.sub_scores["accuracy"] == 1.0
        assert result.sub_scores["consistency"] == 1.0
        assert result.sub_scores["compliance"] == pytest.approx(0.95)
        assert result.sub_scores["technical_validity"] == 1.0
        assert result.sub_scores["feasibility"] == 1.0
        assert result.quality_score == pytest.approx(0.995)
        assert result.missing_sections == []
        assert result.issues == []
        assert result.refinement_required is False

    def test_accuracy_defaults_without_requirements(self, community_questionnaire):
        _, specification = build_specification(community_questionnaire)
        result = ValidationEngine().validate_specification(specification)
        assert result.sub_scores["accuracy"] == 0.8
        assert result.uncovered_requirements == []

    def test_compliance_gap_recommendation(self, community_questionnaire):
        requirements, specification = build_specification(community_questionnaire)
        result = ValidationEngine().validate_specification(specification, requirements)
        assert [item.type for item in result.optimization_recommendations] == ["compliance_alignment"]
        assert result.optimization_recommendations[0].parameters == {"gaps": ["HITECH"]}

    def test_validation_count(self, community_questionnaire):
        requirements, specification = build_specification(community_questionnaire)
        engine = ValidationEngine()
        engine.validate_specification(specification, requirements)
        engine.validate_specification(specification, requirements)
        assert engine.validation_count == 2


# --- Constrained hospital: staff, timeline and budget all fail ---


class TestValidateConstrained:
    def test_feasibility_breakdown(self, constrained_questionnaire):
        requirements, specification = build_specification(constrained_questionnaire)
        result = ValidationEngine().validate_specification(specification, requirements)

        feasibility = result.feasibility
        assert feasibility.technical.score == 1.0
        assert feasibility.resource.score == pytest.approx(0.7)
        assert feasibility.timeline.score == pytest.approx(0.6)
        assert feasibility.budget.score == pytest.approx(0.7)
        assert result.feasibility_score == pytest.approx(0.75)
        assert result.refinement_required is True
        assert "Peak staffing of 20 exceeds 8 available IT staff" in result.issues
        assert "Risk-adjusted plan of 30 weeks exceeds the 13-week target" in result.issues
        assert "Estimated cost $89,750 exceeds budget $50,000" in result.issues

    def test_threshold_is_configurable(self, constrained_questionnaire):
        requirements, specification = build_specification(constrained_questionnaire)
        result = ValidationEngine(refinement_threshold=0.7).validate_specification(specification, requirements)
        assert result.refinement_required is False

    def test_feasibility_recommendation(self, constrained_questionnaire):
        requirements, specification = build_specification(constrained_questionnaire)
        result = ValidationEngine().validate_specification(specification, requirements)
        types = [item.type for item in result.optimization_recommendations]
        assert types == ["feasibility_optimization", "compliance_alignment"]

    def test_refinement_suggestions(self, constrained_questionnaire):
        requirements, specification = build_specification(constrained_questionnaire)
        engine = ValidationEngine()
        result = engine.validate_specification(specification, requirements)
        suggestions = engine.generate_refinement_suggestions(specification, result)

        assert [(item.section, item.field) for item in suggestions] == [
            ("implementation_timeline", "phases"),
            ("implementation_timeline", "total_weeks"),
            ("implementation_timeline", "risk_adjusted_weeks"),
            ("resource_allocation", "peak_staff_demand"),
            ("implementation_timeline", "target_weeks"),
            ("resource_allocation", "funding_model"),
            ("implementation_timeline", "timeline"),
            ("resource_allocation", "funding_phases"),
        ]
        values = {item.field: item.recommended_value for item in suggestions}
        assert values["total_weeks"] == 52
        assert values["risk_adjusted_weeks"] == 52
        assert values["peak_staff_demand"] == 7
        assert values["target_weeks"] == 52
        assert values["timeline"] == "52 weeks"
        assert values["funding_model"] == "phased"
        assert values["funding_phases"] == 2
        assert [phase["duration_weeks"] for phase in values["phases"]] == [8, 21, 11, 12]

    def test_refined_specification_is_feasible(self, constrained_questionnaire):
        requirements, specification = build_specification(constrained_questionnaire)
        engine = ValidationEngine()
        result = engine.validate_specification(specification, requirements)
        refined = SpecificationGenerator().refine_specification(
            specification, engine.generate_refinement_suggestions(specification, result)
        )
        revalidated = engine.validate_specification(refined, requirements)

        assert revalidated.feasibility_score == 1.0
        assert revalidated.refinement_required is False
        assert revalidated.sub_scores["consistency"] == 1.0
        assert refined.implementation_timeline["total_weeks"] == 52
        assert len(refined.refinements) == 8


# --- Individual checks on hand-built specifications ---


class TestConsistencyChecks:
    def test_flags_every_inconsistency(self):
        specification = Specification(
            infrastructure={"deployment_model": "cloud"},
            compliance={"selected_frameworks": [], "data_residency": "on_premise"},
            backup_recovery={"backup_storage_gb": 100, "primary_storage_gb": 500},
            implementation_timeline={
                "phases": [{"duration_weeks": 8}, {"duration_weeks": 12}],
                "total_weeks": 30,
            },
        )
        score, issues, _ = ValidationEngine.check_consistency(specification)
        assert issues == [
            NO_FRAMEWORK_ISSUE,
            "Cloud deployment model conflicts with on-premise data residency",
            "Backup storage is smaller than primary storage",
            "Implementation timeline total does not match its phase durations",
        ]
        assert score == pytest.approx(0.6)

    def test_warnings(self):
        specification = Specification(
            metadata={"hospital_type": "critical_access", "bed_count": 600, "primary_ehr": None},
        )
        _, issues, warnings = ValidationEngine.check_consistency(specification)
        assert issues == []
        assert len(warnings) == 2


class TestCompletenessAndTechnical:
    def test_empty_specification(self):
        score, missing = ValidationEngine.check_completeness(Specification())
        assert score == 0.0
        assert missing[:2] == ["infrastructure", "integration"]
        assert "resource_allocation" in missing
        assert "risk_mitigation" in missing

    def test_technical_validity_of_empty_specification(self):
        score, issues = ValidationEngine.check_technical_validity(Specification())
        assert score == pytest.approx(0.5 / 3)
        assert len(issues) == 3

    def test_missing_sections_get_high_priority_suggestions(self):
        engine = ValidationEngine()
        specification = Specification()
        result = engine.validate_specification(specification)
        suggestions = engine.generate_refinement_suggestions(specification, result)
        completions = [item for item in suggestions if item.field == "complete_section"]
        assert len(completions) == len(result.missing_sections)
        assert all(item.priority == "high" for item in completions)


class TestTechnicalFeasibility:
    def test_oversized_compute_and_unstaged_integration(self):
        specification = Specification(
            infrastructure={
                "compute_requirements": {"app_servers": 90, "web_servers": 45, "db_servers": 15, "total_servers": 150},
                "storage_requirements": {"primary_storage_gb": 5000, "backup_storage_gb": 15000},
            },
            integration={"difficulty_index": 3.0, "staged_rollout": False},
        )
        feasibility = ValidationEngine.assess_feasibility(specification)
        assert feasibility.technical.score == pytest.approx(0.6)
        assert len(feasibility.technical.issues) == 2

        suggestions = ValidationEngine._technical_suggestions(specification)
        by_field = {item.field: item.recommended_value for item in suggestions}
        compute = by_field["compute_requirements"]
        assert compute["total_servers"] <= 100
        assert compute["consolidation"] == "larger instances"
        assert by_field["staged_rollout"] is True
        assert "storage_requirements" not in by_field

    def test_undersized_storage_is_raised(self):
        specification = Specification(
            infrastructure={
                "compute_requirements": {"total_servers": 5},
                "storage_requirements": {"primary_storage_gb": 20, "backup_storage_gb": 60},
            },
        )
        suggestions = ValidationEngine._technical_suggestions(specification)
        assert len(suggestions) == 1
        assert suggestions[0].recommended_value == {"primary_storage_gb": 100, "backup_storage_gb": 100}
