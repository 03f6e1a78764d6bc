"""Tests for the deterministic HCS / SIDI / RAF formulas."""

import math

import pytest

from specforge.services.formulas import (
    bounded_number,
    compute_all,
    compute_hcs,
    compute_raf,
    compute_sidi,
    round_half_up,
)


# --- Helpers ---


class TestBoundedNumber:
    def test_clamps_into_range(self):
        assert bounded_number(7000, 1, 5000, 100) == 5000
        assert bounded_number(-3, 1, 5000, 100) == 1
        assert bounded_number("250", 1, 5000, 100) == 250

    def test_non_numeric_uses_fallback(self):
        assert bounded_number(None, 0, 1, 0.5) == 0.5
        assert bounded_number("lots", 0, 1, 0.5) == 0.5
        assert bounded_number(True, 0, 1, 0.5) == 0.5
        assert bounded_number(math.nan, 0, 1, 0.5) == 0.5
        assert bounded_number(math.inf, 0, 1, 0.5) == 0.5

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(4.49) == 4


# --- HCS ---


class TestHCS:
    def test_community_hospital(self):
        profile = {
            "bed_count": 100,
            "type": "community",
            "compliance_frameworks": ["HIPAA"],
        }
        assert compute_hcs(profile) == pytest.approx(0.305)

    def test_accepts_camel_case_fields(self):
        snake = compute_hcs({"bed_count": 400, "type": "academic"})
        camel = compute_hcs({"bedCount": 400, "type": "academic"})
        assert snake == camel

    def test_bed_count_is_capped(self):
        big = compute_hcs({"bed_count": 2000, "type": "community"})
        huge = compute_hcs({"bed_count": 4999, "type": "community"})
        assert big == huge

    def test_garbage_bed_count_falls_back_to_default(self):
        assert compute_hcs({"bed_count": "lots"}) == compute_hcs({"bed_count": 100})

    def test_empty_profile_stays_in_range(self):
        score = compute_hcs({})
        assert 0.0 <= score <= 1.0

    @pytest.mark.parametrize("beds", [1, 5000])
    @pytest.mark.parametrize("hospital_type", ["academic", "community", "critical_access", "unknown"])
    def test_in_range_at_bed_count_boundaries(self, beds, hospital_type):
        sparse = compute_hcs({"bed_count": beds, "type": hospital_type})
        loaded = compute_hcs(
            {
                "bed_count": beds,
                "type": hospital_type,
                "clinical_systems": [f"system-{index}" for index in range(30)],
                "compliance_frameworks": ["HIPAA", "HITRUST", "SOC2", "GDPR"],
                "timeline": "30_days",
            }
        )
        assert 0.0 <= sparse <= loaded <= 1.0

    def test_bigger_and_more_regulated_is_more_complex(self):
        small = compute_hcs({"bed_count": 50, "type": "critical_access"})
        large = compute_hcs(
            {
                "bed_count": 900,
                "type": "academic",
                "clinical_systems": ["LIS", "RIS", "PACS", "Pharmacy"],
                "compliance_frameworks": ["HIPAA", "HITRUST", "SOC2"],
                "timeline": "90_days",
            }
        )
        assert large > small
        assert large <= 1.0


# --- SIDI ---


class TestSIDI:
    def test_epic_baseline(self):
        assert compute_sidi({"primary_ehr": "Epic"}) == pytest.approx(0.6)

    def test_standards_lower_difficulty(self):
        score = compute_sidi(
            {"primary_ehr": "Epic", "interoperability_standards": ["FHIR R4", "HL7 v2"]}
        )
        assert score == pytest.approx(0.43)

    def test_custom_apis_and_extra_ehrs_raise_difficulty(self):
        score = compute_sidi(
            {
                "primary_ehr": "Cerner",
                "integration_needs": ["Custom API development"],
                "ehr_vendors": ["Cerner", "MEDITECH"],
            }
        )
        assert score == pytest.approx(1.09)

    def test_unknown_vendor_uses_default_index(self):
        assert compute_sidi({"primary_ehr": "HomegrownEHR"}) == pytest.approx(0.7)

    def test_never_zero(self):
        assert compute_sidi({}) > 0


# --- RAF ---


class TestRAF:
    def test_community_allocation(self):
        raf = compute_raf({"bed_count": 100}, 0.305, 0.6)
        assert (raf.app_servers, raf.web_servers, raf.db_servers) == (2, 2, 1)
        assert raf.total_servers == 5
        assert raf.cpu_cores == 48
        assert raf.memory_gb == 96
        assert raf.primary_storage_gb == 500
        assert raf.backup_storage_gb == 1500
        assert raf.estimated_cost == 89750

    def test_large_allocation(self):
        raf = compute_raf({"bed_count": 1000}, 0.5, 1.0)
        assert (raf.app_servers, raf.web_servers, raf.db_servers) == (10, 5, 3)
        assert raf.cpu_cores == 168
        assert raf.memory_gb == 336
        assert raf.primary_storage_gb == 3500
        assert raf.backup_storage_gb == 10500
        assert raf.estimated_cost == 333250

    def test_backup_is_three_times_primary(self):
        raf = compute_raf({"bed_count": 750}, 0.8, 1.3)
        assert raf.backup_storage_gb == raf.primary_storage_gb * 3

    def test_out_of_range_inputs_are_clamped(self):
        clamped = compute_raf({"bed_count": 100}, 5.0, -1.0)
        explicit = compute_raf({"bed_count": 100}, 1.0, 0.01)
        assert clamped == explicit


class TestComputeAll:
    def test_combines_formulas(self):
        profile = {"bed_count": 100, "type": "community", "primary_ehr": "Epic", "compliance_frameworks": ["HIPAA"]}
        metrics = compute_all(profile)
        assert metrics.hcs == compute_hcs(profile)
        assert metrics.sidi == compute_sidi(profile)
        assert metrics.raf == compute_raf(profile, metrics.hcs, metrics.sidi)


PROFILES = [
    {"bed_count": 100, "type": "community", "primary_ehr": "Epic", "compliance_frameworks": ["HIPAA"]},
    {
        "bed_count": 750,
        "type": "academic",
        "primary_ehr": "Cerner",
        "ehr_vendors": ["Cerner", "Epic"],
        "clinical_systems": ["PACS", "LIS", "RIS"],
        "interoperability_standards": ["HL7 v2", "FHIR R4"],
        "integration_needs": ["custom API"],
        "timeline": "6_months",
    },
    {"bed_count": "n/a", "type": None},
]


class TestDeterminism:
    @pytest.mark.parametrize("profile", PROFILES)
    def test_repeated_calls_are_identical(self, profile):
        first = compute_all(profile)
        for _ in range(5):
            again = compute_all(profile)
            assert again == first
            assert again.hcs == compute_hcs(profile)
            assert again.sidi == compute_sidi(profile)
            assert again.raf == compute_raf(profile, first.hcs, first.sidi)
        assert compute_all(dict(profile)).model_dump() == first.model_dump()
