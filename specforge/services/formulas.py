"""Deterministic hospital metrics.

HCS: Hospital Complexity Score (0-1)
SIDI: Software Integration Difficulty Index (>0)
RAF: Resource Allocation Formula (servers, compute, storage, cost)

Every function accepts either a HospitalProfile or a plain mapping of the same
field names, never raises, and falls back to defaults for missing or
out-of-range values.
"""

import math
from collections.abc import Iterable, Mapping
from typing import Any

from specforge.models.hospital import HospitalProfile
from specforge.models.metrics import ComputedMetrics, ResourceAllocation

HOSPITAL_TYPE_WEIGHTS = {
    "academic": 1.0,
    "multi_site": 0.95,
    "specialty": 0.85,
    "general": 0.75,
    "community": 0.7,
    "critical_access": 0.6,
}
DEFAULT_TYPE_WEIGHT = 0.7

TIMELINE_WEIGHTS = {
    "30_days": 1.0,
    "60_days": 0.9,
    "90_days": 0.8,
    "6_months": 0.7,
    "1_year": 0.5,
    "flexible": 0.6,
}
DEFAULT_TIMELINE_WEIGHT = 0.7

COMPLIANCE_BONUSES = {
    "hipaa": 0.15,
    "hitrust": 0.1,
    "soc2": 0.05,
    "gdpr": 0.05,
}

VENDOR_INDEX = {
    "epic": 0.9,
    "cerner": 0.85,
    "meditech": 0.8,
    "allscripts": 0.75,
    "athenahealth": 0.7,
}
DEFAULT_VENDOR_INDEX = 0.8

DEFAULT_BED_COUNT = 100
DEFAULT_SYSTEMS_COUNT = 2

ProfileLike = HospitalProfile | Mapping[str, Any]


def bounded_number(value: Any, low: float, high: float, fallback: float) -> float:
    """Clamp ``value`` into [low, high]; non-numeric or non-finite values give ``fallback``."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return max(low, min(high, number))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _field(profile: ProfileLike, *names: str) -> Any:
    for name in names:
        if isinstance(profile, Mapping):
            value = profile.get(name)
        else:
            value = getattr(profile, name, None)
        if value is not None:
            return value
    return None


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Iterable):
        return [str(item) for item in value]
    return []


def _includes_any(value: Any, needles: Iterable[str]) -> bool:
    haystack = " ".join(_as_list(value)).lower()
    return any(needle in haystack for needle in needles)


def _compliance_weight(frameworks: Any) -> float:
    selected = {item.strip().lower() for item in _as_list(frameworks)}
    weight = 0.6
    for framework, bonus in COMPLIANCE_BONUSES.items():
        if framework in selected:
            weight += bonus
    return min(weight, 1.0)


def _timeline_weight(timeline: Any) -> float:
    return TIMELINE_WEIGHTS.get(str(timeline or "").lower(), DEFAULT_TIMELINE_WEIGHT)


def _bed_count(profile: ProfileLike) -> float:
    return bounded_number(_field(profile, "bed_count", "bedCount"), 1, 5000, DEFAULT_BED_COUNT)


def compute_hcs(profile: ProfileLike) -> float:
    beds = _bed_count(profile)
    hospital_type = str(_field(profile, "type", "hospital_type", "facility_type") or "community").lower()
    systems = _field(profile, "systems_count")
    if systems is None:
        systems = len(_as_list(_field(profile, "clinical_systems", "clinicalSystems")))
    systems_count = bounded_number(systems, 0, 30, DEFAULT_SYSTEMS_COUNT)

    bed_score = min(beds / 2000, 1.0)
    system_score = min(systems_count / 10, 1.0)
    type_weight = HOSPITAL_TYPE_WEIGHTS.get(hospital_type, DEFAULT_TYPE_WEIGHT)
    compliance_weight = _compliance_weight(_field(profile, "compliance_frameworks", "complianceFrameworks"))
    timeline_weight = _timeline_weight(_field(profile, "timeline"))

    raw = (
        0.35 * bed_score
        + 0.25 * system_score
        + 0.2 * type_weight
        + 0.15 * compliance_weight
        + 0.05 * timeline_weight
    )
    return max(0.0, min(1.0, round(raw, 3)))


def compute_sidi(profile: ProfileLike) -> float:
    ehr = str(_field(profile, "primary_ehr", "primaryEHR") or "").strip().lower()
    standards = _field(profile, "interoperability_standards", "interoperabilityStandards")
    has_fhir = _includes_any(standards, ("fhir",))
    has_hl7 = _includes_any(standards, ("hl7",))
    custom_apis = _includes_any(_field(profile, "integration_needs", "integrationNeeds"), ("api", "custom"))

    vendors = _field(profile, "ehr_vendors")
    vendor_count = len(_as_list(vendors)) if vendors is not None else 1
    extra_ehrs = max(0, vendor_count - 1)

    score = 1.0
    score *= 1.5 - VENDOR_INDEX.get(ehr, DEFAULT_VENDOR_INDEX)
    score *= 1.4 if custom_apis else 1.0
    score *= 0.8 if has_fhir else 1.0
    score *= 0.9 if has_hl7 else 1.0
    score *= 1 + extra_ehrs * 0.2
    return max(0.01, round(score, 2))


def compute_raf(profile: ProfileLike, hcs: float, sidi: float) -> ResourceAllocation:
    beds = _bed_count(profile)
    hcs = bounded_number(hcs, 0.0, 1.0, 0.5)
    sidi = bounded_number(sidi, 0.01, 10.0, 1.0)

    baseline = math.ceil(max(2, (beds / 150) * (0.6 + hcs)))
    app_servers = max(2, round_half_up(baseline * (0.9 + sidi * 0.3)))
    web_servers = max(2, round_half_up(baseline * 0.6))
    db_servers = max(1, round_half_up(baseline * 0.4))

    primary_storage = round_half_up(max(500, beds * (2 + hcs * 3)))
    backup_storage = primary_storage * 3

    infra_cost = (app_servers + web_servers) * 15000 + db_servers * 25000
    storage_cost = primary_storage * 5 + backup_storage * 1.5

    return ResourceAllocation(
        app_servers=app_servers,
        web_servers=web_servers,
        db_servers=db_servers,
        cpu_cores=(app_servers + web_servers) * 8 + db_servers * 16,
        memory_gb=(app_servers + web_servers) * 16 + db_servers * 32,
        primary_storage_gb=primary_storage,
        backup_storage_gb=backup_storage,
        estimated_cost=round_half_up(infra_cost + storage_cost),
    )


def compute_all(profile: ProfileLike) -> ComputedMetrics:
    hcs = compute_hcs(profile)
    sidi = compute_sidi(profile)
    return ComputedMetrics(hcs=hcs, sidi=sidi, raf=compute_raf(profile, hcs, sidi))
