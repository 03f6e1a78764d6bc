import asyncio
import json
import logging

from specforge.config import NARRATIVE_ENABLED, NARRATIVE_TIMEOUT_SECONDS
from specforge.models.narrative import SpecificationNarrative
from specforge.models.transformation import TransformationResult
from specforge.services.llm import LLMClient, get_llm_client

logger = logging.getLogger(__name__)

NARRATIVE_PROMPT = """You are a healthcare IT implementation consultant.

Given the executive summary, vendor ranking and risk assessment of a hospital
technology implementation, write a short narrative for hospital leadership.

Respond with JSON only, using these keys:
- headline: one sentence (<120 chars) naming the hospital and recommended approach.
- overview: 2-4 sentences on scope, timeline and cost.
- vendor_rationale: 1-3 sentences on why the top vendor fits.
- key_risks: list of 2-5 short risk statements.
- next_steps: list of 3-5 concrete next steps."""


def _narrative_input(result: TransformationResult) -> str:
    payload = {
        "executive_summary": result.executive_summary.model_dump(mode="json"),
        "vendors": [
            {
                "vendor": item.vendor_name,
                "compatibility": item.compatibility_score,
                "timeline_months": item.predicted_timeline_months,
                "risk_factors": item.risk_factors,
            }
            for item in result.vendor_recommendations
        ],
        "risk_assessment": result.risk_assessment.model_dump(mode="json"),
        "phases": [
            {"name": phase.name, "weeks": phase.duration_weeks}
            for phase in result.implementation_plan.phases
        ],
    }
    return json.dumps(payload, indent=2)


async def generate_narrative(
    result: TransformationResult,
    client: LLMClient | None = None,
) -> SpecificationNarrative:
    """Executive narrative from the LLM, or a deterministic template when that is not possible."""
    client = client or get_llm_client()
    if not NARRATIVE_ENABLED or not client.available():
        return template_narrative(result)

    try:
        narrative = await asyncio.wait_for(
            client.generate_json(
                system=NARRATIVE_PROMPT,
                user=_narrative_input(result),
                response_model=SpecificationNarrative,
                max_tokens=1024,
            ),
            timeout=NARRATIVE_TIMEOUT_SECONDS,
        )
    except TimeoutError:
        logger.error("Narrative generation timed out for %s", result.id)
        return template_narrative(result)
    except Exception as e:
        logger.error("Narrative generation failed for %s: %s", result.id, e)
        return template_narrative(result)
    return narrative.model_copy(update={"source": "llm"})


def template_narrative(result: TransformationResult) -> SpecificationNarrative:
    summary = result.executive_summary
    vendors = result.vendor_recommendations

    if vendors:
        top = vendors[0]
        rationale = (
            f"{top.vendor_name} ranks first with a compatibility score of "
            f"{top.compatibility_score:.2f} and a predicted {top.predicted_timeline_months:.0f}-month rollout."
        )
    else:
        rationale = "No vendor cleared the compatibility threshold; a vendor selection review is required."

    risks = [
        item.risk
        for category in ("technical", "operational", "financial", "regulatory")
        for item in result.risk_assessment.risks.get(category, [])
    ]
    steps = [f"Start {phase.name.lower()} ({phase.duration_weeks} weeks)" for phase in result.implementation_plan.phases[:2]]
    steps.extend(summary.key_recommendations[:3])

    return SpecificationNarrative(
        headline=f"{summary.hospital_name}: {summary.recommended_approach}",
        overview=(
            f"{summary.hospital_name} is a {summary.bed_count}-bed {summary.hospital_type.replace('_', ' ')} "
            f"facility with a complexity score of {summary.complexity_score:.1f}/10. "
            f"The plan runs {summary.estimated_timeline} at an estimated ${summary.estimated_cost:,}. "
            f"Overall risk is {summary.risk_level.lower()}."
        ),
        vendor_rationale=rationale,
        key_risks=risks or ["No significant risks identified"],
        next_steps=steps,
        source="template",
    )
