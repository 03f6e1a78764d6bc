from pydantic import BaseModel


class SpecificationNarrative(BaseModel):
    """Executive narrative for a transformation (LLM structured output)."""

    headline: str
    overview: str
    vendor_rationale: str
    key_risks: list[str]
    next_steps: list[str]
    source: str = "llm"  # "llm" or "template"
