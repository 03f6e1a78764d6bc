"""Structured-output LLM access for narrative text.

One client per process, tiered model selection (fast / standard / high) and
JSON responses validated into pydantic models. Only ``narrative.py`` talks
to it; the transformation pipeline never does.
"""

import json
import logging
import re
from typing import TypeVar

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from specforge.config import (
    ANTHROPIC_API_KEY,
    LLM_DEFAULT_TIER,
    LLM_MODEL_FAST,
    LLM_MODEL_HIGH,
    LLM_MODEL_STANDARD,
    LLM_PROVIDER,
    OPENAI_API_KEY,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

TIERS = ("fast", "standard", "high")

MODEL_DEFAULTS = {
    "anthropic": {
        "fast": "claude-haiku-4-5",
        "standard": "claude-sonnet-4-5",
        "high": "claude-sonnet-4-5",
    },
    "openai": {
        "fast": "gpt-4o-mini",
        "standard": "gpt-4o",
        "high": "gpt-4o",
    },
}

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def _strip_json(text: str) -> str:
    """Drop markdown fences and any prose around the outermost JSON object."""
    text = _FENCE.sub("", text.strip())
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        return text[start:end + 1]
    return text


def _coerce_payload(data: object, response_model: type[T]) -> object:
    """Repair common shape drift: string where a list is expected, list where a string is."""
    if not isinstance(data, dict):
        return data
    coerced = dict(data)
    for name, field in response_model.model_fields.items():
        if name not in coerced:
            continue
        value = coerced[name]
        if str(field.annotation).startswith("list") and isinstance(value, str):
            coerced[name] = [line.strip("-• ").strip() for line in value.splitlines() if line.strip()]
        elif field.annotation is str and isinstance(value, list):
            coerced[name] = " ".join(str(item) for item in value)
    return coerced


def _resolve_provider() -> str:
    provider = (LLM_PROVIDER or "auto").lower()
    if provider != "auto":
        return provider
    if ANTHROPIC_API_KEY:
        return "anthropic"
    if OPENAI_API_KEY:
        return "openai"
    return "none"


class LLMClient:
    def __init__(self) -> None:
        self.provider = _resolve_provider()
        self._anthropic = AsyncAnthropic(api_key=ANTHROPIC_API_KEY) if ANTHROPIC_API_KEY else None
        self._openai = AsyncOpenAI(api_key=OPENAI_API_KEY) if OPENAI_API_KEY else None

    def available(self) -> bool:
        if self.provider == "anthropic":
            return self._anthropic is not None
        if self.provider == "openai":
            return self._openai is not None
        return False

    def model_for_tier(self, tier: str | None) -> str:
        tier = (tier or LLM_DEFAULT_TIER or "standard").lower()
        if tier not in TIERS:
            tier = "standard"
        override = {"fast": LLM_MODEL_FAST, "standard": LLM_MODEL_STANDARD, "high": LLM_MODEL_HIGH}[tier]
        if override:
            return override
        defaults = MODEL_DEFAULTS["anthropic" if self.provider == "anthropic" else "openai"]
        return defaults[tier]

    async def generate_json(
        self,
        *,
        system: str,
        user: str,
        response_model: type[T],
        max_tokens: int = 2048,
        tier: str | None = None,
    ) -> T:
        if not self.available():
            raise RuntimeError("LLM provider unavailable")

        model = self.model_for_tier(tier)
        logger.info("Requesting %s from %s (%s)", response_model.__name__, self.provider, model)
        if self.provider == "anthropic":
            return await self._anthropic_json(model, system, user, response_model, max_tokens)
        return await self._openai_json(model, system, user, response_model)

    async def _anthropic_json(
        self,
        model: str,
        system: str,
        user: str,
        response_model: type[T],
        max_tokens: int,
    ) -> T:
        message = await self._anthropic.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        raw = _strip_json("".join(getattr(block, "text", "") for block in message.content))
        try:
            return response_model.model_validate_json(raw)
        except ValidationError:
            logger.warning("Repairing %s payload from %s", response_model.__name__, model)
            payload = json.loads(raw)
            return response_model.model_validate(_coerce_payload(payload, response_model))

    async def _openai_json(self, model: str, system: str, user: str, response_model: type[T]) -> T:
        response = await self._openai.beta.chat.completions.parse(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            response_format=response_model,
        )
        parsed = response.choices[0].message.parsed
        if parsed is None:
            raise RuntimeError("LLM parse returned no data")
        return parsed


_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    global _client
    if _client is None:
        _client = LLMClient()
    return _client
