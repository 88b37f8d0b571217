"""
Gemini ``generateContent`` client used as the enrichment collaborator.

API:   {api_base_url}/models/{model}:generateContent?key={API_KEY}
Docs:  https://ai.google.dev/api/generate-content

Credential setup (.env, gitignored):
  GEMINI_API_KEY=your_key      # variable name set by [enrichment].api_key_env

Request body::

    {"contents": [{"parts": [{"text": "<prompt>"}]}]}

Response: the text of ``candidates[0].content.parts[0].text`` is returned
unparsed; ``parse_enriched_action`` owns validation.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from organic_advisor.config import EnrichmentConfig
from organic_advisor.errors import EnrichmentFailure

logger = logging.getLogger(__name__)

_RESPONSE_FORMAT = {
    "title": "Action name using available materials",
    "description": "Clear benefit explanation for the main crop",
    "urgency": "high | medium | low",
    "category": "pesticide | fertilizer | soil_amendment | growth_enhancer",
    "targetProblem": "specific problem solved",
    "ingredients": {"material": "amount"},
    "steps": ["step 1", "step 2", "step 3"],
    "preparationTime": 30,
    "yieldBoost": "expected yield improvement",
    "moneySaved": 10,
    "timeToResults": "2 weeks",
    "whyNow": "reason to act today",
}


def build_prompt(summary: dict[str, Any]) -> str:
    """Render the enrichment prompt for one context summary."""
    crops = ", ".join(summary.get("crops") or []) or "mixed crops"
    materials = ", ".join(summary.get("available_materials") or []) or "none listed"
    issues = ", ".join(summary.get("issues") or []) or "none reported"
    hint = summary.get("category_hint")
    lines = [
        "You are an organic farming advisor for smallholder farmers.",
        "",
        "FARMER CONTEXT:",
        f"- Location: {summary.get('region')}",
        f"- Crops: {crops}",
        f"- Current issues: {issues}",
        f"- Season: {summary.get('season')}",
        f"- Available materials: {materials}",
        f"- Farm size: {summary.get('farm_size_ha')} hectares",
        f"- Soil: {summary.get('soil_type')}",
        "",
        "Generate ONE specific organic action for today that:",
        "1. Prefers materials the farmer already has",
        f"2. Solves a real problem for {summary.get('primary_crop', crops)}",
        "3. Is 100% organic and chemical-free",
    ]
    if hint:
        lines.append(f"4. Is a {hint.replace('_', ' ')} treatment")
    lines += [
        "",
        "Respond with JSON only, in this format:",
        json.dumps(_RESPONSE_FORMAT, indent=2),
    ]
    return "\n".join(lines)


class GeminiEnrichmentClient:
    """Async enrichment collaborator backed by the Gemini REST API.

    Usage::

        client = GeminiEnrichmentClient.from_config(config.enrichment)
        if client is not None:
            text = await client.generate(summary)

    ``from_config`` returns ``None`` when enrichment is disabled or no API key
    is set, so callers never hold a client that cannot work.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        api_base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_s: float = 4.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: EnrichmentConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> Optional["GeminiEnrichmentClient"]:
        if not config.enabled:
            return None
        api_key = config.api_key()
        if not api_key:
            logger.warning(
                "Enrichment enabled but %s is not set; enrichment disabled.",
                config.api_key_env,
            )
            return None
        return cls(
            api_key=api_key,
            model=config.model,
            api_base_url=config.api_base_url,
            timeout_s=config.timeout_s,
            transport=transport,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.api_base_url}/models/{self.model}:generateContent"

    async def generate(self, context_summary: dict[str, Any]) -> str:
        """POST one prompt and return the first candidate's text.

        Raises:
            httpx.HTTPError:   On transport errors or non-2xx responses.
            EnrichmentFailure: If the response carries no candidate text.
        """
        payload = {"contents": [{"parts": [{"text": build_prompt(context_summary)}]}]}
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            resp = await client.post(
                self.endpoint,
                params={"key": self.api_key},
                json=payload,
            )
            resp.raise_for_status()
            body = resp.json()

        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise EnrichmentFailure("Gemini response has no candidate text") from exc
        if not isinstance(text, str) or not text.strip():
            raise EnrichmentFailure("Gemini response has no candidate text")
        logger.debug("Gemini returned %d chars for user=%s", len(text), context_summary.get("user_id"))
        return text
