"""
Extraction Client

Sends one user/assistant exchange to the configured LLM provider and
turns its JSON reply into a strictly validated Candidate.

- Markdown code fences and trailing commas are tolerated
- Wrong types are failures, never coerced
- Unknown keys (summary, key_points, ...) are ignored
"""

import re
import json
from typing import Dict, Optional, Any

from pydantic import ValidationError

from threadmem.core.config import settings
from threadmem.core.logger import Logger
from threadmem.providers import BaseProvider, DEFAULT_PROVIDER, build_providers
from threadmem.services.summary_memory.data_models import Candidate, ExtractionTemplate
from threadmem.services.summary_memory.errors import ExtractionError
from threadmem.services.summary_memory.prompts import format_exchange

logger = Logger("Extractor")


# ═══════════════════════════════════════════════════════════════════════════════
# JSON Parsing Utilities
# ═══════════════════════════════════════════════════════════════════════════════

def extract_json_from_response(response: str) -> Optional[Any]:
    """Extract JSON from AI response, handling markdown code blocks."""
    json_match = re.search(r'```(?:json)?\s*\n?([\s\S]*?)\n?```', response)
    if json_match:
        json_str = json_match.group(1).strip()
    else:
        json_str = response.strip()

    json_str = re.sub(r',\s*}', '}', json_str)  # Trailing commas
    json_str = re.sub(r',\s*]', ']', json_str)

    try:
        return json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.warn(f"JSON parse error: {e}")
        logger.debug(f"Raw response: {response[:500]}")
        return None


def parse_candidate(response: str) -> Candidate:
    """Parse and validate an oracle reply. Raises ExtractionError."""
    data = extract_json_from_response(response)
    if data is None:
        raise ExtractionError("Oracle returned invalid JSON", raw_response=response)
    if not isinstance(data, dict):
        raise ExtractionError(f"Oracle returned {type(data).__name__}, expected an object", raw_response=response)

    try:
        return Candidate.model_validate(data)
    except ValidationError as e:
        raise ExtractionError(f"Malformed candidate: {e.error_count()} validation errors", raw_response=response) from e


# ═══════════════════════════════════════════════════════════════════════════════
# Extraction Client
# ═══════════════════════════════════════════════════════════════════════════════

class ExtractionClient:
    """Typed interface to the extraction oracle."""

    def __init__(self, providers: Dict[str, BaseProvider] = None, default_provider: str = None):
        self.providers = providers if providers is not None else build_providers()
        self.default_provider = default_provider or settings.AI_PROVIDER or DEFAULT_PROVIDER

    def get_provider(self, name: Optional[str]) -> BaseProvider:
        key = (name or self.default_provider).lower()
        provider = self.providers.get(key)
        if not provider:
            raise ExtractionError(f"Unknown AI provider: {key}")
        return provider

    async def extract(self, user_text: str, assistant_text: str, template: ExtractionTemplate) -> Candidate:
        provider = self.get_provider(template.provider)
        model = template.model or settings.AI_MODEL or provider.default_model

        try:
            result = await provider.call(
                prompt=format_exchange(user_text, assistant_text),
                model=model,
                context_prefix=template.instructions,
                temperature=template.temperature,
                max_tokens=template.max_output_tokens,
                json_mode=True,
            )
        except Exception as e:
            raise ExtractionError(f"{provider.name} call failed: {e}") from e

        content = (result or {}).get("content") or ""
        if not content.strip():
            raise ExtractionError(f"{provider.name} returned an empty response")

        candidate = parse_candidate(content)
        logger.debug(f"Extracted candidate via {provider.name}/{model}")
        return candidate
