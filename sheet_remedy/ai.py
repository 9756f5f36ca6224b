"""AI suggestions for issues the rule-based scans miss."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Sequence

import anthropic

from sheet_remedy.config import DEFAULT_AI_MAX_TOKENS, DEFAULT_AI_MODEL, DEFAULT_AI_TIMEOUT, Settings
from sheet_remedy.values import is_empty

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 50
MAX_SUGGESTIONS = 20
JSON_BLOCK_RE = re.compile(r"\{.*\}", re.DOTALL)

PROMPT_TEMPLATE = """You are a data quality expert. Analyze this Excel column data and identify specific issues with suggested fixes.

Column: {column}
Total Records: {total}
Sample (first {sample_size} rows):

{rows}

Return ONLY valid JSON in this format:
{{
  "issues": [
    {{
      "rowNumber": 3,
      "currentValue": "example value",
      "suggestedFix": "corrected value",
      "reason": "Brief explanation"
    }}
  ]
}}

Limit to maximum {limit} most important issues."""


@dataclass
class AISuggestion:
    issues: list[dict[str, Any]] = field(default_factory=list)
    tokens_used: int = 0
    error: str | None = None


def _render_value(value: Any) -> str:
    if is_empty(value):
        return "(empty)"
    return json.dumps(value, ensure_ascii=False, default=str)


def build_prompt(column_name: str, values: Sequence[Any], sample_size: int = SAMPLE_SIZE) -> str:
    sample = list(values[:sample_size])
    rows = "\n".join(f"Row {index + 2}: {_render_value(value)}" for index, value in enumerate(sample))
    return PROMPT_TEMPLATE.format(
        column=column_name,
        total=len(values),
        sample_size=len(sample),
        rows=rows,
        limit=MAX_SUGGESTIONS,
    )


def parse_response(text: str) -> list[dict[str, Any]]:
    match = JSON_BLOCK_RE.search(text)
    if not match:
        raise ValueError("AI response contained no JSON object")
    parsed = json.loads(match.group(0))
    issues = parsed.get("issues") if isinstance(parsed, dict) else None
    if not isinstance(issues, list):
        raise ValueError("AI response has no issues list")
    return [issue for issue in issues if isinstance(issue, dict)]


class AISuggester:
    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_AI_MODEL,
        max_tokens: int = DEFAULT_AI_MAX_TOKENS,
        timeout: int = DEFAULT_AI_TIMEOUT,
        client=None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        if client is None and api_key:
            client = anthropic.Anthropic(api_key=api_key, timeout=timeout)
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "AISuggester":
        return cls(
            settings.anthropic_api_key,
            model=settings.ai_model,
            max_tokens=settings.ai_max_tokens,
            timeout=settings.ai_timeout,
        )

    @property
    def available(self) -> bool:
        return self.client is not None

    def suggest(self, column_name: str, values: Sequence[Any]) -> AISuggestion:
        """Ask the model about the first rows of a column; failures give an empty suggestion."""
        if not self.available:
            return AISuggestion(error="ANTHROPIC_API_KEY is not set.")
        prompt = build_prompt(column_name, values)
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            logger.warning("AI request for %s failed: %s", column_name, exc)
            return AISuggestion(error=f"AI request failed: {exc}")

        try:
            issues = parse_response(message.content[0].text)
        except (ValueError, IndexError, AttributeError) as exc:
            logger.warning("AI response for %s was unusable: %s", column_name, exc)
            return AISuggestion(error=f"AI response was unusable: {exc}")
        tokens = message.usage.input_tokens + message.usage.output_tokens
        return AISuggestion(issues=issues[:MAX_SUGGESTIONS], tokens_used=tokens)
