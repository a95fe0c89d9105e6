"""Company AI analysis generation (Gemini via the google-genai SDK)."""

import asyncio
import json
import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("summary", "steps", "executiveSummary", "companyOverview", "executiveDashboard")

SYSTEM_PROMPT = """You are an enterprise AI strategy analyst.
Produce a structured AI opportunity assessment for the named company.
Respond with JSON only, using exactly these top-level keys:
  summary: string
  steps: [{step: int, title: string, content: string, data: [object]}]
  executiveSummary: {headline, context, opportunityTable: {rows: [{metric, value}]},
                     findings: [{title, body, value}], criticalPath, recommendedAction}
  companyOverview: {annualRevenue: number, totalEmployees: number, position: string,
                    frictionTable: {rows: [{domain, annualBurden, strategicImpact}]},
                    dataReadiness: {currentState, keyGaps}, whyNow}
  executiveDashboard: {totalRevenueBenefit, totalCostBenefit, totalCashFlowBenefit,
                       totalRiskBenefit, totalAnnualValue, totalMonthlyTokens,
                       valuePerMillionTokens,
                       topUseCases: [{rank, useCase, priorityScore, monthlyTokens, annualValue}]}
"""


class AnalysisError(Exception):
    """The analysis could not be produced. The message is safe to show to users."""


class AnalysisGenerator(ABC):
    @abstractmethod
    async def generate(self, company_name: str, previous: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ...


def _is_retryable(exc: Exception) -> bool:
    msg = str(exc).lower()
    return (
        "429" in msg
        or "resource exhausted" in msg
        or "quota" in msg
        or "rate limit" in msg
        or "overloaded" in msg
        or "503" in msg
    )


async def _with_backoff(func, *args, retries: int = 3, base_delay: float = 1.0, **kwargs):
    for attempt in range(retries):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not _is_retryable(e) or attempt == retries - 1:
                raise
            delay = base_delay * (2 ** attempt) + random.uniform(0, 1)
            logger.warning(f"Retry attempt {attempt + 1}/{retries} after error: {e}. Retrying in {delay:.1f}s")
            await asyncio.sleep(delay)


def parse_analysis(text: str) -> Dict[str, Any]:
    """Parse and sanity-check the model's JSON output."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.startswith("json"):
            cleaned = cleaned[4:]
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AnalysisError(f"AI returned invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise AnalysisError("AI returned an unexpected response shape")
    missing = [k for k in REQUIRED_KEYS if k not in data]
    if missing:
        raise AnalysisError(f"AI response missing sections: {', '.join(missing)}")
    return data


class GeminiAnalysisGenerator(AnalysisGenerator):
    """Generates analyses with Gemini in JSON response mode."""

    def __init__(self, api_key: Optional[str], model: str):
        self._api_key = api_key
        self._model = model
        self._client = None

    def _get_client(self):
        if self._client is None:
            if not self._api_key:
                raise AnalysisError("AI analysis unavailable: GEMINI_API_KEY is not configured")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def generate(self, company_name: str, previous: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        client = self._get_client()
        prompt = f"Company: {company_name}"
        if previous and previous.get("summary"):
            prompt += f"\n\nPrevious assessment summary (refresh and correct it):\n{previous['summary']}"

        response = await _with_backoff(
            client.aio.models.generate_content,
            model=self._model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_PROMPT,
                temperature=0.2,
                response_mime_type="application/json",
            ),
        )
        if not response.text:
            raise AnalysisError("AI returned an empty response")
        return parse_analysis(response.text)
