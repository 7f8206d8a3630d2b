"""
Free-text web research through Azure OpenAI / OpenAI chat completions.

The model is asked for a structured JSON company analysis of recent public
signals; the answer is normalized into a ``SignalReport``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Optional, Union

import openai
import structlog
from openai import AsyncAzureOpenAI, AsyncOpenAI

from fire_enrich.core.config import ResearchConfig
from fire_enrich.core.exceptions import (
    ExternalServiceError,
    FireEnrichError,
    ProviderResponseError,
    RateLimitError,
)
from fire_enrich.core.models import SignalReport
from fire_enrich.intelligence.json_utils import coerce_json_payload
from fire_enrich.intelligence.signals import normalize_report
from fire_enrich.utils.reliability import CancellationToken, RetryPolicy

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """
You are a senior B2B business intelligence analyst who finds context signals for outbound prospecting.
OBJECTIVE: scan public signals about the target company and keep only facts useful to personalize a sales approach.
MANDATORY OUTPUT FORMAT (JSON only):
{
"company_analysis": {
"company_name": "string",
"search_date": "YYYY-MM-DD",
"data_freshness": "last_30d|last_60d|last_90d|older",
"overall_signal_strength": "high|medium|low",
"priority_signals": [
{
"signal_id": "1-24",
"signal_name": "descriptive name",
"category": "organizational|personal|market|performance",
"weight": "1-5",
"date": "YYYY-MM-DD",
"title": "max 80 chars, headline style",
"description": "max 150 chars, factual and specific",
"source_url": "verifiable URL",
"confidence": "high|medium|low",
"recommended_action": "consultative|relational|educational",
"copy_angle": "personalization angle, max 100 chars"
}
],
"total_signals_found": 0,
"signals_by_category": {"organizational": 0, "market": 0, "performance": 0},
"key_insights": "executive summary, max 200 chars",
"personalization_hooks": ["hook 1", "hook 2", "hook 3"]
}
}
SIGNAL CATALOGUE (weight):
ORGANIZATIONAL: 1 investment round (5), 7 tech/commercial job openings (5), 2 headcount growth >20% (4),
3 new C-level hires (4), 4 product or feature launch (4), 5 geographic expansion (3), 6 office change (2).
MARKET: 14 regulatory change (5), 13 direct competitor news (4), 15 M&A or partnerships (4),
16 event participation (3), 17 new market entrant (3), 18 macroeconomic change (3).
PERFORMANCE: 23 published case or testimonial (4), 24 negative review pattern, 3+ mentions (3),
22 website or branding change (2).
RULES:
1. Prioritize the last 30 days, extend to 90 if needed.
2. Return the TOP 5-7 most relevant and recent signals, ordered by descending weight.
3. Only verifiable public sources with accessible URLs. Never invent data or URLs.
4. Never return a signal without source_url. Never exceed 7 signals.
5. Include 2-3 ready-to-use personalization_hooks for a cold email.
6. With no relevant activity, answer overall_signal_strength "low" and an empty priority_signals list.
"""

USER_PROMPT = """
TARGET COMPANY: {company_name}
WEBSITE/DOMAIN: {company_domain}
SECTOR/INDUSTRY: {company_industry}
COUNTRY: {company_country}
MAIN COMPETITORS: {competitors}
MISSION: scan context signals from the last 90 days (prioritize 30 days) that can trigger a personalized cold outbound approach.
Reference date for recency: {today}
OUTPUT: JSON following the system prompt schema.
"""


@dataclass
class ResearchRequest:
    """Identity the research prompt is built from."""

    company_name: str
    company_domain: str
    company_industry: str = "unknown"
    company_country: str = "unknown"
    company_competitors: List[str] = field(default_factory=list)


def build_openai_client(
    config: ResearchConfig, timeout: float = 60.0
) -> Optional[Union[AsyncAzureOpenAI, AsyncOpenAI]]:
    """Create the async OpenAI client for the configured backend, or None."""
    if config.uses_azure:
        return AsyncAzureOpenAI(
            api_key=config.api_key,
            azure_endpoint=config.azure_endpoint,
            api_version=config.azure_api_version,
            timeout=timeout,
            max_retries=0,
        )
    if config.openai_api_key:
        return AsyncOpenAI(api_key=config.openai_api_key, timeout=timeout, max_retries=0)
    return None


class WebResearchClient:
    """Runs the research prompt and normalizes the answer."""

    provider_name = "web"

    def __init__(
        self,
        client: Any,
        model: str,
        temperature: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._client = client
        self.model = model
        self.temperature = temperature
        self.retry_policy = retry_policy or RetryPolicy(
            "web-research", max_attempts=2, rate_limit_attempts=3
        )

    @classmethod
    def from_config(cls, config: ResearchConfig, timeout: float = 60.0) -> Optional["WebResearchClient"]:
        client = build_openai_client(config, timeout)
        if client is None:
            return None
        model = config.azure_deployment if config.uses_azure and config.azure_deployment else config.model
        return cls(client, model=model, temperature=config.temperature)

    async def research(
        self, request: ResearchRequest, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[SignalReport]:
        """Signal report for the company, or None when research fails."""
        try:
            content = await self.retry_policy.call(
                self._complete, request, cancel_token=cancel_token
            )
            payload = coerce_json_payload(content)
            return normalize_report(payload, company_name=request.company_name)
        except FireEnrichError as e:
            logger.warning(
                "Web research failed",
                company=request.company_name,
                error=e.message,
                error_type=type(e).__name__,
            )
        except ValueError as e:
            logger.warning(
                "Web research returned unusable content",
                company=request.company_name,
                error=str(e),
            )
        return None

    async def _complete(self, request: ResearchRequest) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT.strip()},
            {
                "role": "user",
                "content": USER_PROMPT.format(
                    company_name=request.company_name,
                    company_domain=request.company_domain,
                    company_industry=request.company_industry,
                    company_country=request.company_country,
                    competitors=", ".join(request.company_competitors) or "unknown",
                    today=date.today().isoformat(),
                ).strip(),
            },
        ]
        kwargs: dict = {
            "model": self.model,
            "messages": messages,
            "response_format": {"type": "json_object"},
        }
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature

        try:
            completion = await self._client.chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            raise RateLimitError(self.provider_name, str(e)) from e
        except openai.APIStatusError as e:
            raise ExternalServiceError(self.provider_name, str(e), status_code=e.status_code) from e
        except (openai.APIConnectionError, openai.APITimeoutError) as e:
            raise ExternalServiceError(self.provider_name, str(e)) from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ProviderResponseError(self.provider_name, "empty completion")
        return content
