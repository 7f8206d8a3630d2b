"""Explorium business-graph adapter."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from fire_enrich.core.config import ExploriumConfig
from fire_enrich.core.models import CompanyRecord, IdentityHints
from fire_enrich.data.base import ProviderClient, as_text, first_present
from fire_enrich.utils.domains import normalize_domain
from fire_enrich.utils.reliability import CancellationToken, RetryPolicy

REQUESTED_ATTRIBUTES = [
    "company_name",
    "company_domain",
    "company_industry",
    "company_country",
    "company_competitors",
]


class ExploriumClient(ProviderClient):
    provider_name = "explorium"

    def __init__(
        self,
        http: httpx.AsyncClient,
        config: ExploriumConfig,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(http, config.base_url, timeout, retry_policy)
        self._api_key = config.api_key or ""

    async def enrich(
        self, hints: IdentityHints, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[CompanyRecord]:
        if not (hints.domain or hints.name):
            return None
        return await self._absorb("enrich", self._enrich(hints, cancel_token))

    async def _enrich(
        self, hints: IdentityHints, cancel_token: Optional[CancellationToken]
    ) -> Optional[CompanyRecord]:
        body: Dict[str, Any] = {"data": REQUESTED_ATTRIBUTES}
        for key in ("domain", "name", "url", "linkedin_url"):
            value = getattr(hints, key)
            if value:
                body[key] = value

        payload = await self._request(
            "POST",
            "/v2/enrich/company",
            headers={"Content-Type": "application/json", "X-API-KEY": self._api_key},
            json=body,
            cancel_token=cancel_token,
        )
        record = payload.get("data", payload) if isinstance(payload, dict) else None
        if isinstance(record, list):
            record = record[0] if record else None
        if not isinstance(record, dict):
            return None

        name = as_text(first_present(record, "company_name", "name"))
        domain = normalize_domain(first_present(record, "company_domain", "domain")) or None
        if not (name or domain):
            return None

        competitors = record.get("company_competitors") or record.get("competitors") or []
        return CompanyRecord(
            provider=self.provider_name,
            name=name,
            domain=domain,
            industry=as_text(first_present(record, "company_industry", "industry")),
            country=as_text(first_present(record, "company_country", "country")),
            competitors=[str(c) for c in competitors] if isinstance(competitors, list) else [],
            linkedin_url=as_text(first_present(record, "linkedin_url", "linkedin_profile")),
        )
