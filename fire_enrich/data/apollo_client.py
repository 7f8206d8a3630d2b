"""Apollo.io adapter: company match, precise person match and executive search."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog

from fire_enrich.core.config import ApolloConfig
from fire_enrich.core.models import CompanyRecord, Executive, IdentityHints, PersonRecord
from fire_enrich.data.base import ProviderClient, as_text, first_present
from fire_enrich.utils.domains import normalize_domain
from fire_enrich.utils.reliability import CancellationToken, RetryPolicy

logger = structlog.get_logger(__name__)

DEFAULT_EXECUTIVE_TITLES = ["CEO", "CTO", "CFO", "COO", "CMO", "Founder", "Co-Founder", "VP", "Head"]


def _full_name(person: Dict[str, Any]) -> Optional[str]:
    name = as_text(person.get("name"))
    if name:
        return name
    parts = [as_text(person.get("first_name")), as_text(person.get("last_name"))]
    joined = " ".join(p for p in parts if p)
    return joined or None


class ApolloClient(ProviderClient):
    """Apollo.io REST adapter authenticated with the ``x-api-key`` header."""

    provider_name = "apollo"

    def __init__(
        self,
        http: httpx.AsyncClient,
        config: ApolloConfig,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(http, config.base_url, timeout, retry_policy)
        self._api_key = config.api_key or ""

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Cache-Control": "no-cache",
            "x-api-key": self._api_key,
        }

    # ------------------------------------------------------------------
    # Company match
    # ------------------------------------------------------------------

    async def enrich(
        self, hints: IdentityHints, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[CompanyRecord]:
        """Organization search by domain (preferred) or name."""
        if not (hints.domain or hints.name):
            return None
        return await self._absorb("enrich", self._enrich(hints, cancel_token))

    async def _enrich(
        self, hints: IdentityHints, cancel_token: Optional[CancellationToken]
    ) -> Optional[CompanyRecord]:
        query: Dict[str, Any] = {"page": 1, "per_page": 1}
        if hints.domain:
            query["q_organization_domains"] = hints.domain
        if hints.name:
            query["q_organization_name"] = hints.name

        payload = await self._request(
            "POST",
            "/api/v1/mixed_companies/search",
            headers=self._headers,
            json=query,
            cancel_token=cancel_token,
        )
        items = first_present(payload or {}, "organizations", "accounts", "companies", "data")
        record = items[0] if isinstance(items, list) and items else items
        if not isinstance(record, dict):
            logger.debug("Apollo returned no organization", domain=hints.domain)
            return None

        competitors = record.get("top_competitors")
        return CompanyRecord(
            provider=self.provider_name,
            name=as_text(record.get("name")),
            domain=normalize_domain(
                first_present(record, "primary_domain", "website_url", "domain")
            )
            or None,
            industry=as_text(first_present(record, "industry", "primary_industry")),
            country=as_text(first_present(record, "country", "country_code")),
            competitors=[str(c) for c in competitors] if isinstance(competitors, list) else [],
            linkedin_url=as_text(
                first_present(record, "linkedin_url", "linkedin", "linkedin_company_url")
            ),
            technologies=[
                str(t.get("name") if isinstance(t, dict) else t)
                for t in record.get("current_technologies") or []
            ],
        )

    # ------------------------------------------------------------------
    # Person match
    # ------------------------------------------------------------------

    async def match(
        self, email: str, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[PersonRecord]:
        """Precise person lookup by email. Never reveals phones or personal emails."""
        if not email:
            return None
        return await self._absorb("match", self._match(email, cancel_token))

    async def _match(
        self, email: str, cancel_token: Optional[CancellationToken]
    ) -> Optional[PersonRecord]:
        payload = await self._request(
            "POST",
            "/api/v1/people/match",
            headers=self._headers,
            params={
                "email": email,
                "reveal_personal_emails": "false",
                "reveal_phone_number": "false",
            },
            cancel_token=cancel_token,
        )
        person = first_present(payload or {}, "person", "data")
        if not isinstance(person, dict):
            return None

        location = ", ".join(
            str(person[k]) for k in ("city", "state", "country") if person.get(k)
        )
        return PersonRecord(
            email=as_text(person.get("email")) or email,
            name=_full_name(person),
            first_name=as_text(person.get("first_name")),
            last_name=as_text(person.get("last_name")),
            title=as_text(person.get("title")),
            linkedin_url=as_text(first_present(person, "linkedin_url", "linkedin")),
            organization_name=as_text(
                person.get("organization_name")
                or (person.get("organization") or {}).get("name")
            ),
            headline=as_text(person.get("headline")),
            location=location or None,
        )

    # ------------------------------------------------------------------
    # Executive search
    # ------------------------------------------------------------------

    async def search_executives(
        self,
        domain: Optional[str] = None,
        name: Optional[str] = None,
        titles: Optional[List[str]] = None,
        limit: int = 15,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Executive]:
        """People search filtered to leadership titles. Returns [] on failure."""
        if not (domain or name):
            return []
        result = await self._absorb(
            "search_executives",
            self._search_executives(domain, name, titles, limit, cancel_token),
        )
        return result or []

    async def _search_executives(
        self,
        domain: Optional[str],
        name: Optional[str],
        titles: Optional[List[str]],
        limit: int,
        cancel_token: Optional[CancellationToken],
    ) -> List[Executive]:
        query: Dict[str, Any] = {
            "page": 1,
            "per_page": max(1, min(50, limit or 15)),
            "person_titles": titles or DEFAULT_EXECUTIVE_TITLES,
        }
        if domain:
            query["q_organization_domains"] = domain
        if name:
            query["q_organization_name"] = name

        payload = await self._request(
            "POST",
            "/api/v1/mixed_people/search",
            headers=self._headers,
            json=query,
            cancel_token=cancel_token,
        )
        people = first_present(payload or {}, "people", "persons", "contacts", "data") or []
        executives = []
        for person in people if isinstance(people, list) else []:
            if not isinstance(person, dict):
                continue
            full_name = _full_name(person)
            title = as_text(first_present(person, "title", "role", "designation"))
            if not full_name or not title:
                continue
            departments = person.get("departments")
            department = (
                departments[0] if isinstance(departments, list) and departments else None
            ) or as_text(first_present(person, "department", "seniority"))
            executives.append(
                Executive(
                    name=full_name,
                    title=title,
                    department=department,
                    linkedin_url=as_text(first_present(person, "linkedin_url", "linkedin")),
                )
            )
        return executives[:limit]
