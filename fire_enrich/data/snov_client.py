"""
Snov.io adapter.

Uses OAuth client credentials; the bearer token is held in a ``TokenCache``
shared by every call this client makes. Domain search and email verification
are asynchronous on Snov's side: a task is started, then polled.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import structlog

from fire_enrich.core.config import SnovConfig
from fire_enrich.core.exceptions import ExternalServiceError, ProviderResponseError
from fire_enrich.core.models import (
    CompanyRecord,
    DomainSearchResult,
    EmailVerification,
    IdentityHints,
    Prospect,
)
from fire_enrich.data.auth import AccessToken, TokenCache
from fire_enrich.data.base import ProviderClient, as_text, first_present
from fire_enrich.utils.domains import normalize_domain
from fire_enrich.utils.reliability import CancellationToken, RetryPolicy

logger = structlog.get_logger(__name__)

VERIFICATION_STATUSES = ("valid", "not_valid", "unknown")


def _task_hash(payload: Dict[str, Any]) -> Optional[str]:
    meta = payload.get("meta") or {}
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    links = payload.get("links") or {}
    task_hash = meta.get("task_hash") or data.get("task_hash")
    if not task_hash and links.get("result"):
        task_hash = str(links["result"]).rstrip("/").split("/")[-1].split("task_hash=")[-1]
    return task_hash or None


class SnovClient(ProviderClient):
    """Snov.io v2 adapter: domain search and email verification."""

    provider_name = "snov"

    def __init__(
        self,
        http: httpx.AsyncClient,
        config: SnovConfig,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        token_cache: Optional[TokenCache] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(http, config.base_url, timeout, retry_policy)
        self._client_id = config.client_id or ""
        self._client_secret = config.client_secret or ""
        self.poll_attempts = max(1, config.poll_attempts)
        self.poll_interval = max(0.0, config.poll_interval)
        self.token_cache = token_cache or TokenCache(self._fetch_token)
        self._sleep = sleep
        self._token_policy = RetryPolicy(
            "snov-oauth", max_attempts=3, rate_limit_attempts=3, error_step=0.5, sleep=sleep
        )

    async def _fetch_token(self) -> AccessToken:
        payload = await self._request(
            "POST",
            "/v1/oauth/access_token",
            headers={"Content-Type": "application/json"},
            json={
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
            retry_policy=self._token_policy,
        )
        token = (payload or {}).get("access_token")
        if not token:
            raise ProviderResponseError(self.provider_name, "token response without access_token")
        expires_in = payload.get("expires_in")
        return AccessToken(
            token=token,
            expires_in=float(expires_in) if isinstance(expires_in, (int, float)) else 1800.0,
        )

    async def _authorized(
        self,
        method: str,
        path: str,
        cancel_token: Optional[CancellationToken] = None,
        **kwargs: Any,
    ) -> Any:
        """Call with the cached bearer token, re-issuing once with a fresh one on 401."""
        for attempt in (1, 2):
            token = await self.token_cache.get()
            headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
            try:
                return await self._request(
                    method, path, headers=headers, cancel_token=cancel_token, **kwargs
                )
            except ExternalServiceError as e:
                if e.status_code != 401:
                    raise
                self.token_cache.invalidate()
                if attempt == 2:
                    raise
                logger.info("Snov token rejected, refreshing", path=path)

    async def _poll_delay(self, attempt: int, cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        await self._sleep(self.poll_interval + attempt * self.poll_interval / 3)

    # ------------------------------------------------------------------
    # Domain search
    # ------------------------------------------------------------------

    async def enrich(
        self, hints: IdentityHints, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[CompanyRecord]:
        result = await self.domain_search(hints.domain or "", cancel_token)
        return result.company if result else None

    async def domain_search(
        self, domain: str, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[DomainSearchResult]:
        """Company record, prospects and email count for a domain."""
        clean = normalize_domain(domain)
        if not clean:
            return None
        return await self._absorb("domain_search", self._domain_search(clean, cancel_token))

    async def _domain_search(
        self, domain: str, cancel_token: Optional[CancellationToken]
    ) -> Optional[DomainSearchResult]:
        start = await self._authorized(
            "POST", "/v2/domain-search/start", cancel_token, json={"domain": domain}
        )
        task_hash = _task_hash(start or {})
        if not task_hash:
            raise ProviderResponseError(self.provider_name, "domain search did not return task_hash")

        result: Optional[Dict[str, Any]] = None
        for attempt in range(self.poll_attempts):
            response = await self._authorized(
                "GET", f"/v2/domain-search/result/{task_hash}", cancel_token
            )
            data = (response or {}).get("data")
            if isinstance(data, dict) and data:
                result = response
                break
            if attempt < self.poll_attempts - 1:
                await self._poll_delay(attempt, cancel_token)

        if result is None:
            logger.debug("Snov domain search produced no data", domain=domain)
            return None

        company_raw: Dict[str, Any] = result["data"]
        emails = company_raw.get("emails")
        prospects_raw = (
            first_present(company_raw, "prospects", "prospect_profiles")
            or result.get("prospects")
            or []
        )
        prospects = [
            Prospect(
                first_name=as_text(p.get("first_name")),
                last_name=as_text(p.get("last_name")),
                position=as_text(p.get("position")),
                email=as_text(p.get("email")),
                linkedin=as_text(p.get("linkedin")),
            )
            for p in prospects_raw
            if isinstance(p, dict)
        ]

        company = None
        if company_raw.get("company_name") or company_raw.get("industry"):
            company = CompanyRecord(
                provider=self.provider_name,
                name=as_text(company_raw.get("company_name")),
                domain=normalize_domain(company_raw.get("website")) or None,
                industry=as_text(company_raw.get("industry")),
                country=as_text(company_raw.get("country")),
            )

        search = DomainSearchResult(
            company=company,
            prospects=prospects,
            emails_count=len(emails) if isinstance(emails, list) else 0,
        )
        return search if search.has_data else None

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    async def verify_email(
        self, email: str, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[EmailVerification]:
        """SMTP-level verification of one address."""
        if not email or "@" not in email:
            return None
        return await self._absorb("verify_email", self._verify_email(email, cancel_token))

    async def _verify_email(
        self, email: str, cancel_token: Optional[CancellationToken]
    ) -> EmailVerification:
        start = await self._authorized(
            "POST", "/v2/email-verification/start", cancel_token, data={"emails[]": email}
        )
        task_hash = _task_hash(start or {})
        if not task_hash:
            return EmailVerification(email=email)

        items = None
        for attempt in range(self.poll_attempts + 1):
            response = await self._authorized(
                "GET",
                "/v2/email-verification/result",
                cancel_token,
                params={"task_hash": task_hash},
            )
            response = response or {}
            if response.get("status") == "completed" and isinstance(response.get("data"), list):
                items = response["data"]
                break
            if attempt < self.poll_attempts:
                await self._poll_delay(attempt, cancel_token)

        if not items:
            return EmailVerification(email=email)

        item = next(
            (i for i in items if str(i.get("email", "")).lower() == email.lower()), items[0]
        )
        result = item.get("result") or {}
        status = result.get("smtp_status")
        details = {
            key: result[key]
            for key in (
                "is_valid_format",
                "is_disposable",
                "is_webmail",
                "is_gibberish",
                "unknown_status_reason",
            )
            if key in result
        }
        return EmailVerification(
            email=email,
            status=status if status in VERIFICATION_STATUSES else "unknown",
            details=details,
        )
