"""
Shared HTTP plumbing for provider adapters.

Adapters raise the provider errors from ``fire_enrich.core.exceptions``
internally and absorb them at their public boundary: every public adapter
method returns ``None`` (or an empty list) on failure and logs the cause.
"""

from __future__ import annotations

from typing import Any, Awaitable, Dict, Optional, TypeVar

import httpx
import structlog

from fire_enrich.core.exceptions import (
    EnrichmentCancelledError,
    ExternalServiceError,
    FireEnrichError,
    ProviderResponseError,
    RateLimitError,
)
from fire_enrich.utils.reliability import CancellationToken, RetryPolicy

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After in seconds; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class ProviderClient:
    """Base class for async HTTP provider adapters."""

    provider_name = "provider"

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._http = http
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy(self.provider_name)

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send_once(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Any = None,
    ) -> Any:
        try:
            response = await self._http.request(
                method,
                self._url(path),
                headers=headers,
                params=params,
                json=json,
                data=data,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                self.provider_name, f"transport error on {path}: {type(e).__name__}"
            ) from e

        if response.status_code == 429:
            raise RateLimitError(
                self.provider_name,
                f"rate limited on {path}",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        if response.status_code >= 400:
            raise ExternalServiceError(
                self.provider_name,
                f"HTTP {response.status_code} on {path}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderResponseError(self.provider_name, f"non-JSON body on {path}") from e

    async def _request(
        self,
        method: str,
        path: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
        retry_policy: Optional[RetryPolicy] = None,
        **kwargs: Any,
    ) -> Any:
        """Send a request under the adapter's retry policy and decode JSON."""
        policy = retry_policy or self.retry_policy
        return await policy.call(
            self._send_once, method, path, cancel_token=cancel_token, **kwargs
        )

    async def _absorb(self, operation: str, awaitable: Awaitable[T]) -> Optional[T]:
        """Await an adapter operation, turning any failure into ``None``."""
        try:
            return await awaitable
        except EnrichmentCancelledError:
            logger.debug("Provider call abandoned", provider=self.provider_name, operation=operation)
            return None
        except FireEnrichError as e:
            logger.warning(
                "Provider call failed",
                provider=self.provider_name,
                operation=operation,
                error=e.message,
                error_type=type(e).__name__,
            )
            return None
        except Exception as e:
            # Unexpected shapes in provider payloads must not reach the row
            logger.warning(
                "Provider call raised unexpectedly",
                provider=self.provider_name,
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None


def first_present(data: Dict[str, Any], *keys: str) -> Any:
    """First non-empty value among ``keys``."""
    for key in keys:
        value = data.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
