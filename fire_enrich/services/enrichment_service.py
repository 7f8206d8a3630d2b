"""
Enrichment service wiring.

Builds the shared HTTP client, the provider adapters whose credentials are
configured, the skip list and the session registry, and hands out sessions.
Each session gets its own domain cache, so nothing leaks between batches.
"""

from typing import Callable, Dict, Optional, Sequence

import httpx
import structlog

from fire_enrich.core.config import Settings, get_settings, provider_status
from fire_enrich.core.models import EnrichmentField, Row
from fire_enrich.data.apify_client import ApifyClient
from fire_enrich.data.apollo_client import ApolloClient
from fire_enrich.data.explorium_client import ExploriumClient
from fire_enrich.data.snov_client import SnovClient
from fire_enrich.data.web_research import WebResearchClient
from fire_enrich.intelligence.cache import DomainCache
from fire_enrich.intelligence.discovery import DiscoveryCoordinator
from fire_enrich.intelligence.reconciler import FieldReconciler
from fire_enrich.intelligence.row_enricher import RowEnricher
from fire_enrich.intelligence.skip_list import SkipList
from fire_enrich.services.session import EnrichmentSession, SessionRegistry

logger = structlog.get_logger(__name__)


def build_coordinator(settings: Settings, http: httpx.AsyncClient) -> DiscoveryCoordinator:
    """Construct only the adapters whose credentials are present."""
    status = provider_status(settings)
    timeout = settings.enrichment.provider_timeout_seconds

    def configured(name: str) -> bool:
        return status.get(name) == "configured"

    coordinator = DiscoveryCoordinator(
        apollo=ApolloClient(http, settings.apollo, timeout) if configured("apollo") else None,
        snov=SnovClient(http, settings.snov, timeout) if configured("snov") else None,
        explorium=(
            ExploriumClient(http, settings.explorium, timeout) if configured("explorium") else None
        ),
        web=WebResearchClient.from_config(settings.research, timeout=max(timeout, 60.0)),
        apify=ApifyClient(http, settings.apify, max(timeout, 60.0)) if configured("apify") else None,
        enable_email_verification=settings.enrichment.enable_email_verification,
        enable_social_posts=settings.enrichment.enable_social_posts,
    )
    logger.info("Providers configured", providers=coordinator.configured_providers)
    return coordinator


def build_skip_list(settings: Settings) -> SkipList:
    path = settings.enrichment.skip_list_path
    return SkipList.from_file(path) if path else SkipList()


class EnrichmentService:
    """Owns long-lived collaborators and starts enrichment sessions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http: Optional[httpx.AsyncClient] = None,
        coordinator: Optional[DiscoveryCoordinator] = None,
        skip_list: Optional[SkipList] = None,
        registry: Optional[SessionRegistry] = None,
        reconciler: Optional[FieldReconciler] = None,
        cache_factory: Callable[[], DomainCache] = DomainCache,
    ):
        self.settings = settings or get_settings()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            timeout=self.settings.enrichment.provider_timeout_seconds,
            follow_redirects=True,
        )
        self.coordinator = coordinator or build_coordinator(self.settings, self.http)
        self.skip_list = skip_list if skip_list is not None else build_skip_list(self.settings)
        self.registry = registry or SessionRegistry()
        self.reconciler = reconciler or FieldReconciler()
        self.cache_factory = cache_factory

    async def __aenter__(self) -> "EnrichmentService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for session_id in self.registry.active_sessions:
            self.registry.cancel(session_id)
        if self._owns_http:
            await self.http.aclose()

    def start_session(
        self,
        rows: Sequence[Row],
        fields: Sequence[EnrichmentField],
        email_column: str,
        name_column: Optional[str] = None,
        concurrency: Optional[int] = None,
    ) -> EnrichmentSession:
        """New session over the batch; iterate its ``events()`` to run it."""
        enricher = RowEnricher(
            self.coordinator,
            reconciler=self.reconciler,
            cache=self.cache_factory(),
            skip_list=self.skip_list,
            row_timeout_seconds=self.settings.enrichment.row_timeout_seconds,
        )
        return EnrichmentSession(
            rows,
            fields,
            email_column,
            enricher,
            name_column=name_column,
            concurrency=concurrency or self.settings.enrichment.concurrent_rows,
            max_fields=self.settings.enrichment.max_fields,
            registry=self.registry,
        )

    def cancel(self, session_id: str) -> bool:
        return self.registry.cancel(session_id)

    def status(self) -> Dict[str, object]:
        return {
            "providers": provider_status(self.settings),
            "active_sessions": len(self.registry.active_sessions),
        }
