"""Shared fixtures and provider test doubles for fire-enrich tests."""

import asyncio
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from fire_enrich.core.config import (
    ApifyConfig,
    ApolloConfig,
    EnrichmentConfig,
    ExploriumConfig,
    ResearchConfig,
    Settings,
    SnovConfig,
)
from fire_enrich.core.models import (
    CompanyRecord,
    DomainSearchResult,
    EmailVerification,
    EnrichmentField,
    Executive,
    LinkedinPost,
    PersonRecord,
    Prospect,
    SignalReport,
)
from fire_enrich.intelligence.discovery import DiscoveryCoordinator


async def no_sleep(seconds: float) -> None:
    """Retry and poll delays are skipped in tests."""
    return None


class CallLog:
    """Records provider calls in the order they start and finish."""

    def __init__(self):
        self.events: List[str] = []

    def start(self, name: str, key: str) -> None:
        self.events.append(f"start:{name}:{key}")

    def finish(self, name: str, key: str) -> None:
        self.events.append(f"finish:{name}:{key}")

    def calls(self, name: Optional[str] = None) -> List[str]:
        prefix = f"start:{name}:" if name else "start:"
        return [e for e in self.events if e.startswith(prefix)]


class FakeApollo:
    """Apollo double answering from canned dicts keyed by domain / email."""

    def __init__(
        self,
        log: CallLog,
        companies: Optional[Dict[str, CompanyRecord]] = None,
        people: Optional[Dict[str, PersonRecord]] = None,
        executives: Optional[List[Executive]] = None,
        delay: float = 0.0,
    ):
        self.log = log
        self.companies = companies or {}
        self.people = people or {}
        self.executives = executives or []
        self.delay = delay

    async def enrich(self, hints, cancel_token=None):
        self.log.start("apollo", hints.domain or "")
        await asyncio.sleep(self.delay)
        self.log.finish("apollo", hints.domain or "")
        return self.companies.get(hints.domain)

    async def match(self, email, cancel_token=None):
        self.log.start("apollo_match", email)
        return self.people.get(email)

    async def search_executives(self, domain=None, name=None, titles=None, limit=15, cancel_token=None):
        self.log.start("apollo_executives", domain or name or "")
        return list(self.executives)


class FakeSnov:
    def __init__(
        self,
        log: CallLog,
        searches: Optional[Dict[str, DomainSearchResult]] = None,
        verification_status: str = "valid",
    ):
        self.log = log
        self.searches = searches or {}
        self.verification_status = verification_status

    async def domain_search(self, domain, cancel_token=None):
        self.log.start("snov", domain)
        return self.searches.get(domain)

    async def verify_email(self, email, cancel_token=None):
        self.log.start("snov_verify", email)
        return EmailVerification(email=email, status=self.verification_status)


class FakeExplorium:
    def __init__(self, log: CallLog, companies: Optional[Dict[str, CompanyRecord]] = None):
        self.log = log
        self.companies = companies or {}

    async def enrich(self, hints, cancel_token=None):
        self.log.start("explorium", hints.domain or "")
        return self.companies.get(hints.domain)


class FakeWeb:
    def __init__(self, log: CallLog, reports: Optional[Dict[str, SignalReport]] = None):
        self.log = log
        self.reports = reports or {}

    async def research(self, request, cancel_token=None):
        self.log.start("web", request.company_domain)
        return self.reports.get(request.company_domain)


class FakeApify:
    def __init__(self, log: CallLog, posts: Optional[Dict[str, List[LinkedinPost]]] = None):
        self.log = log
        self.posts = posts or {}

    async def recent_posts(self, urls, limit=None, cancel_token=None):
        self.log.start("apify", urls[0])
        return list(self.posts.get(urls[0], []))


class UnreachableProvider:
    """Every lookup fails the way a real adapter reports failure."""

    def __init__(self, log: CallLog, name: str):
        self.log = log
        self.name = name

    async def enrich(self, hints, cancel_token=None):
        self.log.start(self.name, hints.domain or "")
        return None

    async def domain_search(self, domain, cancel_token=None):
        self.log.start(self.name, domain)
        return None

    async def verify_email(self, email, cancel_token=None):
        self.log.start(f"{self.name}_verify", email)
        return None

    async def research(self, request, cancel_token=None):
        self.log.start(self.name, request.company_domain)
        return None

    async def match(self, email, cancel_token=None):
        return None

    async def search_executives(self, domain=None, name=None, titles=None, limit=15, cancel_token=None):
        return []

    async def recent_posts(self, urls, limit=None, cancel_token=None):
        return []


@pytest.fixture
def call_log() -> CallLog:
    return CallLog()


@pytest.fixture
def acme_record() -> CompanyRecord:
    return CompanyRecord(
        provider="apollo",
        name="Acme Corporation",
        domain="acme.com",
        industry="Manufacturing",
        country="United States",
        competitors=["Globex", "Initech"],
        linkedin_url="https://www.linkedin.com/company/acme",
        technologies=["Salesforce", "HubSpot"],
    )


@pytest.fixture
def acme_report() -> SignalReport:
    return SignalReport.model_validate(
        {
            "company_name": "Acme Corporation",
            "search_date": "2024-05-01",
            "data_freshness": "last_30d",
            "overall_signal_strength": "high",
            "priority_signals": [
                {
                    "signal_id": "1",
                    "signal_name": "funding",
                    "category": "market",
                    "weight": 5,
                    "date": "2024-04-20",
                    "title": "Acme raises Series B",
                    "description": "Acme closed a $40M Series B.",
                    "source_url": "https://news.example.com/acme-series-b",
                    "confidence": "high",
                    "recommended_action": "Congratulate on the round",
                },
                {
                    "signal_id": "2",
                    "signal_name": "hiring",
                    "category": "organizational",
                    "weight": 3,
                    "date": "2024-04-02",
                    "title": "Acme hiring 20 engineers",
                    "source_url": "https://jobs.example.com/acme",
                },
            ],
            "total_signals_found": 4,
            "key_insights": "Growing fast after new funding.",
            "personalization_hooks": ["Series B announcement", "Engineering expansion"],
        }
    )


@pytest.fixture
def coordinator_factory(call_log) -> Callable[..., DiscoveryCoordinator]:
    """Coordinator over fakes; pass overrides for any provider slot."""

    def build(**overrides) -> DiscoveryCoordinator:
        providers = {
            "apollo": FakeApollo(call_log),
            "snov": FakeSnov(call_log),
            "explorium": FakeExplorium(call_log),
            "web": FakeWeb(call_log),
            "apify": FakeApify(call_log),
        }
        providers.update(overrides)
        return DiscoveryCoordinator(**providers)

    return build


@pytest.fixture
def unreachable_coordinator(call_log) -> DiscoveryCoordinator:
    return DiscoveryCoordinator(
        apollo=UnreachableProvider(call_log, "apollo"),
        snov=UnreachableProvider(call_log, "snov"),
        explorium=UnreachableProvider(call_log, "explorium"),
        web=UnreachableProvider(call_log, "web"),
        apify=UnreachableProvider(call_log, "apify"),
    )


@pytest.fixture
def company_fields() -> List[EnrichmentField]:
    return [
        EnrichmentField(name="companyName", display_name="Company Name"),
        EnrichmentField(name="prioritySignals", display_name="Priority Signals", type="array"),
    ]


def json_transport(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def prospects() -> List[Prospect]:
    return [
        Prospect(first_name="Jane", last_name="Doe", position="CTO", email="jane@acme.com"),
        Prospect(first_name="John", last_name="Roe", position="CFO"),
    ]


def offline_settings(**overrides) -> Settings:
    """Settings with every provider credential cleared, whatever the environment holds."""
    components = {
        "apollo": ApolloConfig(APOLLO_API_KEY=None),
        "snov": SnovConfig(SNOV_CLIENT_ID=None, SNOV_CLIENT_SECRET=None),
        "explorium": ExploriumConfig(EXPLORIUM_API_KEY=None),
        "apify": ApifyConfig(APIFY_TOKEN=None),
        "research": ResearchConfig(AZURE_OPENAI_API_KEY=None, OPENAI_API_KEY=None),
        "enrichment": EnrichmentConfig(SKIP_LIST_PATH=None, MAX_FIELDS=10, CONCURRENT_ROWS=2),
    }
    components.update(overrides)
    return Settings(**components)
