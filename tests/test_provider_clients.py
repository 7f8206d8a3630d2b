"""Provider adapters against httpx.MockTransport: parsing, retries and never-throw."""

import json

import httpx
import pytest

from conftest import json_transport, no_sleep
from fire_enrich.core.config import ApifyConfig, ApolloConfig, ExploriumConfig, SnovConfig
from fire_enrich.core.models import IdentityHints
from fire_enrich.data.apify_client import ApifyClient, parse_post
from fire_enrich.data.apollo_client import ApolloClient
from fire_enrich.data.base import parse_retry_after
from fire_enrich.data.explorium_client import ExploriumClient
from fire_enrich.data.snov_client import SnovClient
from fire_enrich.utils.reliability import CancellationToken, RetryPolicy


def fast_policy(name: str) -> RetryPolicy:
    return RetryPolicy(name, sleep=no_sleep)


class TestParseRetryAfter:
    def test_seconds_and_garbage(self):
        assert parse_retry_after("3") == 3.0
        assert parse_retry_after(None) is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


class TestApolloClient:
    """Apollo company match, person match and executive search."""

    def setup_method(self):
        self.config = ApolloConfig(APOLLO_API_KEY="apollo-key", APOLLO_BASE_URL="https://apollo.test")
        self.hints = IdentityHints(email="jane@acme.com", domain="acme.com")

    @pytest.mark.asyncio
    async def test_enrich_parses_organization(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "organizations": [
                        {
                            "name": "Acme Corporation",
                            "primary_domain": "www.acme.com",
                            "industry": "manufacturing",
                            "country": "United States",
                            "linkedin_url": "https://www.linkedin.com/company/acme",
                            "current_technologies": [{"name": "Salesforce"}, "HubSpot"],
                        }
                    ]
                },
            )

        async with json_transport(handler) as http:
            client = ApolloClient(http, self.config, retry_policy=fast_policy("apollo"))
            record = await client.enrich(self.hints)

        assert record.name == "Acme Corporation"
        assert record.domain == "acme.com"
        assert record.technologies == ["Salesforce", "HubSpot"]
        assert seen[0].headers["x-api-key"] == "apollo-key"
        assert seen[0].url.path == "/api/v1/mixed_companies/search"
        assert json.loads(seen[0].content)["q_organization_domains"] == "acme.com"

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self):
        responses = [
            httpx.Response(429, headers={"Retry-After": "1"}),
            httpx.Response(200, json={"organizations": [{"name": "Acme", "primary_domain": "acme.com"}]}),
        ]

        def handler(request):
            return responses.pop(0)

        async with json_transport(handler) as http:
            client = ApolloClient(http, self.config, retry_policy=fast_policy("apollo"))
            record = await client.enrich(self.hints)

        assert record is not None and record.name == "Acme"
        assert responses == []

    @pytest.mark.asyncio
    async def test_failures_return_none(self):
        """Server errors, bad bodies and transport errors never reach the caller."""

        def server_error(request):
            return httpx.Response(500, json={"error": "boom"})

        def not_json(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        def transport_error(request):
            raise httpx.ConnectError("unreachable", request=request)

        for handler in (server_error, not_json, transport_error):
            async with json_transport(handler) as http:
                client = ApolloClient(http, self.config, retry_policy=fast_policy("apollo"))
                assert await client.enrich(self.hints) is None
                assert await client.match("jane@acme.com") is None
                assert await client.search_executives(domain="acme.com") == []

    @pytest.mark.asyncio
    async def test_match_never_requests_phone_numbers(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "person": {
                        "first_name": "Jane",
                        "last_name": "Doe",
                        "title": "VP Sales",
                        "linkedin_url": "https://www.linkedin.com/in/janedoe",
                        "organization": {"name": "Acme"},
                        "city": "Austin",
                        "country": "United States",
                    }
                },
            )

        async with json_transport(handler) as http:
            person = await ApolloClient(http, self.config).match("jane@acme.com")

        assert person.name == "Jane Doe"
        assert person.organization_name == "Acme"
        assert person.location == "Austin, United States"
        assert seen[0].url.params["reveal_phone_number"] == "false"

    @pytest.mark.asyncio
    async def test_search_executives_drops_incomplete_people(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "people": [
                        {"name": "Ann Lee", "title": "CEO", "departments": ["executive"]},
                        {"name": "No Title"},
                        {"first_name": "Bo", "last_name": "Kim", "title": "CTO"},
                    ]
                },
            )

        async with json_transport(handler) as http:
            executives = await ApolloClient(http, self.config).search_executives(domain="acme.com", limit=5)

        assert [e.name for e in executives] == ["Ann Lee", "Bo Kim"]
        assert executives[0].department == "executive"


class TestSnovClient:
    """Snov OAuth, domain search polling and email verification."""

    def setup_method(self):
        self.config = SnovConfig(
            SNOV_CLIENT_ID="id",
            SNOV_CLIENT_SECRET="secret",
            SNOV_BASE_URL="https://snov.test",
            SNOV_POLL_ATTEMPTS=3,
        )

    def _client(self, http):
        return SnovClient(http, self.config, retry_policy=fast_policy("snov"), sleep=no_sleep)

    @pytest.mark.asyncio
    async def test_domain_search_polls_until_data(self):
        polls = []

        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/v1/oauth/access_token":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            assert request.headers["Authorization"] == "Bearer tok"
            if path == "/v2/domain-search/start":
                return httpx.Response(200, json={"meta": {"task_hash": "abc"}})
            if path == "/v2/domain-search/result/abc":
                polls.append(path)
                if len(polls) < 2:
                    return httpx.Response(200, json={"data": {}})
                return httpx.Response(
                    200,
                    json={
                        "data": {
                            "company_name": "Acme Corporation",
                            "website": "https://acme.com",
                            "industry": "Manufacturing",
                            "emails": [{"email": "a@acme.com"}, {"email": "b@acme.com"}],
                            "prospects": [{"first_name": "Jane", "position": "CTO"}],
                        }
                    },
                )
            return httpx.Response(404)

        async with json_transport(handler) as http:
            client = self._client(http)
            result = await client.domain_search("www.acme.com")

        assert len(polls) == 2
        assert result.company.name == "Acme Corporation"
        assert result.company.domain == "acme.com"
        assert result.emails_count == 2
        assert result.prospects[0].position == "CTO"
        assert client.token_cache.refresh_count == 1

    @pytest.mark.asyncio
    async def test_enrich_returns_company_record(self):
        def handler(request):
            if request.url.path == "/v1/oauth/access_token":
                return httpx.Response(200, json={"access_token": "tok"})
            if request.url.path == "/v2/domain-search/start":
                return httpx.Response(200, json={"meta": {"task_hash": "abc"}})
            return httpx.Response(200, json={"data": {"company_name": "Acme", "website": "acme.com"}})

        async with json_transport(handler) as http:
            record = await self._client(http).enrich(IdentityHints(email="jane@acme.com", domain="acme.com"))

        assert record.provider == "snov"
        assert record.name == "Acme"

    @pytest.mark.asyncio
    async def test_domain_search_without_data_returns_none(self):
        def handler(request):
            if request.url.path == "/v1/oauth/access_token":
                return httpx.Response(200, json={"access_token": "tok"})
            if request.url.path == "/v2/domain-search/start":
                return httpx.Response(200, json={"meta": {"task_hash": "abc"}})
            return httpx.Response(200, json={"data": {}})

        async with json_transport(handler) as http:
            assert await self._client(http).domain_search("acme.com") is None

    @pytest.mark.asyncio
    async def test_verify_email(self):
        def handler(request):
            if request.url.path == "/v1/oauth/access_token":
                return httpx.Response(200, json={"access_token": "tok"})
            if request.url.path == "/v2/email-verification/start":
                assert b"emails%5B%5D=jane%40acme.com" in request.content
                return httpx.Response(200, json={"data": {"task_hash": "v1"}})
            assert request.url.params["task_hash"] == "v1"
            return httpx.Response(
                200,
                json={
                    "status": "completed",
                    "data": [
                        {
                            "email": "jane@acme.com",
                            "result": {"smtp_status": "valid", "is_webmail": False},
                        }
                    ],
                },
            )

        async with json_transport(handler) as http:
            verification = await self._client(http).verify_email("jane@acme.com")

        assert verification.status == "valid"
        assert verification.details == {"is_webmail": False}

    @pytest.mark.asyncio
    async def test_auth_failure_returns_none(self):
        def handler(request):
            return httpx.Response(401, json={"error": "invalid_client"})

        async with json_transport(handler) as http:
            client = self._client(http)
            assert await client.domain_search("acme.com") is None
            assert await client.verify_email("jane@acme.com") is None

    @pytest.mark.asyncio
    async def test_unauthorized_call_refreshes_token_and_recovers(self):
        issued = []
        seen = []

        def handler(request):
            if request.url.path == "/v1/oauth/access_token":
                issued.append(f"tok{len(issued) + 1}")
                return httpx.Response(200, json={"access_token": issued[-1], "expires_in": 3600})
            seen.append(request.headers["Authorization"])
            if request.headers["Authorization"] == "Bearer tok1":
                return httpx.Response(401)
            if request.url.path == "/v2/domain-search/start":
                return httpx.Response(200, json={"meta": {"task_hash": "abc"}})
            return httpx.Response(200, json={"data": {"company_name": "Acme", "website": "acme.com"}})

        async with json_transport(handler) as http:
            client = self._client(http)
            result = await client.domain_search("acme.com")

        assert result.company.name == "Acme"
        assert client.token_cache.refresh_count == 2
        assert seen[:2] == ["Bearer tok1", "Bearer tok2"]
        assert "Bearer tok1" not in seen[2:]

    @pytest.mark.asyncio
    async def test_persistent_unauthorized_gives_up_after_one_refresh(self):
        data_calls = []

        def handler(request):
            if request.url.path == "/v1/oauth/access_token":
                return httpx.Response(200, json={"access_token": "tok"})
            data_calls.append(request.url.path)
            return httpx.Response(401)

        async with json_transport(handler) as http:
            client = self._client(http)
            assert await client.domain_search("acme.com") is None

        assert data_calls == ["/v2/domain-search/start", "/v2/domain-search/start"]
        assert client.token_cache.refresh_count == 2

    @pytest.mark.asyncio
    async def test_cancelled_token_skips_work(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(200, json={"access_token": "tok"})

        token = CancellationToken()
        token.cancel()
        async with json_transport(handler) as http:
            assert await self._client(http).domain_search("acme.com", token) is None
        assert "/v2/domain-search/start" not in calls


class TestExploriumClient:
    @pytest.mark.asyncio
    async def test_enrich_reads_nested_payload(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "data": [
                        {
                            "company_name": "Acme Corporation",
                            "company_domain": "acme.com",
                            "company_industry": "Manufacturing",
                            "company_competitors": ["Globex"],
                        }
                    ]
                },
            )

        config = ExploriumConfig(EXPLORIUM_API_KEY="ex-key", EXPLORIUM_BASE_URL="https://explorium.test")
        async with json_transport(handler) as http:
            record = await ExploriumClient(http, config).enrich(
                IdentityHints(email="jane@acme.com", domain="acme.com", name="Acme")
            )

        assert record.provider == "explorium"
        assert record.competitors == ["Globex"]
        assert seen[0].headers["X-API-KEY"] == "ex-key"
        body = json.loads(seen[0].content)
        assert body["domain"] == "acme.com" and body["name"] == "Acme"


class TestApifyClient:
    def test_parse_post_sums_engagement(self):
        post = parse_post(
            {
                "url": "https://www.linkedin.com/posts/1",
                "text": "We are hiring",
                "postedAt": "2024-04-02T10:00:00Z",
                "numLikes": 10,
                "numComments": 2,
                "numShares": 1,
                "author": {"name": "Acme"},
            }
        )
        assert post.engagement_total == 13
        assert post.author == "Acme"
        assert parse_post({"text": "no url"}) is None

    @pytest.mark.asyncio
    async def test_recent_posts(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json=[
                    {"url": "https://www.linkedin.com/posts/1", "likes": 3},
                    {"url": "https://www.linkedin.com/posts/2", "likes": 1},
                    {"text": "missing url"},
                ],
            )

        config = ApifyConfig(APIFY_TOKEN="apify-token", APIFY_BASE_URL="https://apify.test")
        async with json_transport(handler) as http:
            posts = await ApifyClient(http, config).recent_posts(
                ["https://www.linkedin.com/company/acme"], limit=5
            )

        assert [p.likes for p in posts] == [3, 1]
        assert seen[0].url.params["token"] == "apify-token"
        assert json.loads(seen[0].content)["limitPerSource"] == 5

    @pytest.mark.asyncio
    async def test_failure_returns_empty_list(self):
        def handler(request):
            return httpx.Response(502)

        config = ApifyConfig(APIFY_TOKEN="t", APIFY_BASE_URL="https://apify.test")
        async with json_transport(handler) as http:
            client = ApifyClient(http, config, retry_policy=fast_policy("apify"))
            assert await client.recent_posts(["https://www.linkedin.com/company/acme"]) == []
