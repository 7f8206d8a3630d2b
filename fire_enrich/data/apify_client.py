"""Apify adapter for the LinkedIn post scraper actor."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog

from fire_enrich.core.config import ApifyConfig
from fire_enrich.core.models import LinkedinPost
from fire_enrich.data.base import ProviderClient, as_text, first_present
from fire_enrich.utils.reliability import CancellationToken, RetryPolicy

logger = structlog.get_logger(__name__)


def _count(item: Dict[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        value = item.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return int(value)
    return None


def parse_post(item: Dict[str, Any]) -> Optional[LinkedinPost]:
    post_url = as_text(first_present(item, "url", "post_url", "postUrl"))
    if not post_url:
        return None
    likes = _count(item, "likes", "likeCount", "numLikes")
    comments = _count(item, "comments", "commentCount", "numComments")
    reshares = _count(item, "reshares", "shareCount", "numShares")
    author = item.get("author")
    if isinstance(author, dict):
        author = first_present(author, "name", "username")
    return LinkedinPost(
        post_url=post_url,
        text=as_text(first_present(item, "text", "content", "body")),
        published_at=as_text(first_present(item, "publishedAt", "postedAt", "date", "published_time")),
        likes=likes,
        comments=comments,
        reshares=reshares,
        author=as_text(author or first_present(item, "username", "profileName")),
        profile_url=as_text(first_present(item, "profileUrl", "profile_url", "authorProfileUrl")),
        engagement_total=sum(v for v in (likes, comments, reshares) if v is not None),
    )


class ApifyClient(ProviderClient):
    """Runs the scraper synchronously and reads the resulting dataset items."""

    provider_name = "apify"

    def __init__(
        self,
        http: httpx.AsyncClient,
        config: ApifyConfig,
        timeout: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(
            http,
            config.base_url,
            timeout,
            retry_policy or RetryPolicy("apify", max_attempts=2, rate_limit_attempts=3),
        )
        self._token = config.token or ""
        self.actor = config.actor
        self.posts_limit = config.posts_limit

    async def recent_posts(
        self,
        urls: List[str],
        limit: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[LinkedinPost]:
        """Recent posts for profile or company URLs. Returns [] on failure."""
        urls = [u for u in urls if u]
        if not urls:
            return []
        posts = await self._absorb(
            "recent_posts", self._recent_posts(urls, limit or self.posts_limit, cancel_token)
        )
        return posts or []

    async def _recent_posts(
        self, urls: List[str], limit: int, cancel_token: Optional[CancellationToken]
    ) -> List[LinkedinPost]:
        payload = await self._request(
            "POST",
            f"/v2/acts/{self.actor}/run-sync-get-dataset-items",
            params={"token": self._token},
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            json={"urls": urls, "limitPerSource": limit, "deepScrape": True, "rawData": False},
            cancel_token=cancel_token,
        )
        items = payload.get("items") if isinstance(payload, dict) else payload
        posts = [
            post
            for post in (parse_post(item) for item in items or [] if isinstance(item, dict))
            if post is not None
        ]
        logger.debug("LinkedIn posts retrieved", posts=len(posts), sources=len(urls))
        return posts[: limit * len(urls)]
