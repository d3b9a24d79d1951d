"""Social-link fetcher: external link posts from a Reddit community."""

import asyncio
import logging
import re
import time
from datetime import datetime, timedelta, UTC

import httpx

from briefdeck.config import Settings, get_settings
from briefdeck.constants import (
    REDDIT_MEDIA_DOMAINS,
    REDDIT_OAUTH_URL,
    REDDIT_TOKEN_REFRESH_MARGIN,
    REDDIT_TOKEN_URL,
    REDDIT_URL_PREFIX,
)
from briefdeck.http_client import get_http_client
from briefdeck.models import Source, SourceType
from briefdeck.services.fetchers.base import (
    FetchedItem,
    FetchResult,
    SourceFetchError,
    SourceInvalidError,
    ValidationResult,
)
from briefdeck.utils import now_utc

logger = logging.getLogger(__name__)

COMMUNITY_NAME_RE = re.compile(r"^[A-Za-z0-9_]{2,21}$")


def extract_community(identifier: str | None) -> str | None:
    """Accept ``reddit://<name>`` or a bare ``<name>``."""
    if identifier is None or not identifier.strip():
        return None
    value = identifier.strip()
    if value.startswith(REDDIT_URL_PREFIX):
        value = value[len(REDDIT_URL_PREFIX):].strip()
    return value or None


def is_media_domain(domain: str | None) -> bool:
    return bool(domain) and domain.lower() in REDDIT_MEDIA_DOMAINS


def cutoff_time(since: datetime | None, max_age_hours: int, now: datetime | None = None) -> datetime:
    """The later of *since* and now minus the max post age."""
    max_age_cutoff = (now or now_utc()) - timedelta(hours=max_age_hours)
    if since is None:
        return max_age_cutoff
    return max(since, max_age_cutoff)


def post_to_item(post: dict) -> FetchedItem:
    published_at = datetime.fromtimestamp(int(post.get("created_utc") or 0), tz=UTC)
    subreddit = post.get("subreddit", "")
    author = post.get("author", "")
    score = int(post.get("score") or 0)
    comments = int(post.get("num_comments") or 0)
    url = post.get("url")
    title = post.get("title")
    return FetchedItem(
        guid=f"reddit:{post.get('name')}",
        title=title,
        link=url,
        author=f"u/{author}",
        published_at=published_at,
        raw_content=(
            f"Posted to r/{subreddit} by u/{author}\n"
            f"Score: {score} | Comments: {comments}\n"
            f"Link: {url}"
        ),
        clean_content=f"r/{subreddit}: {score} points, {comments} comments\n\n{title}\n{url}",
    )


def filter_posts(children: list[dict], cutoff: datetime) -> list[FetchedItem]:
    """Keep only fresh, external, safe-for-work link posts."""
    items: list[FetchedItem] = []
    for child in children:
        post = child.get("data") or {}
        if post.get("is_self") or post.get("stickied") or post.get("over_18"):
            continue
        if is_media_domain(post.get("domain")):
            continue
        item = post_to_item(post)
        if item.published_at < cutoff:
            continue
        items.append(item)
    return items


class SocialLinkFetcher:
    """Lists ``hot`` posts through the app-only OAuth API."""

    source_type = SourceType.SOCIAL_LINK

    def __init__(self, client: httpx.AsyncClient | None = None, settings: Settings | None = None):
        self._client = client
        self._settings = settings or get_settings()
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at - REDDIT_TOKEN_REFRESH_MARGIN:
                return self._token

            logger.debug("Refreshing Reddit access token")
            try:
                resp = await self.client.post(
                    REDDIT_TOKEN_URL,
                    data={"grant_type": "client_credentials"},
                    auth=(self._settings.reddit_client_id, self._settings.reddit_client_secret),
                    headers={"User-Agent": self._settings.reddit_user_agent},
                )
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPError as e:
                raise SourceFetchError(f"Failed to obtain Reddit access token: {e}") from e

            token = data.get("access_token")
            if not token:
                raise SourceFetchError("Reddit token response has no access_token")
            self._token = token
            self._token_expires_at = time.monotonic() + int(data.get("expires_in") or 3600)
            return token

    async def _list_posts(self, community: str, sort: str, limit: int) -> list[dict]:
        token = await self._access_token()
        try:
            resp = await self.client.get(
                f"{REDDIT_OAUTH_URL}/r/{community}/{sort}",
                params={"limit": limit, "raw_json": 1},
                headers={
                    "Authorization": f"Bearer {token}",
                    "User-Agent": self._settings.reddit_user_agent,
                },
            )
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Reddit request failed: {e}") from e

        if resp.status_code in (403, 404):
            raise SourceInvalidError(f"Community r/{community} not found or private (HTTP {resp.status_code})")
        if resp.status_code >= 400:
            raise SourceFetchError(f"Reddit API returned HTTP {resp.status_code}")

        data = resp.json().get("data") or {}
        return data.get("children") or []

    async def fetch(self, source: Source, since: datetime | None) -> FetchResult:
        community = extract_community(source.url)
        if community is None or not COMMUNITY_NAME_RE.match(community):
            raise SourceInvalidError(f"Invalid community identifier: {source.url}")

        children = await self._list_posts(community, "hot", self._settings.reddit_default_limit)
        if not children:
            logger.warning("Empty listing from Reddit API for r/%s", community)
        items = filter_posts(children, cutoff_time(since, self._settings.reddit_max_age_hours))
        logger.info("Fetched %d link posts from r/%s for source %s", len(items), community, source.id)
        return FetchResult(items=items)

    async def validate(self, identifier: str) -> ValidationResult:
        community = extract_community(identifier)
        if community is None:
            return ValidationResult.failed(
                "Invalid community format. Use reddit://<name> or just <name>"
            )
        if not COMMUNITY_NAME_RE.match(community):
            return ValidationResult.failed(
                "Invalid community name: must be 2-21 characters, alphanumeric and underscores only"
            )

        try:
            await self._list_posts(community, "hot", 1)
        except SourceFetchError as e:
            logger.warning("Failed to validate r/%s: %s", community, e)
            return ValidationResult.failed(f"Community not found or inaccessible: {community}")
        return ValidationResult.ok(title=f"r/{community}", description=f"Reddit community: {community}")
