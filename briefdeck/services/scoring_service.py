"""Multi-provider LLM scoring and extraction: uses centralized prompts and constants.

All providers use the OpenAI-compatible chat completions format, except
Anthropic which needs a thin adapter. ``provider = "mock"`` returns
deterministic results without network calls.
"""

import json
import logging
import re
import zlib
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator

from briefdeck.config import Settings, get_settings
from briefdeck.constants import (
    ANTHROPIC_API_URL,
    ANTHROPIC_API_VERSION,
    LMSTUDIO_PLACEHOLDER_KEY,
    MAX_LLM_CONTENT_CHARS,
    MAX_WEB_PAGE_CHARS,
)
from briefdeck.http_client import get_http_client
from briefdeck.prompts import (
    EMAIL_EXTRACT_PROMPT,
    ENRICH_WITH_SCORE_PROMPT,
    JSON_SYSTEM_PROMPT,
    WEB_EXTRACT_PROMPT,
    build_effective_content,
)
from briefdeck.utils import truncate

logger = logging.getLogger(__name__)

MAX_EMAIL_CHARS = 8000
MAX_EMAIL_ITEMS = 5
MAX_WEB_ITEMS = 50

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class ScoringError(Exception):
    """Raised when an LLM call or its response parsing fails.

    ``retryable`` is False for failures another attempt cannot fix, such as
    a rejected API key.
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class Entities(BaseModel):
    people: list[str] = Field(default_factory=list)
    companies: list[str] = Field(default_factory=list)
    technologies: list[str] = Field(default_factory=list)


class ScoreResult(BaseModel):
    summary: str = ""
    topics: list[str] = Field(default_factory=list)
    entities: Entities = Field(default_factory=Entities)
    sentiment: str | None = None
    score: int | None = None
    score_reasoning: str | None = Field(default=None, alias="scoreReasoning")

    model_config = {"populate_by_name": True}

    @field_validator("score", mode="before")
    @classmethod
    def _score_in_range(cls, v: Any) -> int | None:
        """Anything that is not a number in 0..100 is treated as no score."""
        if v is None or isinstance(v, bool):
            return None
        try:
            score = int(round(float(v)))
        except (TypeError, ValueError):
            return None
        return score if 0 <= score <= 100 else None

    def tags(self) -> dict[str, Any]:
        return {
            "topics": self.topics,
            "people": self.entities.people,
            "companies": self.entities.companies,
            "technologies": self.entities.technologies,
            "sentiment": self.sentiment,
        }


class ExtractedEmailItem(BaseModel):
    title: str
    summary: str = ""
    url: str | None = None


class ExtractedWebItem(BaseModel):
    title: str = ""
    content: str = ""
    link: str | None = None


class Scorer(Protocol):
    """Scoring / extraction collaborator used by the workers."""

    async def enrich_with_score(
        self, title: str, content: str | None, web_content: str | None, criteria: str
    ) -> ScoreResult: ...

    async def extract_from_email(self, subject: str, content: str) -> list[ExtractedEmailItem]: ...

    async def extract_from_web(self, page_content: str, extraction_prompt: str) -> list[ExtractedWebItem]: ...


def extract_json(text: str) -> Any:
    """Parse the first JSON object or array in an LLM reply (code fences tolerated)."""
    fenced = _FENCE_RE.search(text)
    candidate = fenced.group(1).strip() if fenced else text.strip()
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    starts = [i for i in (candidate.find("{"), candidate.find("[")) if i != -1]
    if not starts:
        raise ScoringError("LLM response contains no JSON")
    start = min(starts)
    end = max(candidate.rfind("}"), candidate.rfind("]"))
    try:
        return json.loads(candidate[start:end + 1])
    except json.JSONDecodeError as e:
        raise ScoringError(f"Failed to parse LLM response: {e}") from e


def _items_payload(data: Any) -> list[dict]:
    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise ScoringError("LLM response has no item list")
    return [entry for entry in data if isinstance(entry, dict)]


class LLMScorer:
    """Calls the configured LLM provider over HTTP."""

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._client = client

    async def enrich_with_score(
        self, title: str, content: str | None, web_content: str | None, criteria: str
    ) -> ScoreResult:
        logger.debug("Enriching and scoring article: %s", title)
        prompt = ENRICH_WITH_SCORE_PROMPT.format(
            criteria=criteria or "(no specific interests given)",
            title=title or "(untitled)",
            content=truncate(build_effective_content(content, web_content), MAX_LLM_CONTENT_CHARS),
        )
        data = extract_json(await self.complete(JSON_SYSTEM_PROMPT, prompt))
        if not isinstance(data, dict):
            raise ScoringError("LLM response is not a JSON object")
        try:
            return ScoreResult.model_validate(data)
        except ValidationError as e:
            raise ScoringError(f"Invalid scoring response: {e}") from e

    async def extract_from_email(self, subject: str, content: str) -> list[ExtractedEmailItem]:
        logger.debug("Extracting news items from email: %s", subject)
        prompt = EMAIL_EXTRACT_PROMPT.format(subject=subject or "", content=truncate(content, MAX_EMAIL_CHARS))
        entries = _items_payload(extract_json(await self.complete(JSON_SYSTEM_PROMPT, prompt)))
        try:
            return [ExtractedEmailItem.model_validate(e) for e in entries[:MAX_EMAIL_ITEMS]]
        except ValidationError as e:
            raise ScoringError(f"Invalid email extraction response: {e}") from e

    async def extract_from_web(self, page_content: str, extraction_prompt: str) -> list[ExtractedWebItem]:
        logger.debug("Extracting news items from web page with prompt: %s", truncate(extraction_prompt, 100))
        prompt = WEB_EXTRACT_PROMPT.format(
            extraction_prompt=extraction_prompt,
            page_content=truncate(page_content, MAX_WEB_PAGE_CHARS),
        )
        entries = _items_payload(extract_json(await self.complete(JSON_SYSTEM_PROMPT, prompt)))
        try:
            return [ExtractedWebItem.model_validate(e) for e in entries[:MAX_WEB_ITEMS]]
        except ValidationError as e:
            raise ScoringError(f"Invalid web extraction response: {e}") from e

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Dispatch one chat completion to the configured provider."""
        provider = self.settings.llm_provider
        if provider == "openai" or provider == "lmstudio":
            return await self._call_openai_compatible(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                base_url=self.settings.openai_base_url if provider == "openai" else self.settings.lmstudio_url,
                api_key=self.settings.openai_api_key if provider == "openai" else LMSTUDIO_PLACEHOLDER_KEY,
                model=self.settings.openai_model if provider == "openai" else None,
            )
        elif provider == "anthropic":
            return await self._call_anthropic(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                api_key=self.settings.anthropic_api_key,
                model=self.settings.anthropic_model,
            )
        else:
            raise ScoringError(f"Unknown LLM provider: {provider}")

    async def _post(self, label: str, url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        """POST one request to a provider; every failure becomes a ScoringError."""
        client = self._client or get_http_client()
        timeout = self.settings.llm_timeout
        try:
            resp = await client.post(url, json=payload, headers=headers, timeout=timeout)
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException as e:
            logger.warning("%s timed out after %ss", label, timeout)
            raise ScoringError(f"{label} timed out after {timeout}s") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("%s HTTP error: %s - %s", label, status, e.response.text[:500])
            # Only 429 and 5xx are worth retrying
            raise ScoringError(f"{label} error: HTTP {status}", retryable=status == 429 or status >= 500) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("%s error: %s", label, e)
            raise ScoringError(f"{label} call failed: {e}") from e

    async def _call_openai_compatible(
        self,
        system_prompt: str,
        user_prompt: str,
        base_url: str,
        api_key: str,
        model: str | None = None,
    ) -> str:
        """Call an OpenAI-compatible chat completions endpoint (OpenAI, LM Studio)."""
        url = f"{base_url.rstrip('/')}/v1/chat/completions"
        if "/v1/v1/" in url:
            url = f"{base_url.rstrip('/')}/chat/completions"

        payload: dict[str, Any] = {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.settings.llm_temperature,
            "max_tokens": self.settings.llm_max_tokens,
            "stream": False,
        }
        if model:
            payload["model"] = model

        headers = {"Content-Type": "application/json"}
        if api_key and api_key != LMSTUDIO_PLACEHOLDER_KEY:
            headers["Authorization"] = f"Bearer {api_key}"

        data = await self._post("LLM", url, payload, headers)
        choices = data.get("choices") or []
        content = choices[0].get("message", {}).get("content", "") if choices else ""
        if not content:
            raise ScoringError("LLM returned empty response")
        return content

    async def _call_anthropic(self, system_prompt: str, user_prompt: str, api_key: str, model: str) -> str:
        payload = {
            "model": model,
            "max_tokens": self.settings.llm_max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }

        data = await self._post("Anthropic", ANTHROPIC_API_URL, payload, headers)
        text = "".join(block.get("text", "") for block in data.get("content") or [] if block.get("type", "text") == "text")
        if not text:
            raise ScoringError("Anthropic returned empty response")
        return text


class MockScorer:
    """Deterministic results for local development and tests."""

    async def enrich_with_score(
        self, title: str, content: str | None, web_content: str | None, criteria: str
    ) -> ScoreResult:
        title = title or ""
        logger.debug("Mock enriching and scoring article: %s (web content %s)", title, "present" if web_content else "absent")
        return ScoreResult(
            summary=(
                f"This is a mock summary for: {title}. "
                "The article discusses relevant topics. It provides important information for readers."
            ),
            topics=["Technology", "News"],
            sentiment="neutral",
            score=zlib.crc32(title.encode("utf-8")) % 101,
            score_reasoning="Mock relevance score based on content analysis against briefing criteria.",
        )

    async def extract_from_email(self, subject: str, content: str) -> list[ExtractedEmailItem]:
        return [
            ExtractedEmailItem(
                title=f"Mock: {subject}",
                summary=f"This is a mock extraction from the email about {subject}.",
            )
        ]

    async def extract_from_web(self, page_content: str, extraction_prompt: str) -> list[ExtractedWebItem]:
        return [
            ExtractedWebItem(
                title="Mock Web Item 1",
                content="This is a mock extraction from the web page.",
                link="https://example.com/article/1",
            ),
            ExtractedWebItem(
                title="Mock Web Item 2",
                content="Another mock item extracted from the web page.",
                link="/article/2",
            ),
        ]


def get_scorer(settings: Settings | None = None) -> Scorer:
    """Build the scorer for the configured provider."""
    settings = settings or get_settings()
    if settings.llm_provider == "mock":
        return MockScorer()
    return LLMScorer(settings)
