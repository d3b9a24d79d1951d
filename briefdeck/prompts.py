"""LLM prompts: single source of truth for scoring and extraction calls."""

JSON_SYSTEM_PROMPT = (
    "You are a precise news analyst. Always answer with a single JSON object and nothing else: "
    "no markdown fences, no commentary."
)

ENRICH_WITH_SCORE_PROMPT = """Analyze the article below and rate how relevant it is to the reader's interests.

## Reader interests
{criteria}

## Article title
{title}

## Article content
{content}

## Instructions
1. Write a neutral summary of 2-3 sentences.
2. List up to 5 short topic labels.
3. Extract named entities: people, companies, technologies.
4. Classify the overall sentiment as "positive", "negative" or "neutral".
5. Score relevance to the reader interests from 0 (irrelevant) to 100 (must read).
6. Explain the score in one sentence.

## Output (JSON)
{{
  "summary": "...",
  "topics": ["..."],
  "entities": {{"people": ["..."], "companies": ["..."], "technologies": ["..."]}},
  "sentiment": "neutral",
  "score": 0,
  "score_reasoning": "..."
}}"""

EMAIL_EXTRACT_PROMPT = """The email below is a newsletter. Extract up to 5 distinct news items from it.

## Subject
{subject}

## Content
{content}

## Instructions
- Each item needs a short title and a 2-3 sentence summary.
- Include the item's article URL when the email links to one, otherwise null.
- Skip ads, sponsor blocks, unsubscribe footers and housekeeping notes.

## Output (JSON)
{{"items": [{{"title": "...", "summary": "...", "url": "https://... or null"}}]}}"""

WEB_EXTRACT_PROMPT = """Extract news items from the web page text below.

## What to extract
{extraction_prompt}

## Page content
{page_content}

## Instructions
- Return at most 50 items, in page order.
- Each item needs a title, a short content summary and the link exactly as it appears on the page
  (links are shown in parentheses after their anchor text).
- Skip navigation, ads and items without a link.

## Output (JSON)
{{"items": [{{"title": "...", "content": "...", "link": "..."}}]}}"""


def build_effective_content(original: str | None, web_content: str | None) -> str:
    """Combine feed content with fetched article text for the scoring prompt."""
    if not web_content or not web_content.strip():
        return original or ""
    if original and original.strip() and len(original) < 500:
        return f"Original snippet:\n{original}\n\nFull article:\n{web_content}"
    return web_content
