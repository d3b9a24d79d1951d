"""Centralized application constants: single source of truth for hardcoded values."""

# --- HTTP Client ---
HTTP_TOTAL_TIMEOUT = 60  # seconds
HTTP_CONNECT_TIMEOUT = 10  # seconds
FEED_FETCH_TIMEOUT = 30  # seconds
WEB_PAGE_TIMEOUT = 30  # seconds
MAX_REDIRECTS = 5
MAX_RESPONSE_BYTES = 5 * 1024 * 1024

# --- Feeds ---
FEED_ACCEPT_HEADER = "application/rss+xml, application/atom+xml, application/xml;q=0.9, */*;q=0.8"

# --- Reddit API ---
REDDIT_OAUTH_URL = "https://oauth.reddit.com"
REDDIT_TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
REDDIT_URL_PREFIX = "reddit://"
REDDIT_TOKEN_REFRESH_MARGIN = 60  # seconds
REDDIT_MEDIA_DOMAINS = frozenset({
    "i.redd.it",
    "v.redd.it",
    "reddit.com",
    "www.reddit.com",
    "old.reddit.com",
    "new.reddit.com",
    "preview.redd.it",
    "i.imgur.com",
    "imgur.com",
})

# --- Anthropic ---
ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"
LMSTUDIO_PLACEHOLDER_KEY = "lm-studio"

# --- Sources ---
EMAIL_URL_PREFIX = "email://"
DEFAULT_REFRESH_MINUTES = {
    "FEED": 15,
    "SOCIAL_LINK": 30,
    "WEB": 60,
    "EMAIL": 0,
}

# --- Content limits ---
CONTENT_LENGTH_THRESHOLD = 2000  # chars; above this the source already carries full text
MAX_WEB_PAGE_CHARS = 100_000
MAX_LLM_CONTENT_CHARS = 4000
MAX_ERROR_LENGTH = 1024
MAX_TITLE_LENGTH = 1024
MAX_LINK_LENGTH = 4096

# --- Worker ---
ARQ_JOB_TIMEOUT = 300  # seconds
FETCH_QUEUE_NAME = "briefdeck:fetch"
PROCESSING_QUEUE_NAME = "briefdeck:processing"
DEFAULT_QUEUE_NAME = "briefdeck:default"

# --- Briefs ---
DAILY_LOOKBACK_DAYS = 1
WEEKLY_LOOKBACK_DAYS = 7
