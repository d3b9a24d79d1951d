"""Canonical URL forms used for dedup and link resolution."""

import logging
from urllib.parse import unquote, urljoin, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

TRACKING_PARAMS = frozenset({
    "ref",
    "fbclid",
    "gclid",
    "msclkid",
    "mc_cid",
    "mc_eid",
})


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered.startswith("utm_") or lowered in TRACKING_PARAMS


def normalize(url: str | None) -> str | None:
    """Return the canonical form of *url*.

    Lowercases the host, strips the trailing slash (a bare ``/`` path is
    kept) and drops tracking query parameters while keeping the others in
    order. Port and fragment are preserved. Blank input comes back unchanged;
    input that cannot be parsed comes back trimmed.
    """
    if url is None or not url.strip():
        return url

    trimmed = url.strip()
    try:
        parts = urlsplit(trimmed)
        # Accessing .port validates it
        parts.port
    except ValueError:
        return trimmed

    if not parts.scheme or not parts.netloc:
        return trimmed

    netloc = parts.netloc
    userinfo, _, hostport = netloc.rpartition("@")
    netloc = f"{userinfo}@{hostport.lower()}" if userinfo else hostport.lower()

    path = parts.path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = parts.query
    if query:
        # Raw segments are kept verbatim so encoding of other params is untouched
        kept = [
            segment for segment in query.split("&")
            if segment and not _is_tracking_param(unquote(segment.partition("=")[0]))
        ]
        query = "&".join(kept)

    return urlunsplit((parts.scheme.lower(), netloc, path, query, parts.fragment))


def resolve_relative(base: str | None, ref: str | None) -> str | None:
    """Resolve a link found on *base* into an absolute URL.

    Absolute http(s) references pass through; ``//host/...`` inherits the
    base scheme; everything else is joined against *base* with ``..``
    segments collapsed.
    """
    if ref is None or not ref.strip():
        return ref

    ref = ref.strip()
    lowered = ref.lower()
    if lowered.startswith("http://") or lowered.startswith("https://"):
        return ref
    if not base:
        return ref

    if ref.startswith("//"):
        scheme = urlsplit(base).scheme or "https"
        return f"{scheme}:{ref}"

    try:
        return urljoin(base, ref)
    except ValueError:
        logger.debug("Could not resolve %r against %r", ref, base)
        return ref
