"""URL normalization for stable feed and article identity.

Feed authors add, drop and reorder tracking parameters, fragments and
trailing slashes between publishes. Normalizing links before using them as
ids keeps an article's identity (and its read/starred state) stable.
"""

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TRACKING_PARAMS = frozenset({
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "gclid",
    "fbclid",
    "yclid",
    "mc_cid",
    "mc_eid",
    "ref",
    "igshid",
})

DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """Return the canonical identity string for an absolute URL.

    Lower-cases scheme and host, drops default ports, fragments, tracking
    and empty-valued query parameters, sorts the remaining parameters by
    name and strips a trailing slash from non-root paths.

    Args:
        url: Absolute URL (feed URL or article link)

    Returns:
        Canonical URL string, or the input unchanged if it cannot be
        re-serialized
    """
    try:
        return _normalize(url)
    except ValueError:
        return url


def _normalize(url: str) -> str:
    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.netloc:
        return url

    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"

    port = parts.port
    if port is not None and DEFAULT_PORTS.get(scheme) == port:
        port = None

    netloc = host if port is None else f"{host}:{port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    params = [
        (name, value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
        if name.lower() not in TRACKING_PARAMS and value
    ]
    params.sort(key=lambda pair: pair[0].lower())

    path = parts.path
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]

    return urlunsplit((scheme, netloc, path, urlencode(params), ""))
