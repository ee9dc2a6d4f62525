"""URL canonicalization used for deduplication."""
from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from goalcrawl.errors import InvalidURL

ALLOWED_SCHEMES = {"http", "https"}
DEFAULT_PORTS = {"http": 80, "https": 443}
DEFAULT_TRACKING_PARAMS = frozenset(
    {
        "utm_*",
        "gclid",
        "fbclid",
        "msclkid",
        "mc_cid",
        "mc_eid",
        "_ga",
        "yclid",
        "ref_src",
    }
)


def _is_tracking(key: str, deny: frozenset[str] | set[str]) -> bool:
    k = key.strip().lower()
    if k in deny:
        return True
    for item in deny:
        if item.endswith("*") and k.startswith(item[:-1]):
            return True
    return False


def _remove_dot_segments(path: str) -> str:
    if not path:
        return "/"
    out: list[str] = []
    segments = path.split("/")
    for seg in segments[1:] if path.startswith("/") else segments:
        if seg == ".":
            continue
        if seg == "..":
            if out:
                out.pop()
            continue
        out.append(seg)
    normalized = "/" + "/".join(out)
    # Keep the trailing slash of "/a/b/." and "/a/b/..".
    if segments[-1] in {".", ".."} and not normalized.endswith("/"):
        normalized += "/"
    return normalized


def canonicalize(
    raw: str,
    base: str | None = None,
    *,
    tracking_params: frozenset[str] | set[str] = DEFAULT_TRACKING_PARAMS,
) -> str:
    """Return the canonical form of `raw`, resolved against `base`.

    Raises InvalidURL for unparsable input or any scheme other than http/https.
    """
    text = (raw or "").strip()
    if not text:
        raise InvalidURL("Empty URL.", url=str(raw or ""))
    try:
        full = urljoin(base, text) if base else text
        parts = urlsplit(full)
        scheme = parts.scheme.lower()
        host = parts.hostname or ""
        port = parts.port
    except ValueError as exc:
        raise InvalidURL(f"Unparsable URL: {text!r} ({exc})", url=text) from exc

    if scheme not in ALLOWED_SCHEMES:
        raise InvalidURL(f"Scheme not allowed: {scheme or '<none>'}", url=text)
    if not host:
        raise InvalidURL(f"URL has no host: {text!r}", url=text)

    host = host.lower().rstrip(".")
    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    if "@" in parts.netloc:
        userinfo = parts.netloc.rsplit("@", 1)[0]
        netloc = f"{userinfo}@{netloc}"

    path = _remove_dot_segments(parts.path)

    pairs = parse_qsl(parts.query, keep_blank_values=True)
    # Sort by key only so repeated keys keep their relative order.
    kept = sorted(((k, v) for k, v in pairs if not _is_tracking(k, tracking_params)), key=lambda kv: kv[0])
    query = urlencode(kept)

    return urlunsplit((scheme, netloc, path, query, ""))


def try_canonicalize(raw: str, base: str | None = None, **kwargs) -> str | None:
    try:
        return canonicalize(raw, base, **kwargs)
    except InvalidURL:
        return None


def url_host(url: str) -> str:
    return (urlsplit(url).hostname or "").lower().strip(".")


def url_path(url: str) -> str:
    return urlsplit(url).path or "/"


def strip_www(hostname: str) -> str:
    host = (hostname or "").strip().lower().strip(".")
    return host[4:] if host.startswith("www.") else host
