"""Link filters applied before a discovered URL may enter the frontier."""
from __future__ import annotations

import re

from goalcrawl.core.canonical import strip_www, url_host, url_path
from goalcrawl.core.run_config import LinkPolicy


def _allow_host(host: str, base_host: str, *, www_alias: bool = True) -> bool:
    h = (host or "").strip().lower().strip(".")
    if not h:
        return False
    if h == base_host:
        return True
    if www_alias and strip_www(h) == strip_www(base_host):
        return True
    return False


class LinkFilter:
    """Decides whether a canonical URL is worth queueing for this run."""

    def __init__(self, policy: LinkPolicy, base_host: str):
        self.policy = policy
        self.base_host = (base_host or "").strip().lower().strip(".")
        self._include = [re.compile(p) for p in policy.include_patterns]
        self._exclude = [re.compile(p) for p in policy.exclude_patterns]
        self._extensions = tuple(ext.lower() for ext in policy.skip_extensions)
        self._seen_paths: set[str] = set()

    def allows(self, url: str) -> tuple[bool, str]:
        """Return (allowed, reason); reason is empty when allowed."""
        host = url_host(url)
        path = url_path(url)
        lowered_path = path.lower()

        if self.policy.same_host_only and not _allow_host(host, self.base_host):
            return False, "external_host"
        if self._extensions and lowered_path.endswith(self._extensions):
            return False, "file_type"
        if any(pattern in lowered_path for pattern in self.policy.skip_path_patterns):
            return False, "skip_pattern"
        if self._exclude and any(rx.search(url) for rx in self._exclude):
            return False, "excluded"
        if self._include and not any(rx.search(url) for rx in self._include):
            return False, "not_included"
        if self.policy.skip_similar_paths:
            key = f"{strip_www(host)}{path.rstrip('/') or '/'}"
            if key in self._seen_paths:
                return False, "similar_path"
        return True, ""

    def remember(self, url: str) -> None:
        """Record a URL that was queued or visited (feeds the similar-path filter)."""
        if not self.policy.skip_similar_paths:
            return
        path = url_path(url)
        self._seen_paths.add(f"{strip_www(url_host(url))}{path.rstrip('/') or '/'}")
