"""httpx-backed fetcher with failure classification, robots.txt and SSRF guards."""
from __future__ import annotations

import asyncio
import ipaddress
import re
import socket
import time
from typing import Any
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

import httpx
from loguru import logger

from goalcrawl.core.ports import FetchOptions, FetchResult, Fetcher
from goalcrawl.errors import AuthenticationRequired, FetchFatal, FetchTransient
from goalcrawl.observability.context import get_run_id
from goalcrawl.observability.metrics import FETCH_LATENCY_SEC

_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated",
    "name resolution",
)
_LOGIN_URL = re.compile(r"/(login|log-in|signin|sign-in|sign_in|auth|sso)(/|\?|$)", re.IGNORECASE)
_OAUTH_URL = re.compile(r"oauth|authorize", re.IGNORECASE)
_PASSWORD_INPUT = re.compile(r"<input[^>]+type\s*=\s*[\"']?password", re.IGNORECASE)
_INPUT_NAME = re.compile(r"<input[^>]+name\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)


def _is_public_ip(ip_text: str) -> bool:
    try:
        ip = ipaddress.ip_address(ip_text)
    except ValueError:
        return False
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


HOST_PUBLIC = "public"
HOST_PRIVATE = "private"
HOST_UNRESOLVED = "unresolved"


def _classify_host(hostname: str) -> str:
    host = (hostname or "").strip().lower().strip("[]")
    if not host:
        return HOST_PRIVATE
    if host in {"localhost", "localhost.localdomain"}:
        return HOST_PRIVATE
    if host.endswith(".local") or host.endswith(".internal"):
        return HOST_PRIVATE
    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return HOST_PUBLIC if _is_public_ip(host) else HOST_PRIVATE
    try:
        addresses = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    except OSError:
        return HOST_UNRESOLVED
    if not addresses:
        return HOST_UNRESOLVED
    for info in addresses:
        if not _is_public_ip(info[4][0]):
            return HOST_PRIVATE
    return HOST_PUBLIC


def _is_public_hostname(hostname: str) -> bool:
    return _classify_host(hostname) == HOST_PUBLIC


def _is_html(headers: httpx.Headers) -> bool:
    content_type = (headers.get("content-type") or "").lower()
    if not content_type:
        return True
    return "text/html" in content_type or "application/xhtml" in content_type


def _is_dns_failure(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _DNS_FAILURE_MARKERS)


def detect_auth_challenge(
    body: str,
    requested_url: str,
    final_url: str,
    status: int,
    headers: httpx.Headers | dict[str, str],
) -> AuthenticationRequired | None:
    """Classify a response as an authentication wall, or return None."""
    has_password_form = bool(_PASSWORD_INPUT.search(body or ""))
    fields = _INPUT_NAME.findall(body or "") if has_password_form else []
    lowered_headers = {str(k).lower() for k in headers.keys()}

    if status in {401, 407}:
        if "www-authenticate" in lowered_headers or "proxy-authenticate" in lowered_headers:
            return AuthenticationRequired(final_url or requested_url, "basic")
        if has_password_form:
            return AuthenticationRequired(final_url or requested_url, "form", form_fields=fields)
        return AuthenticationRequired(final_url or requested_url, "unknown")
    if status == 403 and has_password_form:
        return AuthenticationRequired(final_url or requested_url, "form", form_fields=fields)

    redirected = bool(final_url) and final_url.rstrip("/") != requested_url.rstrip("/")
    if redirected and 200 <= status < 400:
        if _OAUTH_URL.search(urlsplit(final_url).path + "?" + urlsplit(final_url).query):
            return AuthenticationRequired(requested_url, "oauth", login_url=final_url)
        if _LOGIN_URL.search(urlsplit(final_url).path) and has_password_form:
            return AuthenticationRequired(requested_url, "form", login_url=final_url, form_fields=fields)
    return None


class HttpxFetcher(Fetcher):
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        user_agent: str = "GoalCrawlBot/1.0",
        max_doc_bytes: int = 2_000_000,
        respect_robots: bool = True,
        block_private_networks: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.user_agent = user_agent
        self.max_doc_bytes = max(1, int(max_doc_bytes))
        self.respect_robots = respect_robots
        self.block_private_networks = block_private_networks
        self._transport = transport
        self._client = client
        self._owns_client = client is None
        self._session_headers: dict[str, str] = {}
        self._robots_cache: dict[str, RobotFileParser] = {}
        self._hostname_cache: dict[str, str] = {}

    async def start(self):
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(20.0, connect=10.0),
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        )
        self._owns_client = True

    async def stop(self):
        if self._client is None or not self._owns_client:
            return
        await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "HttpxFetcher":
        await self.start()
        return self

    async def __aexit__(self, *_exc) -> None:
        await self.stop()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.start()
        assert self._client is not None
        return self._client

    def apply_session(self, artifacts: dict[str, Any]) -> None:
        headers = artifacts.get("headers") or {}
        cookies = artifacts.get("cookies") or {}
        self._session_headers.update({str(k): str(v) for k, v in headers.items()})
        if cookies and self._client is not None:
            self._client.cookies.update(cookies)
        elif cookies:
            self._session_headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())

    async def _host_verdict(self, host: str) -> str:
        if not self.block_private_networks:
            return HOST_PUBLIC
        if host not in self._hostname_cache:
            self._hostname_cache[host] = await asyncio.to_thread(_classify_host, host)
        return self._hostname_cache[host]

    async def _robots_allowed(self, url: str, timeout: float) -> bool:
        """robots.txt policy with a per-origin cache; allows on any failure."""
        if not self.respect_robots:
            return True
        parts = urlsplit(url)
        robots_url = f"{parts.scheme}://{parts.netloc}/robots.txt"
        rp = self._robots_cache.get(robots_url)
        if rp is None:
            rp = RobotFileParser()
            try:
                client = await self._get_client()
                resp = await client.get(robots_url, timeout=min(timeout, 10.0))
                if resp.status_code < 400 and resp.text:
                    rp.parse(resp.text.splitlines())
                else:
                    rp.parse([])
            except httpx.HTTPError:
                rp.parse([])
            self._robots_cache[robots_url] = rp
        try:
            return rp.can_fetch(self.user_agent, url)
        except Exception:
            return True

    async def fetch(self, url: str, opts: FetchOptions) -> FetchResult:
        parts = urlsplit(url)
        if parts.scheme not in {"http", "https"}:
            raise FetchFatal(f"Disallowed scheme: {parts.scheme}", url=url, code="disallowed_scheme")
        host = (parts.hostname or "").lower()
        verdict = await self._host_verdict(host)
        if verdict == HOST_UNRESOLVED:
            raise FetchFatal(f"DNS resolution failed for {host}", url=url, code="dns_failure")
        if verdict != HOST_PUBLIC:
            raise FetchFatal(f"Host is not public: {host}", url=url, code="private_network")
        if not await self._robots_allowed(url, opts.timeout):
            raise FetchFatal("Disallowed by robots.txt", url=url, code="robots_disallow")
        if opts.use_js:
            logger.debug("JavaScript rendering requested for {}; fetching raw HTML", url)

        headers = {"User-Agent": self.user_agent}
        run_id = get_run_id()
        if run_id:
            headers["X-Correlation-ID"] = run_id
        headers.update(self._session_headers)
        headers.update(opts.headers or {})

        client = await self._get_client()
        start = time.perf_counter()
        try:
            response = await client.get(url, headers=headers, timeout=opts.timeout)
        except httpx.TimeoutException as exc:
            raise FetchTransient(f"Timed out fetching {url}", url=url, code="timeout") from exc
        except httpx.ConnectError as exc:
            if _is_dns_failure(exc):
                raise FetchFatal(f"DNS resolution failed for {host}", url=url, code="dns_failure") from exc
            raise FetchTransient(f"Connection failed for {url}: {exc}", url=url, code="connect_error") from exc
        except httpx.UnsupportedProtocol as exc:
            raise FetchFatal(f"Unsupported protocol for {url}", url=url, code="disallowed_scheme") from exc
        except httpx.TransportError as exc:
            raise FetchTransient(f"Transport error for {url}: {exc}", url=url, code="transport_error") from exc
        except httpx.HTTPError as exc:
            raise FetchFatal(f"HTTP error for {url}: {exc}", url=url, code="http_error") from exc
        finally:
            FETCH_LATENCY_SEC.observe(max(0.0, time.perf_counter() - start))

        status = int(response.status_code)
        final_url = str(response.url)
        body = response.text

        challenge = detect_auth_challenge(body, url, final_url, status, response.headers)
        if challenge is not None:
            raise challenge
        if status == 429 or status >= 500:
            raise FetchTransient(f"HTTP {status} from {url}", url=url, status_code=status, code=f"http_{status}")
        if status >= 400:
            raise FetchFatal(f"HTTP {status} from {url}", url=url, status_code=status, code=f"http_{status}")
        if not _is_html(response.headers):
            raise FetchFatal(f"Non-HTML content at {url}", url=url, status_code=status, code="non_html")
        if len(body.encode("utf-8", errors="ignore")) > self.max_doc_bytes:
            raise FetchFatal(f"Document too large at {url}", url=url, status_code=status, code="doc_too_large")

        return FetchResult(html=body, status=status, headers=dict(response.headers), final_url=final_url)
