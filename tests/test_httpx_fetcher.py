import unittest
from unittest import mock

import httpx

from goalcrawl.core.ports import FetchOptions
from goalcrawl.errors import AuthenticationRequired, FetchFatal, FetchTransient
from goalcrawl.infra.fetch.httpx_fetcher import HttpxFetcher, detect_auth_challenge
from goalcrawl.observability.context import set_run_id

HTML = {"content-type": "text/html; charset=utf-8"}
LOGIN_FORM = '<form><input name="user"><input type="password" name="pass"></form>'


def _fetcher(handler, **kwargs):
    kwargs.setdefault("respect_robots", False)
    kwargs.setdefault("block_private_networks", False)
    return HttpxFetcher(transport=httpx.MockTransport(handler), **kwargs)


class HttpxFetcherTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.requests = []
        self.opts = FetchOptions(timeout=5.0)

    async def _fetch(self, handler, url="https://example.com/page", **kwargs):
        async with _fetcher(handler, **kwargs) as fetcher:
            return await fetcher.fetch(url, self.opts)

    async def test_successful_fetch_returns_body_and_final_url(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(200, headers=HTML, text="<html><title>Hi</title></html>")

        set_run_id("run-123")
        result = await self._fetch(handler)
        self.assertEqual(result.status, 200)
        self.assertIn("<title>Hi</title>", result.html)
        self.assertEqual(result.final_url, "https://example.com/page")
        self.assertEqual(self.requests[0].headers["X-Correlation-ID"], "run-123")
        self.assertEqual(self.requests[0].headers["User-Agent"], "GoalCrawlBot/1.0")

    async def test_retryable_statuses_are_transient(self):
        for status in (429, 500, 503):
            with self.subTest(status=status):
                with self.assertRaises(FetchTransient) as ctx:
                    await self._fetch(lambda request, s=status: httpx.Response(s, headers=HTML, text="busy"))
                self.assertEqual(ctx.exception.status_code, status)

    async def test_client_errors_are_fatal(self):
        with self.assertRaises(FetchFatal) as ctx:
            await self._fetch(lambda request: httpx.Response(404, headers=HTML, text="missing"))
        self.assertEqual(ctx.exception.code, "http_404")

    async def test_timeouts_and_transport_errors_are_transient(self):
        def timeout(request):
            raise httpx.ReadTimeout("slow", request=request)

        def reset(request):
            raise httpx.ConnectError("connection reset by peer", request=request)

        for handler in (timeout, reset):
            with self.subTest(handler=handler.__name__):
                with self.assertRaises(FetchTransient):
                    await self._fetch(handler)

    async def test_dns_failure_is_fatal(self):
        def handler(request):
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

        with self.assertRaises(FetchFatal) as ctx:
            await self._fetch(handler)
        self.assertEqual(ctx.exception.code, "dns_failure")

    async def test_non_html_and_oversize_bodies_are_fatal(self):
        with self.assertRaises(FetchFatal) as ctx:
            await self._fetch(lambda request: httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF"))
        self.assertEqual(ctx.exception.code, "non_html")

        with self.assertRaises(FetchFatal) as ctx:
            await self._fetch(lambda request: httpx.Response(200, headers=HTML, text="x" * 200), max_doc_bytes=100)
        self.assertEqual(ctx.exception.code, "doc_too_large")

    async def test_basic_auth_challenge(self):
        def handler(request):
            return httpx.Response(401, headers={"WWW-Authenticate": 'Basic realm="x"'}, text="")

        with self.assertRaises(AuthenticationRequired) as ctx:
            await self._fetch(handler)
        self.assertEqual(ctx.exception.challenge_type, "basic")

    async def test_redirect_to_login_form_is_an_auth_challenge(self):
        def handler(request):
            if request.url.path == "/members":
                return httpx.Response(302, headers={"Location": "https://example.com/login"})
            return httpx.Response(200, headers=HTML, text=LOGIN_FORM)

        with self.assertRaises(AuthenticationRequired) as ctx:
            await self._fetch(handler, url="https://example.com/members")
        self.assertEqual(ctx.exception.challenge_type, "form")
        self.assertEqual(ctx.exception.login_url, "https://example.com/login")
        self.assertEqual(ctx.exception.form_fields, ["user", "pass"])

    async def test_private_hosts_blocked(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(200, headers=HTML, text="secret")

        with self.assertRaises(FetchFatal) as ctx:
            await self._fetch(handler, url="http://127.0.0.1/admin", block_private_networks=True)
        self.assertEqual(ctx.exception.code, "private_network")
        self.assertEqual(self.requests, [])

    async def test_unresolvable_host_reports_dns_failure(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(200, headers=HTML, text="ok")

        with mock.patch(
            "goalcrawl.infra.fetch.httpx_fetcher.socket.getaddrinfo", side_effect=OSError("no such host")
        ):
            with self.assertRaises(FetchFatal) as ctx:
                await self._fetch(handler, url="https://nowhere.invalid/", block_private_networks=True)
        self.assertEqual(ctx.exception.code, "dns_failure")
        self.assertEqual(self.requests, [])

    async def test_robots_disallow_is_fatal_and_cached(self):
        def handler(request):
            self.requests.append(request.url.path)
            if request.url.path == "/robots.txt":
                return httpx.Response(200, text="User-agent: *\nDisallow: /private\n")
            return httpx.Response(200, headers=HTML, text="ok")

        async with _fetcher(handler, respect_robots=True) as fetcher:
            with self.assertRaises(FetchFatal) as ctx:
                await fetcher.fetch("https://example.com/private/x", self.opts)
            self.assertEqual(ctx.exception.code, "robots_disallow")
            result = await fetcher.fetch("https://example.com/public", self.opts)
        self.assertEqual(result.html, "ok")
        self.assertEqual(self.requests.count("/robots.txt"), 1)

    async def test_missing_robots_allows_everything(self):
        def handler(request):
            if request.url.path == "/robots.txt":
                return httpx.Response(404, text="nope")
            return httpx.Response(200, headers=HTML, text="ok")

        result = await self._fetch(handler, respect_robots=True)
        self.assertEqual(result.html, "ok")

    async def test_apply_session_sends_headers_and_cookies(self):
        def handler(request):
            self.requests.append(request)
            return httpx.Response(200, headers=HTML, text="ok")

        async with _fetcher(handler) as fetcher:
            fetcher.apply_session({"headers": {"Authorization": "Bearer t"}, "cookies": {"sid": "abc"}})
            await fetcher.fetch("https://example.com/page", self.opts)
        self.assertEqual(self.requests[0].headers["Authorization"], "Bearer t")
        self.assertIn("sid=abc", self.requests[0].headers.get("cookie", ""))


class DetectAuthChallengeTests(unittest.TestCase):
    def test_plain_pages_are_not_challenges(self):
        self.assertIsNone(detect_auth_challenge("<p>hello</p>", "https://e.com/a", "https://e.com/a", 200, {}))

    def test_forbidden_with_login_form(self):
        challenge = detect_auth_challenge(LOGIN_FORM, "https://e.com/a", "https://e.com/a", 403, {})
        self.assertEqual(challenge.challenge_type, "form")

    def test_forbidden_without_form_is_not_a_challenge(self):
        self.assertIsNone(detect_auth_challenge("denied", "https://e.com/a", "https://e.com/a", 403, {}))

    def test_oauth_redirect(self):
        challenge = detect_auth_challenge(
            "", "https://e.com/a", "https://id.e.com/oauth/authorize?client_id=1", 200, {}
        )
        self.assertEqual(challenge.challenge_type, "oauth")
        self.assertEqual(challenge.login_url, "https://id.e.com/oauth/authorize?client_id=1")

    def test_unauthorized_without_hints(self):
        challenge = detect_auth_challenge("", "https://e.com/a", "https://e.com/a", 401, {})
        self.assertEqual(challenge.challenge_type, "unknown")
