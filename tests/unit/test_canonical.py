import pytest

from goalcrawl.core.canonical import canonicalize, strip_www, try_canonicalize
from goalcrawl.errors import InvalidURL


def test_lowercases_scheme_and_host_and_drops_default_port():
    assert canonicalize("HTTP://Example.COM:80/Docs") == "http://example.com/Docs"
    assert canonicalize("https://example.com:443/") == "https://example.com/"
    assert canonicalize("https://example.com:8443/a") == "https://example.com:8443/a"


def test_strips_fragment_and_normalizes_empty_path():
    assert canonicalize("https://example.com#top") == "https://example.com/"
    assert canonicalize("https://example.com/a#b") == "https://example.com/a"


def test_resolves_dot_segments_and_relative_references():
    assert canonicalize("https://example.com/a/./b/../c") == "https://example.com/a/c"
    assert canonicalize("../guide?x=1", "https://example.com/docs/api/") == "https://example.com/docs/guide?x=1"
    assert canonicalize("/root", "https://example.com/deep/page") == "https://example.com/root"


def test_sorts_query_and_removes_tracking_params():
    url = "https://example.com/p?b=2&utm_source=news&a=1&gclid=xyz&utm_medium=mail"
    assert canonicalize(url) == "https://example.com/p?a=1&b=2"


def test_keeps_blank_query_values():
    assert canonicalize("https://example.com/p?flag=&a=1") == "https://example.com/p?a=1&flag="


def test_custom_tracking_params():
    url = "https://example.com/p?session=1&a=1"
    assert canonicalize(url, tracking_params=frozenset({"session"})) == "https://example.com/p?a=1"


def test_preserves_userinfo_and_ipv6_host():
    assert canonicalize("http://user:pw@Example.com/x") == "http://user:pw@example.com/x"
    assert canonicalize("http://[::1]:8080/x") == "http://[::1]:8080/x"


@pytest.mark.parametrize(
    "raw",
    [
        "HTTPS://WWW.Example.com:443/a/b/../c/?z=1&y=&utm_campaign=q#frag",
        "http://example.com",
        "https://example.com/a%20b?q=a+b",
        "http://[2001:db8::1]/p?b=2&a=1",
    ],
)
def test_idempotent(raw):
    once = canonicalize(raw)
    assert canonicalize(once) == once


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "mailto:someone@example.com", "javascript:void(0)", "ftp://example.com/file", "http://"],
)
def test_rejects_invalid_urls(raw):
    with pytest.raises(InvalidURL):
        canonicalize(raw)
    assert try_canonicalize(raw) is None


def test_strip_www():
    assert strip_www("WWW.Example.com") == "example.com"
    assert strip_www("docs.example.com") == "docs.example.com"


def test_repeated_query_keys_keep_their_order():
    assert canonicalize("https://example.com/p?tag=b&a=1&tag=a") == "https://example.com/p?a=1&tag=b&tag=a"
