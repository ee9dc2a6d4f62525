import pytest

from goalcrawl.core.models import Metrics, PageRecord
from goalcrawl.core.progress import ProgressEvaluator, keyword_coverage
from goalcrawl.core.run_config import EvaluationPolicy


def _page(url, content, density=0.5, relevance=0.5, uniqueness=0.5, title="Page"):
    return PageRecord(
        url=url,
        title=title,
        content=content,
        content_type="text/html",
        extraction_timestamp="2024-01-01T00:00:00+00:00",
        metrics=Metrics(density, relevance, uniqueness),
    )


def test_no_pages_yields_neutral_start():
    progress = ProgressEvaluator().evaluate([], "pricing plans")
    assert progress.completeness == 0.0
    assert progress.remaining_value_estimate == 1.0
    assert progress.diminishing_returns is False


def test_keyword_coverage_counts_whole_words_across_pages():
    pages = [_page("https://e.com/a", "our pricing is simple"), _page("https://e.com/b", "enterprise plans")]
    assert keyword_coverage(pages, "pricing plans enterprise") == pytest.approx(1.0)
    assert keyword_coverage(pages[:1], "pricing plans enterprise") == pytest.approx(1 / 3)
    # "plan" is not a whole-word match for "plans"
    assert keyword_coverage([_page("https://e.com/c", "one plan only")], "plans") == 0.0


def test_keyword_coverage_without_keywords_is_neutral():
    assert keyword_coverage([_page("https://e.com/a", "text")], "the of and") == 0.5


def test_means_and_completeness():
    pages = [
        _page("https://e.com/a", "pricing details", density=0.4, relevance=1.0, uniqueness=1.0),
        _page("https://e.com/b", "unrelated", density=0.8, relevance=0.0, uniqueness=0.5),
    ]
    progress = ProgressEvaluator(EvaluationPolicy(volume_cap_pages=10)).evaluate(pages, "pricing")
    assert progress.information_density == pytest.approx(0.6)
    assert progress.relevance == pytest.approx(0.5)
    assert progress.uniqueness == pytest.approx(0.75)
    assert progress.keyword_coverage == pytest.approx(1.0)
    assert progress.completeness == pytest.approx(0.7 * 1.0 + 0.3 * 0.2)


def test_diminishing_returns_uses_last_window():
    policy = EvaluationPolicy(diminishing_window=3, diminishing_threshold=0.2)
    fresh = [_page(f"https://e.com/{i}", "x", uniqueness=0.9) for i in range(3)]
    stale = [_page(f"https://e.com/s{i}", "x", uniqueness=0.05) for i in range(3)]

    assert ProgressEvaluator(policy).evaluate(fresh, "goal words").diminishing_returns is False
    progress = ProgressEvaluator(policy).evaluate(fresh + stale, "goal words")
    assert progress.diminishing_returns is True
    assert progress.remaining_value_estimate == pytest.approx((1 - progress.completeness) * 0.05)


def test_diminishing_returns_needs_a_full_window():
    policy = EvaluationPolicy(diminishing_window=3)
    pages = [_page("https://e.com/a", "x", uniqueness=0.0), _page("https://e.com/b", "x", uniqueness=0.0)]
    assert ProgressEvaluator(policy).evaluate(pages, "goal words").diminishing_returns is False
