import asyncio

import pytest

from goalcrawl.core.models import LinkCandidate
from goalcrawl.infra.estimators.heuristic import (
    HeuristicValueEstimator,
    information_density,
    path_adjustment,
    text_relevance,
    uniqueness,
    url_structure_score,
)


def test_information_density():
    assert information_density("") == 0.0
    assert information_density("the cat and a dog") == pytest.approx(2 / 5)


def test_text_relevance():
    assert text_relevance("", "pricing") == 0.0
    assert text_relevance("Our pricing page", "pricing plans") == pytest.approx(0.5)
    assert text_relevance("anything", "a an the") == 0.5


def test_uniqueness_against_seen_content():
    assert uniqueness("alpha beta gamma", ()) == 1.0
    assert uniqueness("alpha beta gamma", ["alpha beta gamma"]) == pytest.approx(0.0)
    assert uniqueness("alpha beta gamma", ["delta epsilon zeta"]) == pytest.approx(1.0)


def test_url_structure_and_path_adjustment():
    assert url_structure_score("https://e.com/docs/a/b") > url_structure_score("https://e.com/a/b")
    assert path_adjustment("https://e.com/contact", 0.8) == pytest.approx(0.4)
    assert path_adjustment("https://e.com/docs/x", 0.8) == pytest.approx(1.0)
    assert path_adjustment("https://e.com/blog", 0.8) == pytest.approx(0.8)


def test_estimator_scores_are_bounded():
    estimator = HeuristicValueEstimator()
    metrics = asyncio.run(estimator.score_content("pricing plans for teams", "team pricing", seen=()))
    assert 0.0 <= metrics.information_density <= 1.0
    assert metrics.uniqueness == 1.0

    good = LinkCandidate(
        url="https://e.com/docs/pricing-guide",
        anchor_text="Learn about pricing tiers",
        surrounding_context="Full pricing documentation",
    )
    bad = LinkCandidate(url="https://e.com/contact", anchor_text="HI", surrounding_context="")
    good_score = asyncio.run(estimator.score_link(good, "pricing tiers"))
    bad_score = asyncio.run(estimator.score_link(bad, "pricing tiers"))
    assert 0.0 <= bad_score < good_score <= 1.0
