"""Collaborator interfaces the scheduler depends on.

Concrete implementations live under `goalcrawl.infra`; tests plug in their own.
"""
from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence

from goalcrawl.core.models import EntityMention, LinkCandidate, Metrics


@dataclass(frozen=True)
class FetchOptions:
    timeout: float
    use_js: bool = False
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FetchResult:
    html: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    final_url: str = ""


@dataclass(frozen=True)
class Extraction:
    title: str
    text: str
    content_type: str = "text/html"
    entities: tuple[EntityMention, ...] = ()


@dataclass(frozen=True)
class RawLink:
    url: str
    anchor_text: str = ""
    context: str = ""


@dataclass(frozen=True)
class AuthChallenge:
    url: str
    challenge_type: str
    login_url: str = ""
    form_fields: tuple[str, ...] = ()
    session_token: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def instructions(self) -> str:
        if self.challenge_type == "basic":
            return "Provide a username and password for HTTP basic authentication."
        if self.challenge_type == "form":
            fields = ", ".join(self.form_fields) or "username, password"
            return f"Log in using the site's form. Required fields: {fields}."
        if self.challenge_type == "oauth":
            return "Authorize access through the site's OAuth flow."
        return "Authenticate with the website using your credentials."


@dataclass(frozen=True)
class AuthResult:
    success: bool
    # Reusable session material: {"headers": {...}, "cookies": {...}}
    artifacts: dict[str, Any] = field(default_factory=dict)
    message: str = ""


@dataclass(frozen=True)
class CrawlEvent:
    type: str
    run_id: str
    url: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "run_id": self.run_id, "url": self.url, "payload": self.payload, "ts": self.ts}


class Fetcher(ABC):
    @abstractmethod
    async def fetch(self, url: str, opts: FetchOptions) -> FetchResult:
        """Fetch `url`; raise FetchTransient, FetchFatal or AuthenticationRequired."""

    def apply_session(self, artifacts: dict[str, Any]) -> None:
        return None


class ContentExtractor(ABC):
    @abstractmethod
    def extract(self, html: str, url: str) -> Extraction:
        pass


class LinkExtractor(ABC):
    @abstractmethod
    def extract_links(self, html: str, base_url: str) -> list[RawLink]:
        pass


class ValueEstimator(ABC):
    """Scores content and links against the goal.

    Calls may be slow or fail; the pipeline substitutes a neutral 0.5.
    """

    @abstractmethod
    async def score_content(self, text: str, goal: str, *, seen: Sequence[str] = ()) -> Metrics:
        pass

    @abstractmethod
    async def score_link(self, candidate: LinkCandidate, goal: str) -> float:
        pass


class AuthProvider(ABC):
    @abstractmethod
    async def authenticate(self, challenge: AuthChallenge) -> AuthResult:
        pass


class EventSink(ABC):
    @abstractmethod
    def emit(self, event: CrawlEvent) -> None:
        """Deliver `event` without blocking the caller."""
