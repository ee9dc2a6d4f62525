"""Run configuration models.

Every limit is an explicit field here; no component falls back to defaults of
its own.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from goalcrawl.core.canonical import DEFAULT_TRACKING_PARAMS, canonicalize
from goalcrawl.errors import ConfigurationError, InvalidURL

DEFAULT_SKIP_EXTENSIONS = [
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip", ".rar", ".tar", ".gz", ".jpg", ".jpeg", ".png",
    ".gif", ".svg", ".mp3", ".mp4", ".avi", ".mov",
]
DEFAULT_SKIP_PATH_PATTERNS = [
    "/login", "/logout", "/signup", "/register",
    "/cart", "/checkout", "/account", "/profile",
    "/search", "/sitemap", "/privacy", "/terms",
]


class Limits(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_pages: int = Field(ge=1)
    max_depth: int = Field(ge=0)
    max_steps: int = Field(ge=1)
    max_wall_clock: float = Field(gt=0, description="Seconds")
    min_expected_value_to_enqueue: float = Field(default=0.0, ge=0.0, le=1.0)


class FetchPolicy(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout: float = Field(default=20.0, gt=0)
    max_retries: int = Field(default=2, ge=0, le=10)
    backoff_base: float = Field(default=0.25, ge=0)
    backoff_max: float = Field(default=8.0, ge=0)
    use_js: bool = False
    headers: dict[str, str] = Field(default_factory=dict)
    estimator_timeout: float = Field(default=10.0, gt=0)
    cancel_grace_period: float = Field(default=5.0, ge=0)
    auth_timeout: float = Field(default=60.0, gt=0)


class LinkPolicy(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    same_host_only: bool = True
    links_per_page: int = Field(default=80, ge=1, le=5000)
    include_patterns: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(default_factory=list)
    skip_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_SKIP_EXTENSIONS))
    skip_path_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_SKIP_PATH_PATTERNS))
    # Drop URLs whose host+path was already seen with a different query string.
    skip_similar_paths: bool = False
    tracking_params: frozenset[str] = DEFAULT_TRACKING_PARAMS


class EvaluationPolicy(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    min_pages_before_goal_check: int = Field(default=3, ge=0)
    completeness_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    diminishing_window: int = Field(default=3, ge=1)
    diminishing_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    volume_cap_pages: int = Field(default=10, ge=1)


class RunConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = Field(min_length=1)
    goal: str = Field(min_length=1)
    limits: Limits
    concurrency: int = Field(default=1, ge=1, le=64)
    fetch: FetchPolicy = Field(default_factory=FetchPolicy)
    links: LinkPolicy = Field(default_factory=LinkPolicy)
    evaluation: EvaluationPolicy = Field(default_factory=EvaluationPolicy)
    host_step_ceiling: int | None = Field(default=None, ge=1)

    @field_validator("base_url")
    @classmethod
    def _canonical_base(cls, value: str) -> str:
        try:
            return canonicalize(value)
        except InvalidURL as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("goal")
    @classmethod
    def _strip_goal(cls, value: str) -> str:
        goal = value.strip()
        if not goal:
            raise ValueError("goal must not be blank")
        return goal

    @model_validator(mode="after")
    def _step_budget_below_host(self) -> "RunConfig":
        if self.host_step_ceiling is not None and self.limits.max_steps >= self.host_step_ceiling:
            raise ValueError(
                f"max_steps ({self.limits.max_steps}) must be strictly below the host step ceiling "
                f"({self.host_step_ceiling})"
            )
        return self

    @classmethod
    def build(cls, **kwargs: Any) -> "RunConfig":
        """Validate keyword arguments, raising ConfigurationError on bad input."""
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid run configuration: {exc}") from exc

    @classmethod
    def from_settings(cls, base_url: str, goal: str, settings, **overrides: Any) -> "RunConfig":
        limits = {
            "max_pages": settings.max_pages,
            "max_depth": settings.max_depth,
            "max_steps": settings.max_steps,
            "max_wall_clock": settings.max_wall_clock_sec,
            "min_expected_value_to_enqueue": settings.min_expected_value,
        }
        limits.update(overrides.pop("limits", {}) or {})
        fetch = {
            "timeout": settings.fetch_timeout_sec,
            "max_retries": settings.fetch_max_retries,
            "backoff_base": settings.fetch_backoff_base_sec,
            "backoff_max": settings.fetch_backoff_max_sec,
            "estimator_timeout": settings.estimator_timeout_sec,
            "cancel_grace_period": settings.cancel_grace_sec,
            "auth_timeout": settings.auth_timeout_sec,
        }
        fetch.update(overrides.pop("fetch", {}) or {})
        links = {"links_per_page": settings.links_per_page}
        links.update(overrides.pop("links", {}) or {})
        payload: dict[str, Any] = {
            "base_url": base_url,
            "goal": goal,
            "limits": limits,
            "concurrency": settings.concurrency,
            "fetch": fetch,
            "links": links,
            "host_step_ceiling": settings.host_step_ceiling,
        }
        payload.update(overrides)
        return cls.build(**payload)
