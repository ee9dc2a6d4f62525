"""Error taxonomy for crawl runs."""
from __future__ import annotations


class CrawlError(RuntimeError):
    """Structured crawl error."""

    code = "crawl_error"

    def __init__(self, message: str, *, code: str | None = None, url: str = ""):
        super().__init__(message)
        if code:
            self.code = code
        self.url = url


class InvalidURL(CrawlError):
    code = "invalid_url"


class FetchTransient(CrawlError):
    """Retryable fetch failure (timeouts, 429, 5xx)."""

    code = "fetch_transient"

    def __init__(self, message: str, *, url: str = "", status_code: int | None = None, code: str | None = None):
        super().__init__(message, code=code, url=url)
        self.status_code = status_code


class FetchFatal(CrawlError):
    """Non-retryable fetch failure; the URL is marked failed."""

    code = "fetch_fatal"

    def __init__(self, message: str, *, url: str = "", status_code: int | None = None, code: str | None = None):
        super().__init__(message, code=code, url=url)
        self.status_code = status_code


class AuthenticationRequired(CrawlError):
    code = "auth_required"

    def __init__(self, url: str, challenge_type: str = "unknown", *, login_url: str = "", form_fields=None):
        super().__init__(f"Authentication required for {url} ({challenge_type}).", url=url)
        self.challenge_type = challenge_type
        self.login_url = login_url or url
        self.form_fields = list(form_fields or [])


class EstimatorTimeout(CrawlError):
    code = "estimator_timeout"


class ConfigurationError(CrawlError):
    code = "configuration_error"


class LedgerStateError(CrawlError):
    code = "ledger_state_error"
