"""Authentication providers invoked when a fetch hits a login wall."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from goalcrawl.core.ports import AuthChallenge, AuthProvider, AuthResult


class DenyAuthProvider(AuthProvider):
    async def authenticate(self, challenge: AuthChallenge) -> AuthResult:
        return AuthResult(success=False, message="no credential provider configured")


class CallbackAuthProvider(AuthProvider):
    """Delegates to an async callable (human-in-the-loop, vault lookup, ...)."""

    def __init__(self, callback: Callable[[AuthChallenge], Awaitable[AuthResult]], timeout: float = 60.0):
        self.callback = callback
        self.timeout = float(timeout)

    async def authenticate(self, challenge: AuthChallenge) -> AuthResult:
        try:
            result = await asyncio.wait_for(self.callback(challenge), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Authentication for {} timed out after {}s", challenge.url, self.timeout)
            return AuthResult(success=False, message="authentication timed out")
        except Exception as exc:
            logger.warning("Authentication callback failed for {}: {}", challenge.url, exc)
            return AuthResult(success=False, message=str(exc))
        if not isinstance(result, AuthResult):
            return AuthResult(success=bool(result))
        return result
