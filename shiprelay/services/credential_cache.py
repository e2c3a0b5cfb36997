"""
Per-carrier token cache.

One token per carrier per process, refreshed lazily once its TTL has elapsed.
Carriers register a coroutine that performs the login call; adapters receive
the cache as a collaborator and only ever call get_token(carrier).
Concurrent refreshes may both hit the login API; the last writer wins.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TokenFetcher = Callable[[], Awaitable[Optional[str]]]


class CredentialError(Exception):
    """Raised when a carrier token cannot be obtained (bad credentials, auth API down)."""

    def __init__(self, carrier: str, message: str, details: Any = None):
        super().__init__(f"{carrier}: {message}")
        self.carrier = carrier
        self.message = message
        self.details = details

    def to_detail(self) -> dict:
        """HTTP error body, details passed through for manual debugging."""
        return {"error": str(self), "details": self.details}


@dataclass
class CredentialToken:
    value: str
    fetched_at: float

    def is_valid(self, now: float, ttl_sec: float) -> bool:
        return now - self.fetched_at < ttl_sec


class CredentialCache:
    """Time-boxed token cache keyed by carrier name."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._fetchers: dict[str, tuple[TokenFetcher, float]] = {}
        self._tokens: dict[str, CredentialToken] = {}

    def register(self, carrier: str, fetcher: TokenFetcher, ttl_sec: float) -> None:
        self._fetchers[carrier] = (fetcher, ttl_sec)
        self._tokens.pop(carrier, None)

    def is_registered(self, carrier: str) -> bool:
        return carrier in self._fetchers

    def invalidate(self, carrier: str) -> None:
        """Drop the cached token, e.g. after the carrier answered 401 with it."""
        if self._tokens.pop(carrier, None) is not None:
            logger.info("Credential cache: invalidated %s token", carrier)

    async def get_token(self, carrier: str) -> str:
        if carrier not in self._fetchers:
            raise CredentialError(carrier, "carrier not configured")
        fetcher, ttl_sec = self._fetchers[carrier]
        cached = self._tokens.get(carrier)
        if cached and cached.is_valid(self._clock(), ttl_sec):
            return cached.value

        logger.info("Credential cache: fetching new %s token", carrier)
        try:
            value = await fetcher()
        except CredentialError:
            raise
        except Exception as e:
            raise CredentialError(carrier, "token request failed", details=str(e)) from e
        if not value:
            raise CredentialError(carrier, "token not returned by authentication API")
        self._tokens[carrier] = CredentialToken(value=value, fetched_at=self._clock())
        return value

    def describe(self) -> dict:
        """Token ages per carrier, for diagnostics. Never exposes token values."""
        now = self._clock()
        out = {}
        for carrier, (_, ttl_sec) in self._fetchers.items():
            token = self._tokens.get(carrier)
            out[carrier] = {
                "cached": bool(token and token.is_valid(now, ttl_sec)),
                "ageSeconds": int(now - token.fetched_at) if token else None,
                "ttlSeconds": int(ttl_sec),
            }
        return out
