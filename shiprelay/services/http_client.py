"""
Outbound HTTP for the carrier and pincode APIs.

Every call gets a timeout. Idempotent GETs are retried on gateway errors and
dropped connections; POSTs go out once. `transport` is passed straight to
httpx (tests plug in httpx.MockTransport).
"""
import asyncio
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 8.0
DEFAULT_RETRIES = 1
RETRY_BACKOFF_BASE = 0.5  # seconds
MAX_BACKOFF = 5.0

RETRYABLE_STATUS = (502, 503, 504)
TRANSIENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout)


def _client(timeout: float, transport: Optional[httpx.AsyncBaseTransport]) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, transport=transport)


def _backoff(attempt: int) -> float:
    return min(RETRY_BACKOFF_BASE * (2 ** (attempt - 1)), MAX_BACKOFF)


async def request_with_retry(
    method: str,
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_RETRIES,
    retry_on: tuple[int, ...] = RETRYABLE_STATUS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs: Any,
) -> httpx.Response:
    attempts = max_retries + 1
    for attempt in range(1, attempts + 1):
        last_attempt = attempt == attempts
        try:
            async with _client(timeout, transport) as client:
                resp = await client.request(method, url, **kwargs)
        except TRANSIENT_ERRORS as e:
            if last_attempt:
                raise
            logger.warning("HTTP %s %s attempt %s failed: %s", method, url, attempt, e)
        else:
            if last_attempt or resp.status_code not in retry_on:
                return resp
            logger.info("HTTP %s %s attempt %s got %s, retrying", method, url, attempt, resp.status_code)
        await asyncio.sleep(_backoff(attempt))
    raise RuntimeError("unreachable")


async def get_with_retry(
    url: str,
    *,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_RETRIES,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    return await request_with_retry(
        "GET",
        url,
        params=params,
        headers=headers,
        timeout=timeout,
        max_retries=max_retries,
        transport=transport,
    )


async def post_no_retry(
    url: str,
    *,
    json: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """Single attempt: transit-time and serviceability POSTs are not safe to replay blindly."""
    async with _client(timeout, transport) as client:
        return await client.post(url, json=json or {}, headers=headers or {})


def json_or_none(resp: httpx.Response) -> Optional[Any]:
    """
    Decode a JSON body. Gateways return HTML error pages with 200/502 on outages;
    anything that is not JSON yields None.
    """
    content_type = (resp.headers.get("content-type") or "").lower()
    if "html" in content_type:
        return None
    text = (resp.text or "").lstrip()
    if not text or text.startswith("<"):
        return None
    try:
        return resp.json()
    except ValueError:
        return None
