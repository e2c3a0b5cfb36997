"""
Outbound HTTP helper tests - retry on gateway errors, single-shot POST, JSON sniffing
"""
import httpx
import pytest

from shiprelay.services import http_client
from shiprelay.services.http_client import get_with_retry, json_or_none, post_no_retry


@pytest.fixture
def backoffs(monkeypatch):
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr(http_client.asyncio, "sleep", fake_sleep)
    return recorded


def _sequence(*outcomes):
    """Transport answering with each status code (or raising each error) in turn; the last one repeats."""
    calls = []

    def handler(request):
        calls.append(request)
        outcome = outcomes[min(len(calls), len(outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"status": outcome})

    return httpx.MockTransport(handler), calls


class TestGetWithRetry:
    @pytest.mark.asyncio
    async def test_retries_gateway_error(self, backoffs):
        transport, calls = _sequence(503, 200)

        resp = await get_with_retry("https://carrier.test/x", max_retries=2, transport=transport)

        assert resp.status_code == 200
        assert len(calls) == 2
        assert backoffs == [0.5]

    @pytest.mark.asyncio
    async def test_last_gateway_error_is_returned(self, backoffs):
        transport, calls = _sequence(502)

        resp = await get_with_retry("https://carrier.test/x", max_retries=1, transport=transport)

        assert resp.status_code == 502
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self, backoffs):
        transport, calls = _sequence(404)

        resp = await get_with_retry("https://carrier.test/x", max_retries=3, transport=transport)

        assert resp.status_code == 404
        assert len(calls) == 1
        assert backoffs == []

    @pytest.mark.asyncio
    async def test_connection_error_raised_after_retries(self, backoffs):
        transport, calls = _sequence(httpx.ConnectError("refused"))

        with pytest.raises(httpx.ConnectError):
            await get_with_retry("https://carrier.test/x", max_retries=2, transport=transport)

        assert len(calls) == 3
        assert backoffs == [0.5, 1.0]


class TestPostNoRetry:
    @pytest.mark.asyncio
    async def test_single_attempt(self):
        transport, calls = _sequence(503)

        resp = await post_no_retry("https://carrier.test/x", json={"a": 1}, transport=transport)

        assert resp.status_code == 503
        assert len(calls) == 1


class TestJsonOrNone:
    def test_json(self):
        assert json_or_none(httpx.Response(200, json={"a": 1})) == {"a": 1}

    def test_html_error_page(self):
        resp = httpx.Response(200, text="<html>Bad gateway</html>", headers={"content-type": "text/html"})
        assert json_or_none(resp) is None

    def test_empty_or_garbage(self):
        assert json_or_none(httpx.Response(200, text="")) is None
        assert json_or_none(httpx.Response(200, text="not json")) is None
