"""
Unit tests for the engine and notification HTTP clients.

aiohttp is replaced by a small fake session so no network is touched.
"""

import asyncio
import json
import aiohttp
import pytest

from charterboard.clients.engine_client import (
    EngineClient,
    EngineError,
    NotificationClient,
)


class FakeResponse:
    def __init__(self, status=200, payload=None, reason="OK", json_error=None):
        self.status = status
        self.reason = reason
        self._payload = payload
        self._json_error = json_error

    async def json(self, content_type="application/json"):
        if self._json_error is not None:
            raise self._json_error
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.closed = False
        self.calls = []

    def _request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._request("POST", url, **kwargs)

    async def close(self):
        self.closed = True


ENGINE_PAYLOAD = {
    "success": True,
    "leaderboard": [{"position": 1, "userId": "captain_a"}],
    "metadata": {"totalPlayers": 1, "focusUserPosition": None},
}


class TestFetchLeaderboard:

    @pytest.mark.asyncio
    async def test_builds_engine_query(self, test_settings):
        session = FakeSession(FakeResponse(payload=ENGINE_PAYLOAD))
        client = EngineClient(test_settings, session=session)

        result = await client.fetch_leaderboard("activity", "activity", "weekly", 25)

        method, url, kwargs = session.calls[0]
        assert method == "GET"
        assert url == "http://charter.test/api/leaderboard/engine"
        assert kwargs["params"] == {
            "category": "activity",
            "algorithm": "activity",
            "timeframe": "weekly",
            "limit": "25",
            "realTime": "true",
        }
        assert result == {
            "leaderboard": ENGINE_PAYLOAD["leaderboard"],
            "metadata": ENGINE_PAYLOAD["metadata"],
        }

    @pytest.mark.asyncio
    async def test_http_error_raises(self, test_settings):
        session = FakeSession(FakeResponse(status=500, reason="Internal Server Error"))
        client = EngineClient(test_settings, session=session)

        with pytest.raises(EngineError) as exc_info:
            await client.fetch_leaderboard("composite", "composite", "weekly", 10)

        assert exc_info.value.status == 500
        assert "HTTP 500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unsuccessful_payload_raises(self, test_settings):
        session = FakeSession(FakeResponse(payload={"success": False, "error": "Enhanced leaderboard engine failed"}))
        client = EngineClient(test_settings, session=session)

        with pytest.raises(EngineError, match="Enhanced leaderboard engine failed"):
            await client.fetch_leaderboard("composite", "composite", "weekly", 10)

    @pytest.mark.asyncio
    async def test_network_error_raises(self, test_settings):
        session = FakeSession(error=aiohttp.ClientConnectionError("refused"))
        client = EngineClient(test_settings, session=session)

        with pytest.raises(EngineError, match="unreachable"):
            await client.fetch_leaderboard("composite", "composite", "weekly", 10)

    @pytest.mark.asyncio
    async def test_timeout_raises_engine_error(self, test_settings):
        session = FakeSession(error=asyncio.TimeoutError())
        client = EngineClient(test_settings, session=session)

        with pytest.raises(EngineError, match="timed out after 10.0s") as exc_info:
            await client.fetch_leaderboard("composite", "composite", "weekly", 10)

        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_timeout_while_reading_body_raises_engine_error(self, test_settings):
        session = FakeSession(FakeResponse(json_error=asyncio.TimeoutError()))
        client = EngineClient(test_settings, session=session)

        with pytest.raises(EngineError, match="timed out"):
            await client.fetch_user_position("u1", "composite")

    @pytest.mark.asyncio
    async def test_bad_json_raises(self, test_settings):
        error = json.JSONDecodeError("Expecting value", "<html>", 0)
        session = FakeSession(FakeResponse(json_error=error))
        client = EngineClient(test_settings, session=session)

        with pytest.raises(EngineError, match="Invalid engine response"):
            await client.fetch_leaderboard("composite", "composite", "weekly", 10)


class TestFetchUserPosition:

    @pytest.mark.asyncio
    async def test_reads_focus_position(self, test_settings):
        payload = {**ENGINE_PAYLOAD, "metadata": {"focusUserPosition": 12}}
        session = FakeSession(FakeResponse(payload=payload))
        client = EngineClient(test_settings, session=session)

        position = await client.fetch_user_position("angler_b", "trip_expert")

        params = session.calls[0][2]["params"]
        assert params["focusUserId"] == "angler_b"
        assert params["category"] == "trip_expert"
        assert params["algorithm"] == "specialized"
        assert params["limit"] == "1"
        assert position == 12

    @pytest.mark.asyncio
    async def test_known_category_uses_own_algorithm(self, test_settings):
        session = FakeSession(FakeResponse(payload=ENGINE_PAYLOAD))
        client = EngineClient(test_settings, session=session)

        position = await client.fetch_user_position("angler_b", "seasonal")

        assert session.calls[0][2]["params"]["algorithm"] == "seasonal"
        assert position is None


class TestDispatches:

    @pytest.mark.asyncio
    async def test_trigger_recalculation(self, test_settings):
        session = FakeSession(FakeResponse(payload={"success": True}))
        client = EngineClient(test_settings, session=session)

        result = await client.trigger_recalculation()

        method, url, kwargs = session.calls[0]
        assert method == "POST"
        assert kwargs["json"] == {"action": "recalculate"}
        assert result.ok is True

    @pytest.mark.asyncio
    async def test_trigger_recalculation_never_raises(self, test_settings):
        session = FakeSession(error=aiohttp.ClientConnectionError("refused"))
        client = EngineClient(test_settings, session=session)

        result = await client.trigger_recalculation()

        assert result.ok is False
        assert "refused" in result.error

    @pytest.mark.asyncio
    async def test_notification_body_and_sent_count(self, test_settings):
        session = FakeSession(FakeResponse(payload={"success": True, "sent": 3}))
        client = NotificationClient(test_settings, session=session)

        result = await client.send("u1", "position_change", {"timestamp": "now"})

        method, url, kwargs = session.calls[0]
        assert url == "http://charter.test/api/achievements/notifications"
        assert kwargs["json"] == {"userId": "u1", "type": "position_change", "data": {"timestamp": "now"}}
        assert result.ok is True
        assert result.sent == 3

    @pytest.mark.asyncio
    async def test_notification_http_error(self, test_settings):
        session = FakeSession(FakeResponse(status=503, reason="Service Unavailable"))
        client = NotificationClient(test_settings, session=session)

        result = await client.send("u1", "leaderboard_update", {})

        assert result.ok is False
        assert result.status == 503


class TestSessionOwnership:

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self, test_settings):
        session = FakeSession()
        client = NotificationClient(test_settings, session=session)

        await client.close()

        assert session.closed is False
