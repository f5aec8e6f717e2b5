"""Tests for geolocation providers."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from surfsense.sensor.tests.sensor_fakes import TEST_LOCATION
from surfsense.services.geolocation import HttpGeolocation, NullGeolocation, StaticGeolocation


def _client(payload: dict | None = None, error: Exception | None = None) -> MagicMock:
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json = MagicMock(return_value=payload or {})
    client = MagicMock()
    client.get = AsyncMock(return_value=response, side_effect=error)
    return client


class TestHttpGeolocation:
    @pytest.mark.asyncio
    async def test_returns_fix(self) -> None:
        client = _client({"latitude": 21.66, "longitude": -158.05, "city": "Haleiwa"})
        provider = HttpGeolocation("https://geo.test/json", http_client=client)

        fix = await provider.get_current_fix()

        assert fix.latitude == pytest.approx(21.66)
        assert fix.longitude == pytest.approx(-158.05)
        client.get.assert_called_once()

    @pytest.mark.asyncio
    async def test_disabled_returns_none_without_request(self) -> None:
        client = _client({"latitude": 1, "longitude": 2})
        provider = HttpGeolocation("https://geo.test/json", enabled=False, http_client=client)
        assert await provider.request_permission() is False
        assert await provider.get_current_fix() is None
        client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_network_error_returns_none(self) -> None:
        client = _client(error=httpx.ConnectError("offline"))
        provider = HttpGeolocation("https://geo.test/json", http_client=client)
        assert await provider.get_current_fix() is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [{"city": "nowhere"}, {"latitude": 200, "longitude": 0}, {"latitude": "x", "longitude": 0}],
    )
    async def test_bad_payload_returns_none(self, payload: dict) -> None:
        provider = HttpGeolocation("https://geo.test/json", http_client=_client(payload))
        assert await provider.get_current_fix() is None


class TestSimpleProviders:
    @pytest.mark.asyncio
    async def test_null_provider(self) -> None:
        provider = NullGeolocation()
        assert await provider.request_permission() is False
        assert await provider.get_current_fix() is None

    @pytest.mark.asyncio
    async def test_static_provider(self) -> None:
        provider = StaticGeolocation(TEST_LOCATION)
        assert await provider.request_permission() is True
        assert await provider.get_current_fix() == TEST_LOCATION
