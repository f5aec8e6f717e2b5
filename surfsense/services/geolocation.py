"""Geolocation providers.

Location is optional everywhere: a provider that is disabled, denied or
unreachable returns None and recording carries on without a fix.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx
from pydantic import ValidationError

from surfsense.models.readings import LocationFix

logger = logging.getLogger("surfsense.geolocation")


class GeolocationProvider(ABC):
    """Permission-gated source of the current location fix."""

    async def request_permission(self) -> bool:
        return True

    @abstractmethod
    async def get_current_fix(self) -> LocationFix | None:
        """Return the current fix, or None if unavailable."""


class NullGeolocation(GeolocationProvider):
    """Provider used when location is disabled."""

    async def request_permission(self) -> bool:
        return False

    async def get_current_fix(self) -> LocationFix | None:
        return None


class StaticGeolocation(GeolocationProvider):
    """Fixed location, e.g. a configured home break."""

    def __init__(self, fix: LocationFix) -> None:
        self._fix = fix

    async def get_current_fix(self) -> LocationFix | None:
        return self._fix


class HttpGeolocation(GeolocationProvider):
    """Network geolocation from a JSON endpoint returning latitude/longitude.

    Args:
        url:         Lookup endpoint (ipapi.co-compatible response).
        enabled:     Whether the user granted location access.
        http_client: Optional pre-configured httpx client (for testing).
    """

    def __init__(
        self,
        url: str,
        enabled: bool = True,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 5.0,
    ) -> None:
        self._url = url
        self._enabled = enabled
        self._http_client = http_client
        self._timeout_s = timeout_s

    async def request_permission(self) -> bool:
        return self._enabled

    async def get_current_fix(self) -> LocationFix | None:
        if not self._enabled:
            return None
        try:
            if self._http_client is not None:
                response = await self._http_client.get(self._url, timeout=self._timeout_s)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self._url, timeout=self._timeout_s)
            response.raise_for_status()
            data = response.json()
            return LocationFix(
                latitude=data["latitude"],
                longitude=data["longitude"],
                accuracy=data.get("accuracy"),
            )
        except (httpx.HTTPError, KeyError, TypeError, ValueError, ValidationError) as exc:
            logger.warning("Error getting location: %s", exc)
            return None
