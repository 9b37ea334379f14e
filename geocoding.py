# Reverse / forward geocoding against free OSM-based providers.
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Annotated, Any, Callable, Dict, Optional, Tuple

import httpx
from fastapi import Depends, Request

from config import settings

logger = logging.getLogger(__name__)

NOMINATIM_REVERSE = "https://nominatim.openstreetmap.org/reverse"
NOMINATIM_SEARCH = "https://nominatim.openstreetmap.org/search"
MAPSCO_REVERSE = "https://geocode.maps.co/reverse"

_CACHE_LIMIT = 1024


class GeocodeError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _display_name(data: Any) -> Optional[str]:
    if isinstance(data, dict) and isinstance(data.get("display_name"), str):
        return data["display_name"]
    return None


def _user_agent() -> str:
    # Nominatim's usage policy asks for an identifying User-Agent.
    return settings.nominatim_user_agent or f"MealBridge/1.0 ({settings.app_url})"


class Geocoder:
    """
    Reverse geocoding with a short-lived in-memory cache.

    Results are cached per coordinate rounded to six decimals for `cache_ttl`
    seconds. Nominatim is tried first; geocode.maps.co is the fallback.
    """

    def __init__(
        self,
        client: httpx.Client,
        cache_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        cache_size: int = _CACHE_LIMIT,
    ):
        self._client = client
        # insertion order is age order; the oldest entry is evicted first
        self._cache: OrderedDict[str, Tuple[Optional[str], float]] = OrderedDict()
        self.cache_ttl = cache_ttl
        self.cache_size = cache_size
        self._clock = clock

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def cache_key(lat: float, lng: float) -> str:
        return f"{lat:.6f},{lng:.6f}"

    def _remember(self, key: str, display: Optional[str], now: float) -> None:
        self._cache.pop(key, None)
        self._cache[key] = (display, now)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    def reverse(self, lat: float, lng: float) -> Dict[str, Any]:
        key = self.cache_key(lat, lng)
        now = self._clock()
        hit = self._cache.get(key)
        if hit is not None and now - hit[1] < self.cache_ttl:
            return {"display_name": hit[0], "cached": True}

        params = {"format": "json", "lat": lat, "lon": lng}
        try:
            r = self._client.get(
                NOMINATIM_REVERSE,
                params=params,
                headers={"User-Agent": _user_agent(), "Accept-Language": "en"},
            )
            if r.status_code == 200:
                data = r.json()
                display = _display_name(data)
                self._remember(key, display, now)
                return {"display_name": display, "raw": data, "provider": "nominatim"}
            logger.warning("Nominatim reverse returned %s for %s", r.status_code, key)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Nominatim reverse failed for %s: %s", key, exc)

        logger.info("Falling back to maps.co for %s", key)
        try:
            r = self._client.get(
                MAPSCO_REVERSE, params=params, headers={"Accept-Language": "en"}
            )
        except httpx.TimeoutException as exc:
            raise GeocodeError(str(exc) or "Geocoding timed out", 504)
        except httpx.HTTPError as exc:
            raise GeocodeError(str(exc) or "Geocoding failed", 500)

        if r.status_code != 200:
            raise GeocodeError(f"Upstream error and fallback {r.status_code}", 502)
        try:
            data = r.json()
        except ValueError:
            raise GeocodeError("Fallback returned invalid JSON", 502)
        display = _display_name(data)
        self._remember(key, display, now)
        return {"display_name": display, "raw": data, "provider": "maps.co"}

    def search(self, address: str) -> Tuple[float, float, Optional[str]]:
        """
        Returns (lat, lng, display_name). Raises GeocodeError on failure.
        """
        a = (address or "").strip()
        if not a:
            raise GeocodeError("Empty address", 400)
        try:
            r = self._client.get(
                NOMINATIM_SEARCH,
                params={"q": a, "format": "json", "limit": 1},
                headers={"User-Agent": _user_agent(), "Accept-Language": "en"},
            )
        except httpx.TimeoutException as exc:
            raise GeocodeError(str(exc) or "Geocoding timed out", 504)
        except httpx.HTTPError as exc:
            raise GeocodeError(str(exc) or "Geocoding failed", 500)
        if r.status_code != 200:
            raise GeocodeError(f"Upstream error {r.status_code}", 502)
        try:
            js = r.json()
            first = js[0]
            return float(first["lat"]), float(first["lon"]), _display_name(first)
        except (ValueError, IndexError, KeyError, TypeError):
            raise GeocodeError("No results", 404)


def build_geocoder() -> Geocoder:
    client = httpx.Client(timeout=settings.geocode_timeout)
    return Geocoder(client, cache_ttl=settings.geocode_cache_ttl)


def get_geocoder(request: Request) -> Geocoder:
    return request.app.state.geocoder


GeocoderDep = Annotated[Geocoder, Depends(get_geocoder)]
