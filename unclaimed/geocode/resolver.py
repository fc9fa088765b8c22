"""Address resolution against a Nominatim-compatible search endpoint."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Optional

import httpx
import structlog

from unclaimed.geocode.rate_limit import RateLimiter
from unclaimed.observability.metrics import MetricsRegistry
from unclaimed.observability.tracing import log_request_result, span
from unclaimed.storage.models import PropertyRecord

LOGGER = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_COUNTRY = "US"
MIN_ADDRESS_PARTS = 2


@dataclass(frozen=True)
class GeocodeResult:
    """Coordinates and label for a resolved address."""

    latitude: float
    longitude: float
    display_name: str


class ResolverError(RuntimeError):
    """The geocoding service answered with a non-success status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Geocoding request failed: {status_code}")
        self.status_code = status_code


def build_query(*parts: Optional[str]) -> List[str]:
    """Trim the address parts and drop the empty ones."""
    return [part.strip() for part in parts if part and part.strip()]


class AddressResolver:
    """Turns postal addresses into coordinates, one rate-limited call at a time."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        limiter: RateLimiter,
        metrics: Optional[MetricsRegistry] = None,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._client = client
        self._limiter = limiter
        self._metrics = metrics or MetricsRegistry()
        self._base_url = base_url

    async def _request(self, query: str, country_code: str) -> Optional[GeocodeResult]:
        params = {
            "q": query,
            "format": "json",
            "limit": "1",
            "countrycodes": country_code.lower(),
            "addressdetails": "1",
        }
        waited = await self._limiter.acquire()
        if waited:
            self._metrics.incr("rate_limit_waits")
        with span(name="geocode", query=query):
            start = time.perf_counter()
            response = await self._client.get(self._base_url, params=params)
        self._metrics.observe_http(response.status_code)
        if not response.is_success:
            raise ResolverError(response.status_code)
        payload = response.json()
        log_request_result(
            query=query,
            status=response.status_code,
            matches=len(payload),
            elapsed_ms=int((time.perf_counter() - start) * 1000),
        )
        if not payload:
            return None
        first = payload[0]
        return GeocodeResult(
            latitude=float(first["lat"]),
            longitude=float(first["lon"]),
            display_name=first.get("display_name", ""),
        )

    async def resolve(
        self,
        street: Optional[str],
        city: Optional[str],
        state: Optional[str],
        postal_code: Optional[str],
        country_code: Optional[str] = DEFAULT_COUNTRY,
    ) -> Optional[GeocodeResult]:
        """Return the first match for the address, or ``None`` when it cannot be resolved.

        Addresses with fewer than two usable parts are not sent at all. Every
        failure (HTTP status, transport, malformed payload) is logged and
        reported as ``None`` so callers never abort on a single address.
        """
        parts = build_query(street, city, state, postal_code, country_code)
        if len(parts) < MIN_ADDRESS_PARTS:
            self._metrics.incr("geocode_skipped")
            return None
        query = ", ".join(parts)
        country = (country_code or DEFAULT_COUNTRY).strip() or DEFAULT_COUNTRY
        try:
            result = await self._request(query, country)
        except ResolverError as exc:
            self._metrics.incr("geocode_errors")
            LOGGER.warning("geocode_error", query=query, status=exc.status_code)
            return None
        except httpx.HTTPError as exc:
            self._metrics.incr("geocode_errors")
            LOGGER.warning("geocode_transport_error", query=query, reason=str(exc))
            return None
        except Exception as exc:  # malformed payloads and anything else the client raises
            self._metrics.incr("geocode_errors")
            LOGGER.warning("geocode_failed", query=query, reason=repr(exc))
            return None
        if result is None:
            self._metrics.incr("geocode_not_found")
        else:
            self._metrics.incr("geocode_matches")
        return result

    async def resolve_owner(self, record: PropertyRecord) -> Optional[GeocodeResult]:
        return await self.resolve(
            record.owner_street_1,
            record.owner_city,
            record.owner_state,
            record.owner_zip,
            record.owner_country_code or DEFAULT_COUNTRY,
        )

    async def resolve_holder(self, record: PropertyRecord) -> Optional[GeocodeResult]:
        # Holders are always domestic.
        return await self.resolve(
            record.holder_street_1,
            record.holder_city,
            record.holder_state,
            record.holder_zip,
            DEFAULT_COUNTRY,
        )
