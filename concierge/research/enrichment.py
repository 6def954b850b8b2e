"""
Rate-limited batch enrichment of search results.

Candidates are looked up in fixed-size batches: lookups within a batch
run concurrently, batches run one after another with a fixed pause in
between to stay under the lookup quota. A failed lookup never aborts the
run; that provider is returned exactly as it came in.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from concierge.config import OrchestratorConfig
from concierge.errors import LookupFailure
from concierge.ports import PlacesLookup
from concierge.schemas.provider_schema import Provider
from concierge.schemas.research_schema import Coordinates, PlaceDetails

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8


def haversine_miles(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two points in miles, rounded to 0.1."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return round(2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(h)), 1)


def format_distance(miles: float) -> str:
    return f"{miles} miles"


@dataclass
class EnrichmentStats:
    total_input: int = 0
    enriched_count: int = 0
    failed_count: int = 0
    not_found_count: int = 0
    skipped_no_place_id: int = 0
    batch_count: int = 0
    duration_ms: int = 0


@dataclass
class EnrichmentResult:
    providers: list[Provider]
    stats: EnrichmentStats = field(default_factory=EnrichmentStats)


def merge_details(
    provider: Provider,
    details: PlaceDetails,
    origin: Optional[Coordinates],
) -> Provider:
    """Copy contact, hours and distance fields from a lookup onto a provider."""
    updates: dict = {
        "phone": details.phone or provider.phone,
        "international_phone": details.international_phone or provider.international_phone,
        "website": details.website or provider.website,
        "hours_of_operation": details.opening_hours or provider.hours_of_operation,
        "is_open_now": details.open_now if details.open_now is not None else provider.is_open_now,
        "google_maps_uri": details.google_maps_uri or provider.google_maps_uri,
        "review_count": details.review_count or provider.review_count,
    }
    location = details.location
    if location is None and provider.latitude is not None and provider.longitude is not None:
        location = Coordinates(latitude=provider.latitude, longitude=provider.longitude)
    if location is not None:
        updates["latitude"] = location.latitude
        updates["longitude"] = location.longitude
        if origin is not None:
            miles = haversine_miles(origin, location)
            updates["distance"] = miles
            updates["distance_text"] = format_distance(miles)
    return provider.model_copy(update=updates)


class ProviderEnricher:
    """
    Augments candidate providers with call-ready contact data and distance.

    Args:
        lookup: Place details capability.
        config: Supplies ``batch_size`` and ``batch_delay_ms``.
        sleep: Awaitable used for the inter-batch pause.
    """

    def __init__(
        self,
        lookup: PlacesLookup,
        config: OrchestratorConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._lookup = lookup
        self._batch_size = config.batch_size
        self._batch_delay_sec = config.batch_delay_ms / 1000
        self._sleep = sleep

    async def enrich(
        self,
        providers: list[Provider],
        origin: Optional[Coordinates] = None,
    ) -> EnrichmentResult:
        """
        Enrich every provider that carries a place id.

        Returns:
            Providers in input order, each enriched or unchanged, plus stats.
        """
        started = time.monotonic()
        stats = EnrichmentStats(total_input=len(providers))
        results: list[Provider] = []

        batches = [
            providers[i:i + self._batch_size]
            for i in range(0, len(providers), self._batch_size)
        ]
        for index, batch in enumerate(batches):
            if index > 0 and self._batch_delay_sec > 0:
                await self._sleep(self._batch_delay_sec)
            stats.batch_count += 1
            outcomes = await asyncio.gather(
                *(self._enrich_one(p, origin, stats) for p in batch)
            )
            results.extend(outcomes)

        stats.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Enriched %d/%d providers in %d batches (%d failed, %d without place id)",
            stats.enriched_count, stats.total_input, stats.batch_count,
            stats.failed_count, stats.skipped_no_place_id,
        )
        return EnrichmentResult(providers=results, stats=stats)

    async def _enrich_one(
        self,
        provider: Provider,
        origin: Optional[Coordinates],
        stats: EnrichmentStats,
    ) -> Provider:
        if not provider.place_id:
            stats.skipped_no_place_id += 1
            return provider
        try:
            details = await self._fetch(provider)
        except LookupFailure as exc:
            stats.failed_count += 1
            logger.warning("%s", exc)
            return provider
        if details is None:
            stats.not_found_count += 1
            logger.info("No place details for %s (%s)", provider.name, provider.place_id)
            return provider
        stats.enriched_count += 1
        return merge_details(provider, details, origin)

    async def _fetch(self, provider: Provider) -> Optional[PlaceDetails]:
        try:
            return await self._lookup.details(provider.place_id)
        except Exception as exc:
            raise LookupFailure(
                f"Details lookup failed for {provider.name} ({provider.place_id}): {exc}"
            ) from exc
