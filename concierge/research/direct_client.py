"""
Direct research backend: a places text search around the request location.

Used whenever the workflow engine is disabled or unhealthy. Results carry
place ids so the router can enrich them with phone numbers and hours.
"""

import logging
from typing import Optional

from concierge.config import ResearchConfig
from concierge.ports import PlacesLookup
from concierge.research.enrichment import format_distance, haversine_miles
from concierge.schemas.provider_schema import Provider, ProviderSource
from concierge.schemas.research_schema import (
    Coordinates,
    PlaceDetails,
    ResearchMethod,
    ResearchRequest,
    ResearchResult,
    ResearchStatus,
)

logger = logging.getLogger(__name__)


def _to_provider(
    place: PlaceDetails, request: ResearchRequest, origin: Optional[Coordinates]
) -> Provider:
    distance = (
        haversine_miles(origin, place.location)
        if origin is not None and place.location is not None else None
    )
    distance_text = format_distance(distance) if distance is not None else None
    reason = f"Highly rated {request.service} in {request.location}"
    if distance_text:
        reason += f" ({distance_text})"
    return Provider(
        name=place.name or "Unknown Provider",
        phone=place.phone,
        international_phone=place.international_phone,
        rating=place.rating,
        review_count=place.review_count,
        address=place.address or None,
        place_id=place.place_id or None,
        google_maps_uri=place.google_maps_uri,
        website=place.website,
        latitude=place.location.latitude if place.location else None,
        longitude=place.location.longitude if place.location else None,
        distance=distance,
        distance_text=distance_text,
        is_open_now=place.open_now,
        source=ProviderSource.SEARCH_RESULT,
        reason=reason,
    )


def _distance_key(provider: Provider) -> float:
    return provider.distance if provider.distance is not None else float("inf")


class DirectResearchClient:
    """Finds providers with one places text search, filtered and sorted by distance."""

    def __init__(self, places: PlacesLookup, config: ResearchConfig) -> None:
        self._places = places
        self._config = config

    async def health_check(self) -> bool:
        return True

    async def research(self, request: ResearchRequest) -> ResearchResult:
        query = f"{request.service} near {request.location}"
        logger.info("Direct research: %r", query)
        page = await self._places.search(
            query,
            coordinates=request.coordinates,
            radius_meters=self._config.search_radius_meters,
        )
        providers = [_to_provider(p, request, request.coordinates) for p in page.places]
        total = len(providers)

        if request.min_rating is not None:
            providers = [
                p for p in providers
                if p.rating is not None and p.rating >= request.min_rating
            ]
        providers.sort(key=_distance_key)
        limit = min(request.max_results, self._config.max_results)
        providers = providers[:limit]

        if not providers:
            return ResearchResult(
                status=ResearchStatus.ERROR,
                method=ResearchMethod.DIRECT,
                error="No providers found in search area",
                total_found=total,
                filtered_count=0,
            )
        return ResearchResult(
            status=ResearchStatus.SUCCESS,
            method=ResearchMethod.DIRECT,
            providers=providers,
            reasoning=(
                f"Found {len(providers)} providers via places search "
                f"({total} total, {len(providers)} after filtering)"
            ),
            total_found=total,
            filtered_count=len(providers),
        )
