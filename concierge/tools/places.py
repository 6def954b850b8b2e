"""
Google Places integration for provider search and details lookup.

Wraps the synchronous ``googlemaps`` client; every request runs in a worker
thread so the event loop keeps serving other lookups in the same batch.
"""

import asyncio
import logging
from typing import Any, Optional

import googlemaps
from googlemaps.exceptions import ApiError

from concierge.config import PlacesConfig
from concierge.schemas.research_schema import Coordinates, PlaceDetails, SearchPage

logger = logging.getLogger(__name__)

DETAIL_FIELDS = [
    "place_id",
    "name",
    "formatted_address",
    "formatted_phone_number",
    "international_phone_number",
    "website",
    "rating",
    "user_ratings_total",
    "geometry",
    "url",
    "opening_hours",
]


def _to_place(result: dict[str, Any], place_id: Optional[str] = None) -> PlaceDetails:
    """Map a raw Places result (search or details) onto ``PlaceDetails``."""
    location = result.get("geometry", {}).get("location") or {}
    hours = result.get("opening_hours") or {}
    return PlaceDetails(
        place_id=result.get("place_id") or place_id or "",
        name=result.get("name", ""),
        address=result.get("formatted_address", ""),
        phone=result.get("formatted_phone_number"),
        international_phone=result.get("international_phone_number"),
        website=result.get("website"),
        rating=result.get("rating"),
        review_count=result.get("user_ratings_total"),
        location=(
            Coordinates(latitude=location["lat"], longitude=location["lng"])
            if "lat" in location and "lng" in location else None
        ),
        google_maps_uri=result.get("url"),
        opening_hours=hours.get("weekday_text"),
        open_now=hours.get("open_now"),
    )


class GooglePlacesClient:
    """Text search and details lookups against the Google Places API."""

    def __init__(self, config: PlacesConfig, client: Optional[Any] = None) -> None:
        if client is None:
            if not config.api_key:
                raise ValueError(
                    "Missing GOOGLE_PLACES_API_KEY (or GOOGLE_MAPS_API_KEY) environment variable"
                )
            client = googlemaps.Client(key=config.api_key)
        self._client = client

    async def search(
        self,
        query: str,
        coordinates: Optional[Coordinates] = None,
        radius_meters: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> SearchPage:
        kwargs: dict[str, Any] = {"query": query}
        if coordinates is not None:
            kwargs["location"] = (coordinates.latitude, coordinates.longitude)
        if radius_meters is not None:
            kwargs["radius"] = radius_meters
        if page_token:
            kwargs["page_token"] = page_token

        response = await asyncio.to_thread(self._client.places, **kwargs)
        places = [_to_place(r) for r in response.get("results", [])]
        logger.debug("Places text search %r returned %d results", query, len(places))
        return SearchPage(places=places, next_page_token=response.get("next_page_token"))

    async def details(self, place_id: str) -> Optional[PlaceDetails]:
        """Fetch details for one place. Returns None when the place does not exist."""
        try:
            response = await asyncio.to_thread(
                self._client.place, place_id, fields=DETAIL_FIELDS
            )
        except ApiError as exc:
            if exc.status in ("NOT_FOUND", "INVALID_REQUEST"):
                logger.info("Place %s not found (%s)", place_id, exc.status)
                return None
            raise
        result = response.get("result")
        if not result:
            return None
        return _to_place(result, place_id=place_id)
