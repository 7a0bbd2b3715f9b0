"""
Domain models (Pydantic).

These types are the wire contract with the search service. The service answers
`GET <endpoint>?lat=..&lng=..&minProtein=..` with a JSON array of:

    {"name": "...", "address": "...", "location": {"lat": 1.0, "lng": 2.0}}

Each element decodes into one `SearchResultItem`. The whole array is validated in
one go, so a single bad element rejects the batch.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from mealmap.core.geo import GeoPoint


class Coordinates(BaseModel):
    """A geographic point in decimal degrees, as sent over the wire."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)


class SearchResultItem(BaseModel):
    """One search hit (a restaurant/meal) near the queried position."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    label: str = Field(..., alias="name")
    detail: str = Field(..., alias="address")
    location: Coordinates

    @property
    def id(self) -> str:
        # The service sends no stable identifier; the display label doubles as one.
        return self.label

    @property
    def point(self) -> GeoPoint:
        return self.location.to_point()


SEARCH_RESULTS_ADAPTER = TypeAdapter(list[SearchResultItem])


def parse_search_results(payload: object) -> list[SearchResultItem]:
    """Validate a decoded JSON payload into result items.

    Raises:
        pydantic.ValidationError: If the payload is not an array of valid items.
    """
    return SEARCH_RESULTS_ADAPTER.validate_python(payload)
