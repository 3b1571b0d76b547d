"""Geocoding collaborator: reverse geocoding, road distances and place search."""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
from pydantic import BaseModel, Field

from src.utils.config import Settings
from src.utils.errors import GeocodingError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class AddressComponent(BaseModel):
    long_name: str = ""
    short_name: str = ""
    types: list[str] = Field(default_factory=list)


class ReverseGeocodeResult(BaseModel):
    formatted_address: str = ""
    address_components: list[AddressComponent] = Field(default_factory=list)
    plus_code: Optional[str] = None

    def component(self, component_type: str) -> str:
        for component in self.address_components:
            if component_type in component.types:
                return component.long_name
        return ""

    @property
    def locality(self) -> str:
        return self.component("locality")

    @property
    def city(self) -> str:
        return self.component("administrative_area_level_2")

    @property
    def state(self) -> str:
        return self.component("administrative_area_level_1")


class PlaceDetails(BaseModel):
    place_id: str
    name: str
    address: str = ""
    latitude: float
    longitude: float
    phone_number: str = ""
    weekday_text: list[str] = Field(default_factory=list)


class Geocoder(ABC):

    @abstractmethod
    async def reverse_geocode(self, latitude: float, longitude: float) -> Optional[ReverseGeocodeResult]:
        ...

    @abstractmethod
    async def distance_meters(self, origin: tuple, destination: tuple) -> Optional[float]:
        """Road distance in meters, or None when no route is known."""
        ...

    @abstractmethod
    async def search_places(self, query: str) -> list:
        """Place ids matching a free text query."""
        ...

    @abstractmethod
    async def place_details(self, place_id: str) -> Optional[PlaceDetails]:
        ...


class GoogleMapsGeocoder(Geocoder):
    """Google Maps web services over httpx."""

    BASE_URL = "https://maps.googleapis.com/maps/api"

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key or Settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout or Settings.HTTP_TIMEOUT_SECONDS

        if not self.api_key:
            raise GeocodingError("GOOGLE_MAPS_API_KEY must be set")

    async def _request(self, endpoint: str, params: dict) -> dict:
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"
        params = dict(params, key=self.api_key)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as e:
            raise GeocodingError(f"Maps request to {endpoint} failed: {e}")

        status = body.get("status")
        if status not in ("OK", "ZERO_RESULTS"):
            raise GeocodingError(f"Maps request to {endpoint} returned {status}")
        return body

    async def reverse_geocode(self, latitude: float, longitude: float) -> Optional[ReverseGeocodeResult]:
        body = await self._request("geocode/json", {"latlng": f"{latitude},{longitude}"})
        results = body.get("results") or []
        if not results:
            return None

        first = results[0]
        plus_code = (body.get("plus_code") or {}).get("global_code")
        return ReverseGeocodeResult(
            formatted_address=first.get("formatted_address", ""),
            address_components=[AddressComponent(**c) for c in first.get("address_components", [])],
            plus_code=plus_code,
        )

    async def distance_meters(self, origin: tuple, destination: tuple) -> Optional[float]:
        body = await self._request("distancematrix/json", {
            "origins": f"{origin[0]},{origin[1]}",
            "destinations": f"{destination[0]},{destination[1]}",
            "units": "metric",
        })
        try:
            element = body["rows"][0]["elements"][0]
        except (KeyError, IndexError):
            return None
        if element.get("status") != "OK":
            return None
        return float(element["distance"]["value"])

    async def search_places(self, query: str) -> list:
        body = await self._request("place/textsearch/json", {"query": query})
        return [result["place_id"] for result in body.get("results", []) if result.get("place_id")]

    async def place_details(self, place_id: str) -> Optional[PlaceDetails]:
        body = await self._request("place/details/json", {
            "place_id": place_id,
            "fields": "name,formatted_address,geometry,international_phone_number,opening_hours",
        })
        result = body.get("result")
        if not result:
            return None

        location = result.get("geometry", {}).get("location", {})
        if "lat" not in location or "lng" not in location:
            return None

        return PlaceDetails(
            place_id=place_id,
            name=result.get("name", ""),
            address=result.get("formatted_address", ""),
            latitude=location["lat"],
            longitude=location["lng"],
            phone_number=(result.get("international_phone_number") or "").replace(" ", ""),
            weekday_text=(result.get("opening_hours") or {}).get("weekday_text", []),
        )
