import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from .errors import EnrichmentFailure
from .models import Event, GeoCandidate

logger = logging.getLogger(__name__)

AZURE_MAPS_REVERSE_URL = "https://atlas.microsoft.com/search/address/reverse/json"


class _Address(BaseModel):
    locality: Optional[str] = None
    country_subdivision: Optional[str] = Field(None, alias="countrySubdivision")


class _AddressResult(BaseModel):
    address: _Address = Field(default_factory=_Address)


class _ReverseGeocodeResponse(BaseModel):
    addresses: List[_AddressResult] = Field(default_factory=list)


class AzureMapsGeocoder:
    def __init__(
        self,
        subscription_key: str,
        timeout: float = 5.0,
        base_url: str = AZURE_MAPS_REVERSE_URL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.subscription_key = subscription_key
        self.timeout = httpx.Timeout(timeout)
        self.base_url = base_url
        self.client = client

    async def reverse(self, latitude: float, longitude: float) -> List[GeoCandidate]:
        params = {
            "subscription-key": self.subscription_key,
            "api-version": "1.0",
            "query": f"{latitude},{longitude}",
        }
        if self.client is not None:
            response = await self.client.get(self.base_url, params=params, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.base_url, params=params)

        try:
            response.raise_for_status()
            payload = _ReverseGeocodeResponse.model_validate(response.json())
        except (httpx.HTTPStatusError, ValueError, ValidationError) as e:
            raise EnrichmentFailure(f"Reverse geocode failed: {e}") from e

        return [
            GeoCandidate(locality=item.address.locality, region=item.address.country_subdivision)
            for item in payload.addresses
        ]


class Enricher:
    """Best-effort reverse geocoding of an event's coordinates."""

    def __init__(self, geocoder=None):
        self.geocoder = geocoder

    async def enrich(self, event: Event):
        if event.latitude is None or event.longitude is None or self.geocoder is None:
            return

        try:
            candidates = await self.geocoder.reverse(event.latitude, event.longitude)
        except Exception as e:
            # enrichment is advisory
            logger.debug(f"Enrichment skipped for {event.latitude},{event.longitude}: {e!r}")
            return

        if not candidates:
            return
        event.city = candidates[0].locality
        event.country = candidates[0].region
