import asyncio
import httpx
import pytest

from analytics_pipeline.enricher import AzureMapsGeocoder, Enricher
from analytics_pipeline.errors import EnrichmentFailure
from analytics_pipeline.models import Event, GeoCandidate

SEATTLE_RESPONSE = {
    "summary": {"numResults": 2},
    "addresses": [
        {"address": {"locality": "Seattle", "countrySubdivision": "WA", "country": "United States"}},
        {"address": {"locality": "Bellevue", "countrySubdivision": "WA"}},
    ],
}


def make_event(**overrides):
    fields = {"eventType": "page_view", "userId": "u1", "sessionId": "s1", "latitude": 47.6062, "longitude": -122.3321}
    fields.update(overrides)
    return Event.model_validate(fields)


def geocoder_with(handler, requests=None):
    def recording(request):
        if requests is not None:
            requests.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return AzureMapsGeocoder("test-key", timeout=1.0, client=client)


class CountingGeocoder:
    def __init__(self):
        self.calls = 0

    async def reverse(self, latitude, longitude):
        self.calls += 1
        return [GeoCandidate(locality="Nowhere", region="XX")]


def test_no_coordinates_is_a_no_op():
    geocoder = CountingGeocoder()
    event = make_event(latitude=None, longitude=None)
    asyncio.run(Enricher(geocoder).enrich(event))
    assert event.city is None and event.country is None
    assert geocoder.calls == 0


def test_partial_coordinates_is_a_no_op():
    geocoder = CountingGeocoder()
    event = make_event(longitude=None)
    asyncio.run(Enricher(geocoder).enrich(event))
    assert geocoder.calls == 0


def test_unconfigured_provider_is_a_no_op():
    event = make_event()
    asyncio.run(Enricher(None).enrich(event))
    assert event.city is None and event.country is None


def test_first_candidate_wins():
    requests = []
    geocoder = geocoder_with(lambda request: httpx.Response(200, json=SEATTLE_RESPONSE), requests)
    event = make_event()
    asyncio.run(Enricher(geocoder).enrich(event))

    assert event.city == "Seattle"
    assert event.country == "WA"
    assert len(requests) == 1
    params = requests[0].url.params
    assert params["subscription-key"] == "test-key"
    assert params["api-version"] == "1.0"
    assert params["query"] == "47.6062,-122.3321"


def test_empty_result_leaves_event_unenriched():
    geocoder = geocoder_with(lambda request: httpx.Response(200, json={"addresses": []}))
    event = make_event()
    asyncio.run(Enricher(geocoder).enrich(event))
    assert event.city is None and event.country is None


def test_http_error_is_swallowed():
    geocoder = geocoder_with(lambda request: httpx.Response(503, text="unavailable"))
    event = make_event()
    asyncio.run(Enricher(geocoder).enrich(event))
    assert event.city is None and event.country is None


def test_timeout_is_swallowed():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    event = make_event()
    asyncio.run(Enricher(geocoder_with(handler)).enrich(event))
    assert event.city is None and event.country is None


def test_geocoder_rejects_malformed_payload():
    geocoder = geocoder_with(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(EnrichmentFailure):
        asyncio.run(geocoder.reverse(1.0, 2.0))


def test_geocoder_rejects_unexpected_shape():
    geocoder = geocoder_with(lambda request: httpx.Response(200, json={"addresses": "none"}))
    with pytest.raises(EnrichmentFailure):
        asyncio.run(geocoder.reverse(1.0, 2.0))


def test_geocoder_raises_on_status_error():
    geocoder = geocoder_with(lambda request: httpx.Response(401, json={"error": "bad key"}))
    with pytest.raises(EnrichmentFailure):
        asyncio.run(geocoder.reverse(1.0, 2.0))
