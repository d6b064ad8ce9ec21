"""Tests for lunch_finder.discovery_overpass."""

import asyncio
import json

import httpx
import pytest

from conftest import OVERPASS_URL, USER_AGENT, RecordingTransport, always_open, make_node, never_open, overpass_body, respond_with
from lunch_finder.discovery_overpass import (
    OverpassNode,
    UnknownElement,
    build_query,
    fetch_locations,
    nodes_to_locations,
    parse_elements,
    validate_area_name,
)
from lunch_finder.errors import (
    TransportFailureError,
    UnknownAmenityError,
    UpstreamEmptyOrMalformedError,
    UpstreamRejectedError,
)
from lunch_finder.models import Amenity, Coordinates, Location


def _fetch(transport, area="Stockholm", **kwargs):
    async def run():
        async with httpx.AsyncClient(transport=transport) as client:
            return await fetch_locations(
                area,
                client=client,
                user_agent=USER_AGENT,
                overpass_url=OVERPASS_URL,
                **kwargs,
            )

    return asyncio.run(run())


class TestBuildQuery:
    """Tests for build_query."""

    def test_matches_area_case_insensitively(self):
        query = build_query("Stockholm")
        assert '["name"~"Stockholm",i]' in query

    def test_starts_with_json_output_and_timeout(self):
        assert build_query("Lund").startswith("[out:json][timeout:25];")
        assert build_query("Lund", timeout_seconds=60).startswith("[out:json][timeout:60];")

    def test_selects_supported_amenities_with_name(self):
        query = build_query("Lund")
        assert 'node[amenity~"^(restaurant|cafe|fast_food|pub|bar|ice_cream|food_court)$"]' in query
        assert "[name]" in query
        assert query.rstrip().endswith("out center;")

    def test_constrains_to_region_by_default(self):
        query = build_query("Lund")
        assert "relation(52822) -> .region;" in query
        assert "(area.regionArea)" in query
        assert "(area.searchArea)" in query

    def test_region_can_be_disabled(self):
        query = build_query("Lund", region_relation_id=None)
        assert "regionArea" not in query
        assert "(area.searchArea);" in query

    def test_no_trailing_whitespace(self):
        for line in build_query("Lund").splitlines():
            assert line == line.rstrip()

    @pytest.mark.parametrize("area", ["", "   "])
    def test_blank_area_rejected(self, area):
        with pytest.raises(ValueError):
            build_query(area)


class TestValidateAreaName:
    def test_strips(self):
        assert validate_area_name("  Malmö ") == "Malmö"

    @pytest.mark.parametrize("area", ["", " ", 'Sto"ckholm', "a\\b", "two\nlines"])
    def test_rejects(self, area):
        with pytest.raises(ValueError):
            validate_area_name(area)


class TestParseElements:
    """Tests for parse_elements."""

    def test_numbers_and_numeric_strings(self):
        elements = parse_elements(
            {"elements": [make_node(lon=18.0, lat=59.3), make_node(lon="18.5", lat=" 59.5 ")]}
        )
        assert [(e.longitude, e.latitude) for e in elements] == [(18.0, 59.3), (18.5, 59.5)]

    def test_non_nodes_become_unknown(self):
        elements = parse_elements({"elements": [{"type": "way", "id": 1}, {"type": "area"}, make_node()]})
        assert elements[0] == UnknownElement(type="way")
        assert elements[1] == UnknownElement(type="area")
        assert isinstance(elements[2], OverpassNode)

    def test_extra_tags_are_kept(self):
        node = make_node(opening_hours="24/7", extra_tags={"website": "https://x.example", "cuisine": "thai"})
        (element,) = parse_elements({"elements": [node]})
        assert element.tags.opening_hours == "24/7"
        assert element.tags.extra == {"website": "https://x.example", "cuisine": "thai"}

    def test_node_without_tags(self):
        (element,) = parse_elements({"elements": [{"type": "node", "lon": 1, "lat": 2}]})
        assert element.tags is None

    @pytest.mark.parametrize("payload", [None, [], "text", {}, {"elements": None}, {"elements": {}}])
    def test_wrong_shape_is_malformed(self, payload):
        with pytest.raises(UpstreamEmptyOrMalformedError):
            parse_elements(payload)

    @pytest.mark.parametrize("lon", ["east", None, True, [1], 10**400, "nan", "inf", float("-inf")])
    def test_bad_coordinates_are_malformed(self, lon):
        with pytest.raises(UpstreamEmptyOrMalformedError):
            parse_elements({"elements": [make_node(lon=lon)]})


class TestNodesToLocations:
    """Tests for nodes_to_locations."""

    def test_keeps_order(self):
        names = ["A", "B", "C", "D"]
        elements = parse_elements({"elements": [make_node(name=n, amenity="restaurant") for n in names]})
        result = nodes_to_locations(elements, gate=always_open)
        assert [location.name for location in result] == names

    def test_missing_opening_hours_always_kept(self):
        elements = parse_elements({"elements": [make_node()]})
        assert len(nodes_to_locations(elements, gate=never_open)) == 1

    def test_closed_at_lunch_excluded(self):
        elements = parse_elements(
            {"elements": [make_node(name="Closed", opening_hours="Mo-Fr 18:00-22:00"), make_node(name="Open")]}
        )
        seen = []

        def gate(pattern):
            seen.append(pattern)
            return False

        result = nodes_to_locations(elements, gate=gate)
        assert [location.name for location in result] == ["Open"]
        assert seen == ["Mo-Fr 18:00-22:00"]

    def test_tagless_and_nameless_nodes_dropped(self):
        elements = parse_elements(
            {"elements": [{"type": "node", "lon": 1, "lat": 2}, make_node(name=None), make_node(name="Kept")]}
        )
        assert [location.name for location in nodes_to_locations(elements)] == ["Kept"]

    def test_unknown_amenity_fails_everything(self):
        elements = parse_elements({"elements": [make_node(name="Fine"), make_node(name="Odd", amenity="biergarten")]})
        with pytest.raises(UnknownAmenityError):
            nodes_to_locations(elements, gate=always_open)

    def test_closed_unknown_amenity_is_not_mapped(self):
        """Filtering happens before mapping, so a closed place cannot fail the fetch."""
        elements = parse_elements({"elements": [make_node(amenity="biergarten", opening_hours="Su 10:00-11:00")]})
        assert nodes_to_locations(elements, gate=never_open) == []


class TestFetchLocations:
    """Tests for fetch_locations."""

    def test_end_to_end_example(self):
        transport = respond_with(
            overpass_body(make_node(name="Café X", amenity="cafe", opening_hours="Mo-Fr 11:00-14:00"))
        )
        result = _fetch(transport, gate=always_open)
        assert result == [Location("Café X", Coordinates(18.0, 59.3), Amenity.CAFE, None)]

    def test_posts_query_with_user_agent(self):
        transport = respond_with(overpass_body())
        assert _fetch(transport) == []
        (request,) = transport.requests
        assert request.method == "POST"
        assert str(request.url) == OVERPASS_URL
        assert request.headers["User-Agent"] == USER_AGENT
        body = request.content.decode("utf-8")
        assert body == build_query("Stockholm")
        assert "[timeout:25]" in body

    def test_n_valid_nodes_give_n_locations(self):
        nodes = [make_node(name=f"Place {i}", amenity="fast_food", lon=i, lat=i) for i in range(5)]
        result = _fetch(respond_with(overpass_body(*nodes)))
        assert [location.name for location in result] == [f"Place {i}" for i in range(5)]
        assert all(location.amenity is Amenity.FAST_FOOD for location in result)

    def test_ignores_other_element_types(self):
        body = overpass_body({"type": "way", "id": 7, "center": {"lat": 1, "lon": 2}}, make_node(name="Only"))
        assert [location.name for location in _fetch(respond_with(body))] == ["Only"]

    def test_non_success_status_is_rejected(self):
        transport = respond_with(b"rate limited", status_code=429)
        with pytest.raises(UpstreamRejectedError) as excinfo:
            _fetch(transport, max_attempts=3)
        assert excinfo.value.status_code == 429
        assert excinfo.value.body == "rate limited"
        assert len(transport.requests) == 1

    @pytest.mark.parametrize("body", [b"", b"null", b"<html>busy</html>", b"[]", b'{"remark": "timeout"}'])
    def test_empty_or_malformed_body(self, body):
        with pytest.raises(UpstreamEmptyOrMalformedError):
            _fetch(respond_with(body))

    def test_unknown_amenity_fails_fetch(self):
        body = overpass_body(make_node(name="A"), make_node(name="B", amenity="nightclub"))
        with pytest.raises(UnknownAmenityError) as excinfo:
            _fetch(respond_with(body))
        assert excinfo.value.value == "nightclub"

    def test_transport_error_becomes_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = RecordingTransport(handler)
        with pytest.raises(TransportFailureError):
            _fetch(transport, max_attempts=1)
        assert len(transport.requests) == 1

    def test_transport_error_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadError("connection reset", request=request)
            return httpx.Response(200, content=overpass_body(make_node(name="Second try")))

        result = _fetch(RecordingTransport(handler), max_attempts=2)
        assert [location.name for location in result] == ["Second try"]
        assert len(calls) == 2

    def test_cancellation_propagates(self):
        started = asyncio.Event()

        class HangingTransport(httpx.AsyncBaseTransport):
            async def handle_async_request(self, request):
                started.set()
                await asyncio.sleep(3600)
                raise AssertionError("never reached")

        async def run():
            async with httpx.AsyncClient(transport=HangingTransport()) as client:
                task = asyncio.create_task(
                    fetch_locations("Stockholm", client=client, user_agent=USER_AGENT, overpass_url=OVERPASS_URL)
                )
                await started.wait()
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task

        asyncio.run(run())

    def test_response_body_is_json_decoded(self):
        payload = {"elements": [make_node(name="Ö-baren", amenity="bar")]}
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        (location,) = _fetch(respond_with(body))
        assert location.name == "Ö-baren"
        assert location.amenity is Amenity.BAR

    def test_out_of_range_coordinate_is_malformed(self):
        body = overpass_body(make_node(lon=10**400))
        with pytest.raises(UpstreamEmptyOrMalformedError):
            _fetch(respond_with(body))

    def test_undecodable_body_is_malformed(self):
        transport = RecordingTransport(
            lambda request: httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"notgzip")
        )
        with pytest.raises(UpstreamEmptyOrMalformedError):
            _fetch(transport, max_attempts=3)
        assert len(transport.requests) == 1

    def test_other_request_errors_become_transport_failure(self):
        def handler(request):
            raise httpx.TooManyRedirects("redirect loop", request=request)

        with pytest.raises(TransportFailureError):
            _fetch(RecordingTransport(handler), max_attempts=3)
