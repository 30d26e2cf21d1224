from unittest.mock import AsyncMock

import pytest

from livability.data.base import Coordinate, GeocodeError, GeocodeNotFound, GeocodeSuccess, POIBundle
from livability.services.batch_service import BatchService, InvalidBatchError, LocationResult
from tests.factories import PRAGUE, make_bundle


def _success(address: str, lat: float = 50.0880, lon: float = 14.4208) -> GeocodeSuccess:
    return GeocodeSuccess(coordinate=Coordinate(lat=lat, lon=lon), display_name=f"{address}, Česko")


@pytest.fixture
def geo():
    client = AsyncMock()
    client.resolve = AsyncMock(side_effect=lambda address: _success(address))
    return client


@pytest.fixture
def poi():
    service = AsyncMock()
    service.aggregate = AsyncMock(return_value=make_bundle(transport=2, schools=1, shops=3))
    return service


@pytest.fixture
def batch(geo, poi):
    return BatchService(geo=geo, poi=poi, max_batch_size=20)


class TestValidation:
    @pytest.mark.parametrize("addresses", [
        [],
        ["Václavské náměstí, Praha", ""],
        ["Václavské náměstí, Praha", "   "],
        [f"Ulice {i}, Praha" for i in range(21)],
        "Václavské náměstí, Praha",
    ])
    async def test_rejects_before_any_network_call(self, batch, geo, poi, addresses):
        with pytest.raises(InvalidBatchError):
            await batch.process(addresses, 500)
        geo.resolve.assert_not_called()
        poi.aggregate.assert_not_called()

    @pytest.mark.parametrize("radius", [0, -100, True])
    async def test_rejects_bad_radius(self, batch, geo, radius):
        with pytest.raises(InvalidBatchError):
            await batch.process(["Praha"], radius)
        geo.resolve.assert_not_called()

    async def test_accepts_exactly_max_batch(self, batch):
        results = await batch.process([f"Ulice {i}, Praha" for i in range(20)], 500)
        assert len(results) == 20

    def test_invalid_batch_is_value_error(self):
        assert issubclass(InvalidBatchError, ValueError)


class TestProcess:
    async def test_success_attaches_bundle(self, batch, poi):
        results = await batch.process(["Václavské náměstí, Praha"], 1000)

        assert len(results) == 1
        result = results[0]
        assert isinstance(result, LocationResult)
        assert result.status == "success"
        assert result.coordinate == PRAGUE
        assert result.search_radius == 1000
        assert result.poi_status == "available"
        assert len(result.poi_nearby.shops) == 3
        poi.aggregate.assert_awaited_once_with(PRAGUE, 1000)

    async def test_preserves_input_order_and_runs_sequentially(self, geo, poi):
        calls: list[str] = []

        async def resolve(address):
            calls.append(f"geo:{address}")
            return _success(address)

        async def aggregate(coordinate, radius):
            calls.append("poi")
            return make_bundle(shops=1)

        geo.resolve = AsyncMock(side_effect=resolve)
        poi.aggregate = AsyncMock(side_effect=aggregate)
        results = await BatchService(geo=geo, poi=poi).process(["a", "b", "c"], 300)

        assert [r.address for r in results] == ["a", "b", "c"]
        assert calls == ["geo:a", "poi", "geo:b", "poi", "geo:c", "poi"]

    async def test_not_found_and_error_skip_poi_lookup(self, geo, poi):
        outcomes = {
            "good": _success("good"),
            "missing": GeocodeNotFound(),
            "broken": GeocodeError(message="Geocoding request timed out"),
        }
        geo.resolve = AsyncMock(side_effect=lambda address: outcomes[address])
        results = await BatchService(geo=geo, poi=poi).process(["missing", "good", "broken"], 1000)

        assert [r.status for r in results] == ["not_found", "success", "error"]
        assert results[0].poi_nearby is None and results[0].coordinate is None
        assert results[2].message == "Geocoding request timed out"
        assert results[2].poi_status == "unavailable"
        assert poi.aggregate.await_count == 1

    async def test_empty_bundle_is_reported_unavailable(self, batch, poi):
        poi.aggregate.return_value = POIBundle()
        results = await batch.process(["Praha"], 1000)
        assert results[0].status == "success"
        assert results[0].poi_nearby is None
        assert results[0].poi_status == "unavailable"

    async def test_strips_whitespace_before_geocoding(self, batch, geo):
        await batch.process(["  Národní 1, Praha  "], 1000)
        geo.resolve.assert_awaited_once_with("Národní 1, Praha")
