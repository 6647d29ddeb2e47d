"""Unit tests for the FIPE price refresh."""

import httpx
import pytest
from unittest.mock import AsyncMock, patch
from app.models.fleet_vehicle import FleetVehicle
from app.schemas.fipe import FipeRefreshIn
from app.services.fipe_service import (
    FipeError,
    call_fipe,
    map_category_to_vehicle_type,
    refresh_fipe_batch,
    to_year_id,
)

FIPE_BODY = {"price": "R$ 45.320,00", "brand": "Fiat", "model": "Strada 1.4", "fuel": "Flex", "modelYear": 2020}


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("app.services.fipe_service.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


class TestHelpers:
    @pytest.mark.parametrize("category,expected", [
        ("Caminhão", "trucks"),
        ("Moto", "motorcycles"),
        ("Carros", "cars"),
        (None, "cars"),
    ])
    def test_vehicle_type(self, category, expected):
        assert map_category_to_vehicle_type(category) == expected

    def test_year_id(self):
        assert to_year_id(2020) == "2020-0"
        assert to_year_id("2020-1") == "2020-1"
        assert to_year_id("20") is None
        assert to_year_id(None) is None


class TestCallFipe:
    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if len(calls) < 3:
                return httpx.Response(502)
            return httpx.Response(200, json=FIPE_BODY)

        async with mock_client(handler) as client:
            body = await call_fipe(client, "cars", "001004-9", "2020-0", max_retries=2)

        assert body["price"] == "R$ 45.320,00"
        assert len(calls) == 3
        assert calls[0].endswith("/cars/001004-9/years/2020-0")

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(404, text="not found")

        async with mock_client(handler) as client:
            with pytest.raises(FipeError):
                await call_fipe(client, "cars", "000000-0", "2020-0", max_retries=2)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_reference_is_sent_as_query(self):
        seen = {}

        def handler(request):
            seen["reference"] = request.url.params.get("reference")
            return httpx.Response(200, json=FIPE_BODY)

        async with mock_client(handler) as client:
            await call_fipe(client, "cars", "001004-9", "2020-0", reference=310)
        assert seen["reference"] == "310"

    @pytest.mark.asyncio
    async def test_path_segments_are_encoded(self):
        seen = {}

        def handler(request):
            seen["raw_path"] = request.url.raw_path
            return httpx.Response(200, json=FIPE_BODY)

        async with mock_client(handler) as client:
            await call_fipe(client, "cars", "001/004-9", "2020-0")
        assert seen["raw_path"].endswith(b"/cars/001%2F004-9/years/2020-0")


class TestRefreshBatch:
    @pytest.mark.asyncio
    async def test_updates_vehicles_and_records_failures(self, db, make_vehicle):
        ok = make_vehicle(placa="AAA1111", codigo_fipe="001004-9", ano_modelo=2020, categoria="Carros")
        bad = make_vehicle(placa="BBB2222", codigo_fipe="999999-9", ano_modelo=2019)
        make_vehicle(placa="CCC3333", codigo_fipe=None, ano_modelo=2019)

        def handler(request):
            if "999999-9" in request.url.path:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, json=FIPE_BODY)

        async with mock_client(handler) as client:
            result = await refresh_fipe_batch(db, FipeRefreshIn(concurrency=2), client=client)

        assert result["ok"] is True
        assert result["stats"] == {"total": 2, "processed": 2, "success": 1, "fail": 1, "skipped": 0}
        assert result["errors"][0]["id"] == bad.id
        assert result["updatedSample"] == [{"id": ok.id, "preco_fipe": "R$ 45.320,00", "priceNumber": 45320.0}]
        db.refresh(ok)
        assert ok.preco_fipe == "R$ 45.320,00"
        assert ok.marca == "Fiat"
        assert ok.combustivel == "Flex"

    @pytest.mark.asyncio
    async def test_dry_run_and_invalid_year(self, db, make_vehicle):
        vehicle = make_vehicle(codigo_fipe="001004-9", ano_modelo=2020)
        params = FipeRefreshIn(mode="list", dry_run=True, list=[
            {"id": vehicle.id, "codigo_fipe": "001004-9", "ano_modelo": 2020},
            {"id": 42, "codigo_fipe": "001004-9", "ano_modelo": None},
        ])

        async with mock_client(lambda r: httpx.Response(200, json=FIPE_BODY)) as client:
            result = await refresh_fipe_batch(db, params, client=client)

        assert result["stats"]["success"] == 1
        assert result["stats"]["skipped"] == 1
        assert result["errors"] == [{"id": 42, "reason": "Ano ausente/inválido"}]
        db.refresh(vehicle)
        assert vehicle.preco_fipe is None

    @pytest.mark.asyncio
    async def test_nested_filter_selects_only_missing_prices(self, db, make_vehicle):
        priced = make_vehicle(placa="AAA1111", codigo_fipe="001004-9", ano_modelo=2020, preco_fipe="R$ 1,00")
        missing = make_vehicle(placa="BBB2222", codigo_fipe="001004-9", ano_modelo=2020)
        params = FipeRefreshIn.model_validate({"dry_run": True, "filter": {"onlyMissingPrice": True}})

        async with mock_client(lambda r: httpx.Response(200, json=FIPE_BODY)) as client:
            result = await refresh_fipe_batch(db, params, client=client)

        assert result["stats"]["total"] == 1
        assert [s["id"] for s in result["updatedSample"]] == [missing.id]
        assert priced.id not in [s["id"] for s in result["updatedSample"]]

    @pytest.mark.asyncio
    async def test_query_filters_by_company(self, db, make_vehicle):
        make_vehicle(empresa_id="emp-1", placa="AAA1111", codigo_fipe="001004-9", ano_modelo=2020)
        make_vehicle(empresa_id="emp-2", placa="AAA1111", codigo_fipe="001004-9", ano_modelo=2020)

        async with mock_client(lambda r: httpx.Response(200, json=FIPE_BODY)) as client:
            result = await refresh_fipe_batch(db, FipeRefreshIn(empresa_id="emp-2", dry_run=True), client=client)

        assert result["stats"]["total"] == 1
        assert db.query(FleetVehicle).filter(FleetVehicle.preco_fipe.isnot(None)).count() == 0
