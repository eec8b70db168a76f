"""Unit tests for ShipmentService."""

from collections import defaultdict
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from postgrest.exceptions import APIError as PostgrestAPIError

from src.api.middleware.error_handler import (
    CarrierUnavailableError,
    OrderNotFoundError,
    ShipmentAlreadyExistsError,
    ShipmentNotFoundError,
)
from src.core.carrier import CarrierError, TrackingInfo
from src.services.shipment_service import ShipmentService, build_shipment_payload, carrier_error_message
from tests.conftest import CUSTOMER_ID, execute_result

ORDER = {
    "order_id": 101,
    "order_number": "ORD-TEST-ABCDE",
    "customer_id": CUSTOMER_ID,
    "status": "Pending",
    "payment_status": "unpaid",
    "total_amount": "450.00",
    "customer_name": "Asha",
    "customer_phone": "9876543210",
    "shipping_address": "12 Tea Garden Road",
    "shipping_city": "Siliguri",
    "shipping_state": "West Bengal",
    "shipping_pincode": "734001",
}

SHIPMENT = {
    "shipment_id": 5,
    "order_id": 101,
    "waybill": "W123",
    "tracking_url": "https://track.example/W123",
    "shipment_status": "Created",
    "is_success": True,
}


@pytest.fixture
def tables() -> defaultdict:
    """One mock per table name."""
    return defaultdict(MagicMock)


@pytest.fixture
def carrier() -> MagicMock:
    carrier = MagicMock()
    carrier.allocate_waybill = AsyncMock(return_value="W123")
    carrier.create_shipment = AsyncMock(return_value={"success": True, "packages": []})
    carrier.cancel_shipment = AsyncMock(return_value={"status": True})
    carrier.track_shipment = AsyncMock()
    carrier.generate_label = AsyncMock()
    return carrier


@pytest.fixture
def shipment_service(tables: defaultdict, carrier: MagicMock) -> Generator[ShipmentService, None, None]:
    client = MagicMock()
    client.table.side_effect = lambda name: tables[name]
    charges = MagicMock()
    charges.weight_for_items = AsyncMock(return_value=500)
    with patch("src.services.shipment_service.get_supabase_client", return_value=client), \
         patch("src.services.shipment_service.ShippingChargeService", return_value=charges):
        yield ShipmentService(carrier=carrier)


def set_order(tables: defaultdict, order: dict | None) -> None:
    tables["orders"].select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = (
        execute_result(order) if order else None
    )


def set_shipment(tables: defaultdict, shipment: dict | None) -> None:
    tables["shipments"].select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = (
        execute_result(shipment) if shipment else None
    )


def set_shipment_update(tables: defaultdict, **changes) -> MagicMock:
    update = tables["shipments"].update
    update.return_value.eq.return_value.execute.return_value = execute_result([{**SHIPMENT, **changes}])
    return update


class TestHelpers:
    """Tests for payload and error helpers."""

    def test_cod_payload_for_unpaid_order(self) -> None:
        payload = build_shipment_payload(ORDER, "W123", 500, "Darjeeling x2", "Main Warehouse")

        package = payload["shipments"][0]
        assert package["payment_mode"] == "COD"
        assert package["cod_amount"] == "450.00"
        assert package["waybill"] == "W123"
        assert package["weight"] == 500
        assert payload["pickup_location"] == {"name": "Main Warehouse"}

    def test_prepaid_payload_for_paid_order(self) -> None:
        payload = build_shipment_payload({**ORDER, "payment_status": "paid"}, "W123", 500, "x", "WH")

        assert payload["shipments"][0]["payment_mode"] == "Prepaid"
        assert payload["shipments"][0]["cod_amount"] == "0"

    @pytest.mark.parametrize(
        ("response", "expected"),
        [
            ({"rmk": "Pincode not serviceable"}, "Pincode not serviceable"),
            ({"packages": [{"remarks": ["Bad address", "Bad phone"]}]}, "Bad address; Bad phone"),
            ({"error": "Unauthorized"}, "Unauthorized"),
            ({}, None),
        ],
    )
    def test_carrier_error_message(self, response: dict, expected: str | None) -> None:
        assert carrier_error_message(response) == expected


class TestCreateShipment:
    """Tests for create_shipment_for_order."""

    @pytest.mark.asyncio
    async def test_creates_shipment(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, None)
        tables["shipments"].insert.return_value.execute.return_value = execute_result(
            [{**SHIPMENT, "is_success": False}]
        )
        update = set_shipment_update(tables, is_success=True)

        outcome = await shipment_service.create_shipment_for_order(101)

        assert outcome.carrier.ok is True
        assert outcome.shipment["is_success"] is True
        inserted = tables["shipments"].insert.call_args.args[0]
        assert inserted["waybill"] == "W123"
        assert inserted["is_success"] is False
        assert update.call_args.args[0]["is_success"] is True
        carrier.create_shipment.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_carrier_rejection_still_persists(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, None)
        tables["shipments"].insert.return_value.execute.return_value = execute_result(
            [{**SHIPMENT, "is_success": False}]
        )
        update = set_shipment_update(tables, is_success=False)
        carrier.create_shipment.return_value = {"success": False, "rmk": "Pincode not serviceable"}

        outcome = await shipment_service.create_shipment_for_order(101)

        assert outcome.carrier.ok is False
        assert outcome.carrier.error == "Pincode not serviceable"
        fields = update.call_args.args[0]
        assert fields["is_success"] is False
        assert fields["carrier_response"]["rmk"] == "Pincode not serviceable"

    @pytest.mark.asyncio
    async def test_carrier_timeout_still_persists(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, None)
        tables["shipments"].insert.return_value.execute.return_value = execute_result([SHIPMENT])
        update = set_shipment_update(tables, is_success=False)
        carrier.create_shipment.side_effect = CarrierError("create_shipment", "Timed out after 10.0s")

        outcome = await shipment_service.create_shipment_for_order(101)

        assert outcome.carrier.ok is False
        assert update.call_args.args[0]["carrier_response"] == {
            "error": True,
            "details": "create_shipment: Timed out after 10.0s",
        }

    @pytest.mark.asyncio
    async def test_existing_shipment_rejected(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, SHIPMENT)

        with pytest.raises(ShipmentAlreadyExistsError):
            await shipment_service.create_shipment_for_order(101)

        carrier.allocate_waybill.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_insert_conflict(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, None)
        tables["shipments"].insert.return_value.execute.side_effect = PostgrestAPIError(
            {"message": "duplicate key value", "code": "23505", "hint": None, "details": None}
        )

        with pytest.raises(ShipmentAlreadyExistsError):
            await shipment_service.create_shipment_for_order(101)

        carrier.create_shipment.assert_not_called()

    @pytest.mark.asyncio
    async def test_waybill_failure_persists_nothing(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, None)
        carrier.allocate_waybill.side_effect = CarrierError("allocate_waybill", "HTTP 503", status_code=503)

        with pytest.raises(CarrierUnavailableError):
            await shipment_service.create_shipment_for_order(101)

        tables["shipments"].insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_order(self, shipment_service: ShipmentService, tables: defaultdict) -> None:
        set_order(tables, None)

        with pytest.raises(OrderNotFoundError):
            await shipment_service.create_shipment_for_order(999)


class TestCancelShipment:
    """Tests for cancel_shipment_for_order."""

    @pytest.mark.asyncio
    async def test_carrier_failure_still_cancels_locally(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, SHIPMENT)
        update = set_shipment_update(tables, shipment_status="Cancelled")
        carrier.cancel_shipment.side_effect = CarrierError("cancel_shipment", "HTTP 500", status_code=500)

        outcome = await shipment_service.cancel_shipment_for_order(101)

        assert outcome.carrier.ok is False
        assert outcome.shipment["shipment_status"] == "Cancelled"
        assert update.call_args.args[0]["shipment_status"] == "Cancelled"

    @pytest.mark.asyncio
    async def test_already_cancelled_is_noop(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, {**SHIPMENT, "shipment_status": "Cancelled"})

        outcome = await shipment_service.cancel_shipment_for_order(101)

        assert outcome.carrier.ok is True
        carrier.cancel_shipment.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_shipment(self, shipment_service: ShipmentService, tables: defaultdict) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, None)

        with pytest.raises(ShipmentNotFoundError):
            await shipment_service.cancel_shipment_for_order(101)


class TestTracking:
    """Tests for shipment tracking."""

    @pytest.mark.asyncio
    async def test_updates_changed_status(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, SHIPMENT)
        update = set_shipment_update(tables, shipment_status="In Transit")
        carrier.track_shipment.return_value = TrackingInfo(status="In Transit", history=[{"ScanType": "UD"}], raw={})

        result = await shipment_service.track_shipment_for_order(101)

        assert result.tracking.status == "In Transit"
        assert result.shipment["shipment_status"] == "In Transit"
        update.assert_called_once()
        carrier.track_shipment.assert_awaited_once_with("W123", "ORD-TEST-ABCDE")

    @pytest.mark.asyncio
    async def test_carrier_failure_returns_stored_shipment(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, SHIPMENT)
        carrier.track_shipment.side_effect = CarrierError("track_shipment", "HTTP 502", status_code=502)

        result = await shipment_service.track_shipment_for_order(101)

        assert result.tracking is None
        assert result.shipment == SHIPMENT
        assert "HTTP 502" in result.error

    @pytest.mark.asyncio
    async def test_customer_cannot_track_other_order(
        self, shipment_service: ShipmentService, tables: defaultdict
    ) -> None:
        set_order(tables, {**ORDER, "customer_id": "someone-else"})

        with pytest.raises(OrderNotFoundError):
            await shipment_service.track_for_customer(101, CUSTOMER_ID)


class TestLabels:
    """Tests for label generation."""

    @pytest.mark.asyncio
    async def test_generated_label(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, SHIPMENT)
        carrier.generate_label.return_value = {
            "packages_found": 1,
            "packages": [{"pdf_download_link": "https://labels.example/W123.pdf"}],
        }
        tables["shipment_labels"].upsert.return_value.execute.return_value = execute_result([])

        label = await shipment_service.generate_label_for_order(101)

        assert label["status"] == "generated"
        assert label["pdf_url"] == "https://labels.example/W123.pdf"
        assert tables["shipment_labels"].upsert.call_args.kwargs == {"on_conflict": "shipment_id"}

    @pytest.mark.asyncio
    async def test_carrier_failure_stores_pending_label(
        self, shipment_service: ShipmentService, tables: defaultdict, carrier: MagicMock
    ) -> None:
        set_order(tables, ORDER)
        set_shipment(tables, SHIPMENT)
        carrier.generate_label.side_effect = CarrierError("generate_label", "HTTP 500", status_code=500)
        tables["shipment_labels"].upsert.return_value.execute.return_value = execute_result([])

        label = await shipment_service.generate_label_for_order(101)

        assert label["status"] == "pending"
        assert label["pdf_url"] is None
