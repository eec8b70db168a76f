"""Integration tests for customer order and shipping routes."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from src.api.middleware.error_handler import (
    CarrierUnavailableError,
    DiscountInvalidError,
    EmptyCartError,
    InvalidTransitionError,
    OrderNotFoundError,
)
from src.core.carrier import TrackingInfo
from src.services.discount_engine import INVALID_CODE_REASON
from src.services.order_service import PlacedOrder
from src.services.shipment_service import ShipmentTracking
from src.services.shipping_charge_service import ChargeEstimate
from tests.conftest import AUTH_HEADERS, CUSTOMER_ID

ORDER_BODY = {
    "shipping_address": "12 Tea Garden Road",
    "shipping_city": "Gurugram",
    "shipping_state": "Haryana",
    "shipping_pincode": "122001",
    "customer_name": "Asha",
    "customer_phone": "9876543210",
}

ORDER_ROW = {
    "order_id": 101,
    "order_number": "ORD-LX2A9K3B-7Q2M",
    "customer_id": CUSTOMER_ID,
    "status": "Pending",
    "payment_status": "unpaid",
    "subtotal_amount": "500.00",
    "discount_amount": "50.00",
    "total_amount": "450.00",
    "discount_id": 3,
    **ORDER_BODY,
    "customer_email": "buyer@example.com",
    "order_date": "2025-06-15T12:00:00+00:00",
}

SHIPMENT_ROW = {
    "shipment_id": 7,
    "order_id": 101,
    "waybill": "1234567890",
    "tracking_url": "https://www.delhivery.com/track/package/1234567890",
    "shipment_status": "Created",
    "is_success": True,
}


class TestPlaceOrder:
    """Tests for POST /api/v1/orders."""

    def test_place_order_returns_201(self, client: TestClient, as_customer: MagicMock) -> None:
        placed = PlacedOrder(
            order_id=101,
            order_number="ORD-LX2A9K3B-7Q2M",
            subtotal_amount=Decimal("500.00"),
            discount_amount=Decimal("50.00"),
            total_amount=Decimal("450.00"),
            shipping_charge=Decimal("85.46"),
        )
        with patch("src.api.routes.orders.OrderService") as mock_service:
            mock_service.return_value.place_order = AsyncMock(return_value=placed)

            response = client.post("/api/v1/orders", json={**ORDER_BODY, "coupon_code": "TEA10"}, headers=AUTH_HEADERS)

        assert response.status_code == 201
        data = response.json()
        assert data["order_number"] == "ORD-LX2A9K3B-7Q2M"
        assert Decimal(data["total_amount"]) == Decimal("450.00")
        assert Decimal(data["shipping_charge"]) == Decimal("85.46")

        customer_id, shipping, coupon = mock_service.return_value.place_order.call_args.args
        assert customer_id == CUSTOMER_ID
        assert shipping.customer_email == "buyer@example.com"
        assert coupon == "TEA10"

    def test_requires_authentication(self, client: TestClient) -> None:
        response = client.post("/api/v1/orders", json=ORDER_BODY)

        assert response.status_code == 401

    def test_missing_shipping_field_is_422(self, client: TestClient, as_customer: MagicMock) -> None:
        body = {key: value for key, value in ORDER_BODY.items() if key != "customer_phone"}

        with patch("src.api.routes.orders.OrderService") as mock_service:
            response = client.post("/api/v1/orders", json=body, headers=AUTH_HEADERS)

        assert response.status_code == 422
        mock_service.assert_not_called()

    def test_empty_cart(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.orders.OrderService") as mock_service:
            mock_service.return_value.place_order = AsyncMock(side_effect=EmptyCartError())

            response = client.post("/api/v1/orders", json=ORDER_BODY, headers=AUTH_HEADERS)

        assert response.status_code == 400
        assert response.json()["error"] == "empty_cart"

    def test_invalid_coupon_rejects_order(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.orders.OrderService") as mock_service:
            mock_service.return_value.place_order = AsyncMock(
                side_effect=DiscountInvalidError(INVALID_CODE_REASON)
            )

            response = client.post(
                "/api/v1/orders", json={**ORDER_BODY, "coupon_code": "NOPE"}, headers=AUTH_HEADERS
            )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "discount_invalid"
        assert data["message"] == INVALID_CODE_REASON
        assert "details" not in data

    def test_order_rate_limit(self, client: TestClient, as_customer: MagicMock) -> None:
        placed = PlacedOrder(101, "ORD-1-AAAA", Decimal("1"), Decimal("0"), Decimal("1"), None)
        with patch("src.api.routes.orders.OrderService") as mock_service:
            mock_service.return_value.place_order = AsyncMock(return_value=placed)
            statuses = [
                client.post("/api/v1/orders", json=ORDER_BODY, headers=AUTH_HEADERS).status_code
                for _ in range(6)
            ]

        assert statuses == [201] * 5 + [429]


class TestReadOrders:
    """Tests for GET /api/v1/orders and GET /api/v1/orders/{id}."""

    def test_list_orders(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.orders.OrderService") as mock_service:
            mock_service.return_value.list_orders_for_customer = AsyncMock(
                return_value=[{**ORDER_ROW, "shipment": SHIPMENT_ROW}]
            )

            response = client.get("/api/v1/orders", headers=AUTH_HEADERS)

        assert response.status_code == 200
        items = response.json()["items"]
        assert items[0]["order_id"] == 101
        assert items[0]["shipment"]["waybill"] == "1234567890"
        mock_service.return_value.list_orders_for_customer.assert_awaited_once_with(CUSTOMER_ID)

    def test_get_order_with_items(self, client: TestClient, as_customer: MagicMock) -> None:
        item = {
            "order_item_id": 1,
            "product_id": 1,
            "package_id": 10,
            "product_name": "Darjeeling",
            "package_name": "100g",
            "quantity": 2,
            "price_per_unit": "0.00",
            "subtotal": "0.00",
            "is_free": True,
        }
        with patch("src.api.routes.orders.OrderService") as mock_service:
            mock_service.return_value.get_order = AsyncMock(return_value={**ORDER_ROW, "items": [item]})

            response = client.get("/api/v1/orders/101", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["items"][0]["is_free"] is True
        mock_service.return_value.get_order.assert_awaited_once_with(101, CUSTOMER_ID)

    def test_other_customers_order_is_404(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.orders.OrderService") as mock_service:
            mock_service.return_value.get_order = AsyncMock(side_effect=OrderNotFoundError(101))

            response = client.get("/api/v1/orders/101", headers=AUTH_HEADERS)

        assert response.status_code == 404
        assert response.json()["error"] == "order_not_found"


class TestCancelOrder:
    """Tests for POST /api/v1/orders/{id}/cancel."""

    def test_cancel_pending_order(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.orders.OrderStatusService") as mock_service:
            mock_service.return_value.cancel_order = AsyncMock(return_value={**ORDER_ROW, "status": "Cancelled"})

            response = client.post("/api/v1/orders/101/cancel", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "Cancelled"
        mock_service.return_value.cancel_order.assert_awaited_once_with(101, CUSTOMER_ID)

    def test_cancel_delivered_order_is_409(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.orders.OrderStatusService") as mock_service:
            mock_service.return_value.cancel_order = AsyncMock(
                side_effect=InvalidTransitionError("Delivered", "Cancelled")
            )

            response = client.post("/api/v1/orders/101/cancel", headers=AUTH_HEADERS)

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "invalid_transition"
        assert data["message"] == "Cannot change order status from Delivered to Cancelled"


class TestTracking:
    """Tests for GET /api/v1/orders/{id}/tracking."""

    def test_tracking_with_live_status(self, client: TestClient, as_customer: MagicMock) -> None:
        tracking = ShipmentTracking(
            shipment={**SHIPMENT_ROW, "shipment_status": "In Transit"},
            tracking=TrackingInfo(status="In Transit", history=[{"ScanType": "UD"}]),
        )
        with patch("src.api.routes.orders.ShipmentService") as mock_service:
            mock_service.return_value.track_for_customer = AsyncMock(return_value=tracking)

            response = client.get("/api/v1/orders/101/tracking", headers=AUTH_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["current_status"] == "In Transit"
        assert data["history"] == [{"ScanType": "UD"}]
        assert data["error"] is None

    def test_tracking_when_carrier_down(self, client: TestClient, as_customer: MagicMock) -> None:
        tracking = ShipmentTracking(shipment=SHIPMENT_ROW, tracking=None, error="track: Timed out after 10.0s")
        with patch("src.api.routes.orders.ShipmentService") as mock_service:
            mock_service.return_value.track_for_customer = AsyncMock(return_value=tracking)

            response = client.get("/api/v1/orders/101/tracking", headers=AUTH_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["shipment_status"] == "Created"
        assert data["current_status"] is None
        assert data["error"] == "track: Timed out after 10.0s"


class TestShippingPreview:
    """Tests for GET /api/v1/shipping/charge/{pincode}."""

    def test_preview_charge(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.orders.ShippingChargeService") as mock_service:
            mock_service.return_value.settings.preview_weight_grams = 500
            mock_service.return_value.preview_charge = AsyncMock(
                return_value=ChargeEstimate(total_amount=Decimal("85.46"), zone="D", breakdown={"charge_DL": 70})
            )

            response = client.get("/api/v1/shipping/charge/560001", headers=AUTH_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["weight_grams"] == 500
        assert Decimal(data["total_amount"]) == Decimal("85.46")
        assert data["zone"] == "D"
        mock_service.return_value.preview_charge.assert_awaited_once_with("560001")

    def test_invalid_pincode_is_422(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.orders.ShippingChargeService") as mock_service:
            response = client.get("/api/v1/shipping/charge/56A001", headers=AUTH_HEADERS)

        assert response.status_code == 422
        mock_service.assert_not_called()

    def test_carrier_failure_is_502(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.orders.ShippingChargeService") as mock_service:
            mock_service.return_value.preview_charge = AsyncMock(side_effect=CarrierUnavailableError())

            response = client.get("/api/v1/shipping/charge/560001", headers=AUTH_HEADERS)

        assert response.status_code == 502
        assert response.json()["error"] == "carrier_unavailable"
