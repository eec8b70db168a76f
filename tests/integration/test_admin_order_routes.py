"""Integration tests for admin order and shipment routes."""

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from src.api.middleware.error_handler import (
    CarrierUnavailableError,
    InvalidTransitionError,
    ShipmentAlreadyExistsError,
    ShipmentNotFoundError,
)
from src.models.order import OrderStatus, PaymentStatus
from src.services.shipment_service import CarrierOutcome, ShipmentOutcome
from tests.conftest import AUTH_HEADERS, CUSTOMER_ID

ORDER_ROW = {
    "order_id": 101,
    "order_number": "ORD-LX2A9K3B-7Q2M",
    "customer_id": CUSTOMER_ID,
    "status": "Pending",
    "payment_status": "unpaid",
    "subtotal_amount": "500.00",
    "discount_amount": "0.00",
    "total_amount": "500.00",
    "shipping_address": "12 Tea Garden Road",
    "shipping_city": "Gurugram",
    "shipping_state": "Haryana",
    "shipping_pincode": "122001",
    "customer_name": "Asha",
    "customer_phone": "9876543210",
}

SHIPMENT_ROW = {
    "shipment_id": 7,
    "order_id": 101,
    "waybill": "1234567890",
    "tracking_url": "https://www.delhivery.com/track/package/1234567890",
    "shipment_status": "Created",
    "is_success": True,
}


class TestAdminAccess:
    """Admin routes reject customers."""

    def test_customer_gets_403(self, client: TestClient, as_customer: MagicMock) -> None:
        with patch("src.api.routes.admin_orders.OrderService") as mock_service:
            response = client.get("/api/v1/admin/orders", headers=AUTH_HEADERS)

        assert response.status_code == 403
        assert response.json()["error"] == "authorization_error"
        mock_service.assert_not_called()

    def test_anonymous_gets_401(self, client: TestClient) -> None:
        response = client.get("/api/v1/admin/orders")

        assert response.status_code == 401


class TestAdminOrders:
    """Tests for admin order listing and status changes."""

    def test_list_with_status_filter(self, client: TestClient, as_admin: MagicMock) -> None:
        with patch("src.api.routes.admin_orders.OrderService") as mock_service:
            mock_service.return_value.list_all_orders = AsyncMock(return_value=[ORDER_ROW])

            response = client.get("/api/v1/admin/orders?status=Pending&limit=10", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert len(response.json()["items"]) == 1
        mock_service.return_value.list_all_orders.assert_awaited_once_with(OrderStatus.PENDING, limit=10, offset=0)

    def test_list_rejects_unknown_status(self, client: TestClient, as_admin: MagicMock) -> None:
        response = client.get("/api/v1/admin/orders?status=Lost", headers=AUTH_HEADERS)

        assert response.status_code == 422

    def test_update_status(self, client: TestClient, as_admin: MagicMock) -> None:
        with patch("src.api.routes.admin_orders.OrderStatusService") as mock_service:
            mock_service.return_value.update_order_status = AsyncMock(return_value={**ORDER_ROW, "status": "Shipped"})

            response = client.patch(
                "/api/v1/admin/orders/101/status", json={"status": "Shipped"}, headers=AUTH_HEADERS
            )

        assert response.status_code == 200
        assert response.json()["status"] == "Shipped"
        mock_service.return_value.update_order_status.assert_awaited_once_with(101, OrderStatus.SHIPPED)

    def test_illegal_transition_is_409(self, client: TestClient, as_admin: MagicMock) -> None:
        with patch("src.api.routes.admin_orders.OrderStatusService") as mock_service:
            mock_service.return_value.update_order_status = AsyncMock(
                side_effect=InvalidTransitionError("Cancelled", "Shipped")
            )

            response = client.patch(
                "/api/v1/admin/orders/101/status", json={"status": "Shipped"}, headers=AUTH_HEADERS
            )

        assert response.status_code == 409
        assert response.json()["details"][0]["loc"] == ["status"]

    def test_update_payment_status(self, client: TestClient, as_admin: MagicMock) -> None:
        with patch("src.api.routes.admin_orders.OrderStatusService") as mock_service:
            mock_service.return_value.update_payment_status = AsyncMock(
                return_value={**ORDER_ROW, "payment_status": "paid"}
            )

            response = client.patch(
                "/api/v1/admin/orders/101/payment-status", json={"payment_status": "paid"}, headers=AUTH_HEADERS
            )

        assert response.status_code == 200
        assert response.json()["payment_status"] == "paid"
        mock_service.return_value.update_payment_status.assert_awaited_once_with(101, PaymentStatus.PAID)


class TestAdminShipments:
    """Tests for admin shipment endpoints."""

    def test_create_shipment_returns_201(self, client: TestClient, as_admin: MagicMock) -> None:
        outcome = ShipmentOutcome(
            shipment=SHIPMENT_ROW,
            carrier=CarrierOutcome(ok=True, response={"success": True}),
        )
        with patch("src.api.routes.admin_orders.ShipmentService") as mock_service:
            mock_service.return_value.create_shipment_for_order = AsyncMock(return_value=outcome)

            response = client.post("/api/v1/admin/orders/101/shipment", headers=AUTH_HEADERS)

        assert response.status_code == 201
        data = response.json()
        assert data["shipment"]["waybill"] == "1234567890"
        assert data["carrier_ok"] is True

    def test_carrier_rejection_still_returns_local_shipment(self, client: TestClient, as_admin: MagicMock) -> None:
        outcome = ShipmentOutcome(
            shipment={**SHIPMENT_ROW, "is_success": False},
            carrier=CarrierOutcome(ok=False, error="create_shipment: Pincode not serviceable"),
        )
        with patch("src.api.routes.admin_orders.ShipmentService") as mock_service:
            mock_service.return_value.create_shipment_for_order = AsyncMock(return_value=outcome)

            response = client.post("/api/v1/admin/orders/101/shipment", headers=AUTH_HEADERS)

        assert response.status_code == 201
        data = response.json()
        assert data["shipment"]["is_success"] is False
        assert data["carrier_ok"] is False
        assert data["carrier_error"] == "create_shipment: Pincode not serviceable"

    def test_second_shipment_is_409(self, client: TestClient, as_admin: MagicMock) -> None:
        with patch("src.api.routes.admin_orders.ShipmentService") as mock_service:
            mock_service.return_value.create_shipment_for_order = AsyncMock(
                side_effect=ShipmentAlreadyExistsError(101)
            )

            response = client.post("/api/v1/admin/orders/101/shipment", headers=AUTH_HEADERS)

        assert response.status_code == 409
        assert response.json()["error"] == "shipment_already_exists"

    def test_waybill_unavailable_is_502(self, client: TestClient, as_admin: MagicMock) -> None:
        with patch("src.api.routes.admin_orders.ShipmentService") as mock_service:
            mock_service.return_value.create_shipment_for_order = AsyncMock(
                side_effect=CarrierUnavailableError("Could not obtain a waybill")
            )

            response = client.post("/api/v1/admin/orders/101/shipment", headers=AUTH_HEADERS)

        assert response.status_code == 502
        assert response.json()["message"] == "Could not obtain a waybill"

    def test_label_without_shipment_is_404(self, client: TestClient, as_admin: MagicMock) -> None:
        with patch("src.api.routes.admin_orders.ShipmentService") as mock_service:
            mock_service.return_value.generate_label_for_order = AsyncMock(side_effect=ShipmentNotFoundError(101))

            response = client.post("/api/v1/admin/orders/101/shipment/label", headers=AUTH_HEADERS)

        assert response.status_code == 404
        assert response.json()["message"] == "Shipment not created yet"

    def test_label_generated(self, client: TestClient, as_admin: MagicMock) -> None:
        label = {
            "shipment_id": 7,
            "order_id": 101,
            "waybill": "1234567890",
            "packages_found": 1,
            "pdf_url": "https://labels.example/1234567890.pdf",
            "status": "generated",
        }
        with patch("src.api.routes.admin_orders.ShipmentService") as mock_service:
            mock_service.return_value.generate_label_for_order = AsyncMock(return_value=label)

            response = client.post("/api/v1/admin/orders/101/shipment/label", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["pdf_url"] == "https://labels.example/1234567890.pdf"
