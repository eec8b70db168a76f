"""Async client for the logistics carrier's HTTP API.

Every call has a bounded timeout and raises CarrierError on any transport,
HTTP or response-shape failure. Callers decide whether a failure is fatal.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from src.core.config import get_settings

logger = logging.getLogger(__name__)

WAYBILL_PATH = "/waybill/api/fetch/json/"
CREATE_PATH = "/api/cmu/create.json"
EDIT_PATH = "/api/p/edit"
TRACK_PATH = "/api/v1/packages/json/"
CHARGES_PATH = "/kinko/v1/invoice/charges/.json"
TAT_PATH = "/api/dc/expected_tat"
LABEL_PATH = "/api/p/packing_slip"
PINCODE_PATH = "/c/api/pin-codes/json/"


class CarrierError(Exception):
    """Raised when a carrier call fails or returns an unusable response."""

    def __init__(self, operation: str, message: str, status_code: int | None = None) -> None:
        self.operation = operation
        self.message = message
        self.status_code = status_code
        super().__init__(f"{operation}: {message}")


@dataclass
class TrackingInfo:
    """Normalized tracking view of a shipment."""

    status: str | None
    history: list[dict[str, Any]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


def normalize_waybill(payload: Any) -> str:
    """Extract a waybill id from the carrier's inconsistent response shapes.

    The fetch endpoint may answer with a bare (possibly quoted) string, a
    ``{"waybill": ...}`` object or a ``{"wbns": ...}`` object.

    Raises:
        CarrierError: If no non-empty waybill can be found.
    """
    waybill: Any = None
    if isinstance(payload, dict):
        waybill = payload.get("waybill") or payload.get("wbns")
    elif isinstance(payload, (str, int)):
        waybill = payload

    if isinstance(waybill, list):
        waybill = waybill[0] if waybill else None

    text = str(waybill).strip().strip("'\"").strip() if waybill is not None else ""
    if not text:
        raise CarrierError("allocate_waybill", f"Unrecognized waybill response: {payload!r}")
    return text


class CarrierClient:
    """Thin async wrapper over the carrier API.

    Holds one ``httpx.AsyncClient`` for connection pooling. Pass a custom
    ``transport`` to stub the network in tests.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.carrier_base_url).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.carrier_api_token
        self.timeout = timeout or settings.carrier_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Token {self.api_token}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        form: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, params=params, data=form)
        except httpx.TimeoutException as e:
            raise CarrierError(operation, f"Timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise CarrierError(operation, str(e) or e.__class__.__name__) from e

        if response.is_error:
            raise CarrierError(
                operation,
                response.text[:500] or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            # Some endpoints answer with a bare text body
            text = response.text.strip()
            if not text:
                raise CarrierError(operation, "Empty response body", status_code=response.status_code)
            return text

    @staticmethod
    def _json_form(data: dict[str, Any]) -> dict[str, str]:
        """Build the ``format=json&data=<json>`` form body the carrier expects."""
        return {"format": "json", "data": json.dumps(data)}

    async def allocate_waybill(self) -> str:
        """Allocate a single waybill id."""
        payload = await self._request(
            "allocate_waybill",
            "GET",
            WAYBILL_PATH,
            params={"token": self.api_token},
        )
        waybill = normalize_waybill(payload)
        logger.info("Allocated waybill %s", waybill)
        return waybill

    async def create_shipment(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Register a shipment (manifest) with the carrier."""
        result = await self._request("create_shipment", "POST", CREATE_PATH, form=self._json_form(payload))
        if not isinstance(result, dict):
            raise CarrierError("create_shipment", f"Unexpected response: {result!r}")
        return result

    async def cancel_shipment(self, waybill: str) -> dict[str, Any]:
        """Cancel a manifested shipment by waybill."""
        result = await self._request(
            "cancel_shipment",
            "POST",
            EDIT_PATH,
            form=self._json_form({"waybill": waybill, "cancellation": True}),
        )
        if not isinstance(result, dict):
            raise CarrierError("cancel_shipment", f"Unexpected response: {result!r}")
        return result

    async def track_shipment(self, waybill: str, reference: str | None = None) -> TrackingInfo:
        """Fetch current status and scan history for a waybill."""
        params = {"waybill": waybill}
        if reference:
            params["ref_ids"] = reference
        result = await self._request("track_shipment", "GET", TRACK_PATH, params=params)

        shipments = result.get("ShipmentData") if isinstance(result, dict) else None
        if not shipments:
            raise CarrierError("track_shipment", f"No tracking data for waybill {waybill}")

        shipment = shipments[0].get("Shipment", shipments[0])
        status = shipment.get("Status")
        if isinstance(status, dict):
            status = status.get("Status")
        return TrackingInfo(status=status, history=shipment.get("Scans") or [], raw=result)

    async def estimate_charge(
        self,
        origin_pin: str,
        destination_pin: str,
        weight_grams: int,
        payment_type: str = "Pre-paid",
        mode: str = "E",
    ) -> dict[str, Any]:
        """Price a shipment. The carrier wraps the breakdown in a one-element array."""
        result = await self._request(
            "estimate_charge",
            "GET",
            CHARGES_PATH,
            params={
                "md": mode,
                "ss": "Delivered",
                "o_pin": origin_pin,
                "d_pin": destination_pin,
                "cgm": weight_grams,
                "pt": payment_type,
            },
        )
        if isinstance(result, list):
            result = result[0] if result else None
        if not isinstance(result, dict):
            raise CarrierError("estimate_charge", "No charge data returned")
        return result

    async def estimate_transit_days(
        self,
        origin_pin: str,
        destination_pin: str,
        mode: str = "S",
        product_type: str = "B2C",
        pickup_date: datetime | None = None,
    ) -> int:
        """Expected turnaround time in days between two pincodes."""
        params = {
            "origin_pin": origin_pin,
            "destination_pin": destination_pin,
            "mot": mode,
            "pdt": product_type,
        }
        if pickup_date is not None:
            params["expected_pickup_date"] = pickup_date.strftime("%Y-%m-%d %H:%M")
        result = await self._request("estimate_transit_days", "GET", TAT_PATH, params=params)

        data = result.get("data") if isinstance(result, dict) else None
        tat = data.get("tat") if isinstance(data, dict) else None
        if not isinstance(result, dict) or not result.get("success") or tat is None:
            raise CarrierError("estimate_transit_days", f"Unexpected response: {result!r}")
        try:
            return int(tat)
        except (TypeError, ValueError) as e:
            raise CarrierError("estimate_transit_days", f"Non-numeric tat: {tat!r}") from e

    async def generate_label(self, waybill: str, pdf_size: str = "4R") -> dict[str, Any]:
        """Request a packing slip / shipping label."""
        result = await self._request(
            "generate_label",
            "GET",
            LABEL_PATH,
            params={"wbns": waybill, "pdf": "true", "pdf_size": pdf_size},
        )
        if not isinstance(result, dict):
            raise CarrierError("generate_label", f"Unexpected response: {result!r}")
        return result

    async def check_pincode(self, pincode: str) -> dict[str, Any]:
        """Check whether the carrier services a pincode."""
        result = await self._request(
            "check_pincode",
            "GET",
            PINCODE_PATH,
            params={"filter_codes": pincode},
        )
        if not isinstance(result, dict):
            raise CarrierError("check_pincode", f"Unexpected response: {result!r}")
        return result


_carrier_client: CarrierClient | None = None


def get_carrier_client() -> CarrierClient:
    """Get or create the shared carrier client."""
    global _carrier_client
    if _carrier_client is None:
        _carrier_client = CarrierClient()
    return _carrier_client


async def shutdown_carrier_client() -> None:
    """Close the shared carrier client. Call at app shutdown."""
    global _carrier_client
    if _carrier_client is not None:
        await _carrier_client.aclose()
        _carrier_client = None


async def check_carrier_connection() -> dict[str, Any]:
    """Readiness probe: a pincode lookup for the origin warehouse."""
    settings = get_settings()
    if not settings.carrier_configured:
        return {"healthy": False, "error": "Carrier API token not configured"}
    try:
        await get_carrier_client().check_pincode(settings.origin_pincode)
        return {"healthy": True}
    except CarrierError as e:
        return {"healthy": False, "error": str(e)}
