"""Unit tests for the WhatsApp template client."""

import json

import httpx
import pytest

from src.core.whatsapp import TEMPLATE_MAP, WhatsAppClient, WhatsAppError, normalize_phone


def make_client(handler, enabled: bool = True) -> WhatsAppClient:
    return WhatsAppClient(
        base_url="https://bsp.test/v1",
        sender_id="sender-1",
        api_key="bsp-key",
        enabled=enabled,
        transport=httpx.MockTransport(handler),
    )


class TestNormalizePhone:
    """Tests for phone normalization."""

    @pytest.mark.parametrize(
        ("phone", "expected"),
        [
            ("9876543210", "919876543210"),
            ("+91 98765 43210", "919876543210"),
            ("919876543210", "919876543210"),
            ("98765", None),
            ("449876543210", None),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize(self, phone: str | None, expected: str | None) -> None:
        assert normalize_phone(phone) == expected


class TestSendEvent:
    """Tests for send_event."""

    def test_template_map_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            TEMPLATE_MAP["ANYTHING"] = "promo"  # type: ignore[index]

    @pytest.mark.asyncio
    async def test_sends_mapped_template(self) -> None:
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["apikey"] = request.headers["apikey"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "m1"}]})

        client = make_client(handler)
        result = await client.send_event("9876543210", "DELIVERED")
        await client.aclose()

        assert result == {"messages": [{"id": "m1"}]}
        assert captured["url"] == "https://bsp.test/v1/sender-1/messages"
        assert captured["apikey"] == "bsp-key"
        assert captured["body"]["to"] == "919876543210"
        assert captured["body"]["template"]["name"] == "delivery"

    @pytest.mark.asyncio
    async def test_unknown_event_rejected(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={}))

        with pytest.raises(ValueError):
            await client.send_event("9876543210", "PROMOTION")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_disabled_sends_nothing(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        client = make_client(handler, enabled=False)
        assert await client.send_event("9876543210", "PAYMENT_PENDING") is None
        await client.aclose()

        assert calls == []

    @pytest.mark.asyncio
    async def test_bad_phone_skipped(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={}))

        assert await client.send_event("12345", "PAYMENT_RECEIVED") is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_provider_error_raises(self) -> None:
        client = make_client(lambda request: httpx.Response(401, json={"error": "bad key"}))

        with pytest.raises(WhatsAppError):
            await client.send_event("9876543210", "PAYMENT_PENDING")
        await client.aclose()
