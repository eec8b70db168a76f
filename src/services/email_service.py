"""Email service using Resend for order emails."""

import html
import logging
from typing import Any, Mapping, Sequence

import resend

from src.core.config import get_settings

logger = logging.getLogger(__name__)

BODY_STYLE = (
    "font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; "
    "line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;"
)


def _layout(title: str, heading: str, color: str, body: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="{BODY_STYLE}">
    <div style="background: {color}; padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">{heading}</h1>
    </div>
    <div style="background: #f9fafb; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
{body}
    </div>
</body>
</html>
"""


def _items_table(items: Sequence[Mapping[str, Any]]) -> str:
    rows = []
    for item in items:
        price = "FREE" if item.get("is_free") else f"₹{item['subtotal']}"
        rows.append(
            "<tr>"
            f"<td style=\"padding: 8px; border-bottom: 1px solid #e5e7eb;\">{html.escape(item['product_name'])}"
            f" ({html.escape(item['package_name'])})</td>"
            f"<td style=\"padding: 8px; border-bottom: 1px solid #e5e7eb; text-align: center;\">{item['quantity']}</td>"
            f"<td style=\"padding: 8px; border-bottom: 1px solid #e5e7eb; text-align: right;\">{price}</td>"
            "</tr>"
        )
    return (
        "<table style=\"width: 100%; border-collapse: collapse; font-size: 14px;\">"
        "<tr><th style=\"text-align: left; padding: 8px;\">Item</th>"
        "<th style=\"padding: 8px;\">Qty</th><th style=\"text-align: right; padding: 8px;\">Amount</th></tr>"
        + "".join(rows)
        + "</table>"
    )


def _address(order: Mapping[str, Any]) -> str:
    parts = [order["shipping_address"], order["shipping_city"], order["shipping_state"], order["shipping_pincode"]]
    return html.escape(", ".join(str(p) for p in parts if p))


class EmailService:
    """Service for sending order emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.from_email = settings.email_from_address
        self.admin_email = settings.admin_email

    def _send(self, to_email: str, subject: str, html_content: str, kind: str) -> dict[str, Any]:
        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html_content,
            })

            logger.info("%s email sent to %s, id: %s", kind, to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send %s email to %s: %s", kind, to_email, str(e))
            return {"success": False, "error": str(e)}

    async def send_order_confirmation(
        self,
        order: Mapping[str, Any],
        items: Sequence[Mapping[str, Any]],
    ) -> dict[str, Any]:
        """Send the customer's order confirmation.

        Args:
            order: Persisted order row.
            items: Persisted order item rows.

        Returns:
            dict: ``success`` flag with the email id or the error.
        """
        name = html.escape(order["customer_name"])
        discount = ""
        if float(order.get("discount_amount") or 0) > 0:
            discount = f"<p style=\"margin: 4px 0;\">Discount: -₹{order['discount_amount']}</p>"
        body = f"""
        <p style="font-size: 16px;">Hi <strong>{name}</strong>, thank you for your order!</p>
        <p style="font-size: 14px; color: #6b7280;">Order number: <strong>{order['order_number']}</strong></p>
        {_items_table(items)}
        <div style="text-align: right; margin-top: 16px;">
            <p style="margin: 4px 0;">Subtotal: ₹{order['subtotal_amount']}</p>
            {discount}
            <p style="margin: 4px 0; font-size: 18px;"><strong>Total: ₹{order['total_amount']}</strong></p>
        </div>
        <p style="font-size: 14px; color: #6b7280;">Shipping to: {_address(order)}</p>
"""
        return self._send(
            order["customer_email"],
            f"Order Confirmed - {order['order_number']}",
            _layout("Order Confirmed", "Order Confirmed", "#2f855a", body),
            "order confirmation",
        )

    async def send_admin_new_order(
        self,
        order: Mapping[str, Any],
        items: Sequence[Mapping[str, Any]],
    ) -> dict[str, Any]:
        """Alert the store admin about a new order."""
        body = f"""
        <p style="font-size: 16px;">New order <strong>{order['order_number']}</strong> received.</p>
        <p style="margin: 4px 0;">Customer: {html.escape(order['customer_name'])} ({html.escape(order['customer_phone'])})</p>
        <p style="margin: 4px 0;">Email: {html.escape(order.get('customer_email') or '-')}</p>
        <p style="margin: 4px 0;">Address: {_address(order)}</p>
        {_items_table(items)}
        <p style="text-align: right; font-size: 18px;"><strong>Total: ₹{order['total_amount']}</strong></p>
"""
        return self._send(
            self.admin_email,
            f"New Order - {order['order_number']}",
            _layout("New Order", "New Order Received", "#2b6cb0", body),
            "admin new order",
        )

    async def send_order_shipped(self, order: Mapping[str, Any], tracking_url: str | None = None) -> dict[str, Any]:
        tracking = ""
        if tracking_url:
            tracking = f"""
        <div style="text-align: center; margin: 30px 0;">
            <a href="{html.escape(tracking_url)}" style="background: #2b6cb0; color: white; padding: 14px 32px; text-decoration: none; border-radius: 8px; font-weight: 600;">
                Track Shipment
            </a>
        </div>"""
        body = f"""
        <p style="font-size: 16px;">Hi <strong>{html.escape(order['customer_name'])}</strong>, your order <strong>{order['order_number']}</strong> is on its way.</p>
        <p style="font-size: 14px; color: #6b7280;">Shipping to: {_address(order)}</p>{tracking}
"""
        return self._send(
            order["customer_email"],
            f"Order Shipped - {order['order_number']}",
            _layout("Order Shipped", "Your Order Has Shipped", "#2b6cb0", body),
            "order shipped",
        )

    async def send_order_delivered(self, order: Mapping[str, Any]) -> dict[str, Any]:
        body = f"""
        <p style="font-size: 16px;">Hi <strong>{html.escape(order['customer_name'])}</strong>, your order <strong>{order['order_number']}</strong> has been delivered.</p>
        <p style="font-size: 14px; color: #6b7280;">We hope you enjoy your tea. Thank you for shopping with us!</p>
"""
        return self._send(
            order["customer_email"],
            f"Order Delivered - {order['order_number']}",
            _layout("Order Delivered", "Order Delivered", "#2f855a", body),
            "order delivered",
        )

    async def send_order_cancelled(self, order: Mapping[str, Any]) -> dict[str, Any]:
        body = f"""
        <p style="font-size: 16px;">Hi <strong>{html.escape(order['customer_name'])}</strong>, your order <strong>{order['order_number']}</strong> has been cancelled.</p>
        <p style="font-size: 14px; color: #6b7280;">If you paid online, your refund of ₹{order['total_amount']} will be processed to the original payment method.</p>
"""
        return self._send(
            order["customer_email"],
            f"Order Cancelled - {order['order_number']}",
            _layout("Order Cancelled", "Order Cancelled", "#c53030", body),
            "order cancelled",
        )
