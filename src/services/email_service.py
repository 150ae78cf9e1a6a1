"""Email service using Resend for transactional emails."""

import logging
from html import escape
from typing import Any

import resend

from src.core.config import get_settings
from src.services.pricing import CURRENCY_SYMBOL, as_money, price_breakdown, round_money

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.enabled = bool(settings.resend_api_key)
        self.from_email = settings.email_from_address
        self.storefront_url = settings.public_base_url

    async def send_order_confirmation(self, order: dict[str, Any]) -> dict[str, Any]:
        """Send the "payment received" email for a confirmed order.

        Args:
            order: The order row after the payment was reconciled.

        Returns:
            dict: ``success`` flag and the Resend email ID or error.
        """
        to_email = order.get("customer_email")
        if not self.enabled or not to_email:
            logger.debug("Skipping confirmation email for order %s", order.get("id"))
            return {"success": False, "error": "Email not configured"}

        reference = order.get("payment_reference", "")
        breakdown = price_breakdown(order.get("subtotal", "0"))
        total = f"{CURRENCY_SYMBOL}{round_money(as_money(order.get('total', '0')))}"
        tracking_url = f"{self.storefront_url}/order-confirmation?reference={reference}"

        rows = "".join(
            f"<tr><td>{item['quantity']} &times; {escape(item['product_name'])}</td>"
            f"<td style=\"text-align: right;\">{CURRENCY_SYMBOL}{round_money(as_money(item['computed_total']))}</td></tr>"
            for item in order.get("line_items", [])
        )
        name = escape(order.get("customer_name") or "there")

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Order Confirmation</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="color: #ea580c;">Thanks for your order, {name}!</h1>
    <p>We've received your payment and the kitchen has your order.</p>
    <p><strong>Reference:</strong> {escape(reference)}<br>
       <strong>Pickup:</strong> {escape(order.get("pickup_time") or "asap")}</p>
    <table style="width: 100%; border-collapse: collapse;">{rows}</table>
    <p>Subtotal: {breakdown["excl_tax"]}<br>
       VAT: {breakdown["tax"]}</p>
    <p style="font-size: 18px;"><strong>Total (incl. VAT): {total}</strong></p>
    <p><a href="{tracking_url}" style="color: #ea580c;">Track your order</a></p>
</body>
</html>
"""

        text_content = (
            f"Thanks for your order!\n\nReference: {reference}\n"
            f"Subtotal: {breakdown['excl_tax']}\nVAT: {breakdown['tax']}\n"
            f"Total (incl. VAT): {total}\n\nTrack your order: {tracking_url}\n"
        )

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": f"Order confirmed: {reference}",
                "html": html_content,
                "text": text_content,
            })

            logger.info("Confirmation email sent for order %s, id: %s", order.get("id"), response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send confirmation email for order %s: %s", order.get("id"), str(e))
            return {"success": False, "error": str(e)}
