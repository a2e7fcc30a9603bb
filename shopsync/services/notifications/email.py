"""Order notification e-mail via SendGrid."""

import html
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import httpx

if TYPE_CHECKING:
    from shopsync.services.notifications.dispatcher import OrderItemSummary

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailDeliveryError(Exception):
    """Exception raised when email delivery fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class EmailResult:
    """Result of an email send operation."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailNotifier:
    """Send operator e-mails through the SendGrid v3 API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        from_email: str,
        from_name: str,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._from_email = from_email
        self._from_name = from_name

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        plain_content: Optional[str] = None,
    ) -> EmailResult:
        """Send one e-mail.

        Raises:
            EmailDeliveryError: If SendGrid is not configured.
        """
        if not self.configured:
            raise EmailDeliveryError("SendGrid API key not configured")

        content = []
        if plain_content:
            content.append({"type": "text/plain", "value": plain_content})
        content.append({"type": "text/html", "value": html_content})

        payload = {
            "personalizations": [{"to": [{"email": to_email}], "subject": subject}],
            "from": {"email": self._from_email, "name": self._from_name},
            "content": content,
            "tracking_settings": {
                "click_tracking": {"enable": False},
                "open_tracking": {"enable": False},
            },
        }

        try:
            response = await self._http.post(
                SENDGRID_SEND_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.RequestError as e:
            return EmailResult(success=False, error=f"Network error: {str(e)}")

        if response.status_code in (200, 201, 202):
            # SendGrid returns message ID in X-Message-Id header
            return EmailResult(
                success=True, message_id=response.headers.get("X-Message-Id", "")
            )

        return EmailResult(
            success=False,
            error=f"SendGrid error ({response.status_code}): {response.text}",
        )


def format_new_order_email(
    shop_name: str,
    receipt_id: int,
    buyer_name: str,
    total: Decimal,
    currency_code: str,
    items: list["OrderItemSummary"],
) -> tuple[str, str, str]:
    """Build (subject, html, plain text) for a new order e-mail."""
    subject = f"New Order #{receipt_id} on {shop_name}"

    rows = "".join(
        f'<tr><td style="padding:8px;border:1px solid #ddd">{html.escape(item.title)}</td>'
        f'<td style="padding:8px;border:1px solid #ddd;text-align:center">{item.quantity}</td>'
        f'<td style="padding:8px;border:1px solid #ddd;text-align:right">'
        f"{item.price} {html.escape(currency_code)}</td></tr>"
        for item in items
    )
    html_content = f"""<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">
  <h2 style="color:#f56400">New Order Received</h2>
  <table style="width:100%;margin:16px 0">
    <tr><td><strong>Shop:</strong></td><td>{html.escape(shop_name)}</td></tr>
    <tr><td><strong>Order:</strong></td><td>#{receipt_id}</td></tr>
    <tr><td><strong>Buyer:</strong></td><td>{html.escape(buyer_name)}</td></tr>
    <tr><td><strong>Total:</strong></td><td>{total} {html.escape(currency_code)}</td></tr>
  </table>
  <table style="width:100%;border-collapse:collapse">
    <tr><th style="padding:8px;border:1px solid #ddd">Item</th>
        <th style="padding:8px;border:1px solid #ddd">Qty</th>
        <th style="padding:8px;border:1px solid #ddd">Price</th></tr>
    {rows}
  </table>
</div>"""

    plain_lines = [
        f"New order #{receipt_id} on {shop_name}",
        f"Buyer: {buyer_name}",
        f"Total: {total} {currency_code}",
        "",
    ]
    plain_lines += [f"- {item.title} x{item.quantity} ({item.price})" for item in items]

    return subject, html_content, "\n".join(plain_lines)
