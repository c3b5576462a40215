"""
Email Notification HTTP Client

Async client for the Resend transactional email API.
Implements NotificationClientProtocol for dependency injection.
"""

import html
import httpx
import logging
from typing import Any, Dict, Optional, Tuple

from core.config import MarketplaceConfig, ServiceConfig

from ..models import NotificationKind
from .http_retry import call_with_retry, raise_for_retryable

logger = logging.getLogger(__name__)


_LAYOUT = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: {color}; padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
        <h1 style="color: white; margin: 0; font-size: 28px;">{heading}</h1>
    </div>
    <div style="background: #ffffff; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
        <p style="font-size: 16px;">Hi {name},</p>
        <p style="font-size: 16px;">{body}</p>
        <div style="text-align: center; margin: 30px 0;">
            <a href="{link}" style="background: {color}; color: white; padding: 14px 28px; text-decoration: none; border-radius: 6px; font-weight: 600; display: inline-block;">{cta} &rarr;</a>
        </div>
        <p style="font-size: 14px; color: #6b7280;">Thank you for using CrowdShip!<br><strong>The CrowdShip Team</strong></p>
    </div>
    <div style="text-align: center; margin-top: 20px; color: #9ca3af; font-size: 12px;">
        <p>This is an automated message, please do not reply to this email.</p>
    </div>
</body>
</html>
"""


def render_notification(kind: NotificationKind, payload: Dict[str, Any], app_url: str) -> Tuple[str, str]:
    """
    Build (subject, html) for a notification kind

    Payload keys: name, shipment_title, shipment_id, offered_price (bid accepted)
    """
    name = html.escape(str(payload.get("name") or "there"))
    title = html.escape(str(payload.get("shipment_title") or "your shipment"))
    raw_title = str(payload.get("shipment_title") or "your shipment")

    if kind == NotificationKind.BID_ACCEPTED:
        price = payload.get("offered_price")
        price_text = f" at PKR {html.escape(str(price))}" if price is not None else ""
        subject = f'Your bid for "{raw_title}" has been accepted!'
        body = (
            f"Great news! The sender accepted your bid{price_text} for <strong>\"{title}\"</strong>. "
            "The shipment is now part of your trip."
        )
        return subject, _LAYOUT.format(
            color="#10b981", heading="🎉 Bid Accepted!", name=name, body=body,
            link=f"{app_url}/traveler/trips", cta="View My Trips",
        )

    if kind == NotificationKind.SHIPMENT_RELEASED:
        body = (
            f"Your shipment <strong>\"{title}\"</strong> has been released and is now available "
            "for other travelers to accept. No action is needed from you."
        )
        return "📦 Your Shipment is Available Again", _LAYOUT.format(
            color="#3b82f6", heading="📦 Shipment Update", name=name, body=body,
            link=f"{app_url}/sender/dashboard", cta="View Dashboard",
        )

    if kind == NotificationKind.SHIPMENT_CANCELLED_TO_TRAVELER:
        body = (
            f"The sender has cancelled the shipment <strong>\"{title}\"</strong> that you had accepted. "
            "It has been removed from your current trip."
        )
        return "⚠️ Shipment Cancelled by Sender", _LAYOUT.format(
            color="#dc2626", heading="⚠️ Shipment Cancelled", name=name, body=body,
            link=f"{app_url}/traveler/trips", cta="View My Trips",
        )

    raise ValueError(f"Unknown notification kind: {kind}")


class EmailClient:
    """Async HTTP client for Resend"""

    def __init__(
        self,
        services: Optional[ServiceConfig] = None,
        marketplace: Optional[MarketplaceConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        services = services or ServiceConfig()
        marketplace = marketplace or MarketplaceConfig()

        self.base_url = services.email_service_url.rstrip("/")
        self.api_key = services.email_api_key
        self.sender = services.email_from
        self.app_url = services.app_url.rstrip("/")
        self.retry_attempts = marketplace.retry_attempts
        self.retry_initial_delay = marketplace.retry_initial_delay
        self.retry_max_delay = marketplace.retry_max_delay
        self.client = client or httpx.AsyncClient(timeout=services.http_timeout)
        logger.info(f"EmailClient initialized with base_url: {self.base_url}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def notify(self, kind: NotificationKind, recipient_email: str, payload: Dict[str, Any]) -> bool:
        """
        Send a notification email

        Returns:
            True when the provider accepted the message
        """
        if not recipient_email:
            logger.warning(f"No recipient for {kind.value} notification")
            return False
        if not self.api_key:
            logger.warning(f"RESEND_API_KEY not configured; skipping {kind.value} email to {recipient_email}")
            return False

        subject, body = render_notification(kind, payload, self.app_url)
        message = {"from": self.sender, "to": [recipient_email], "subject": subject, "html": body}

        async def _send():
            response = await self.client.post(
                f"{self.base_url}/emails",
                json=message,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            raise_for_retryable(response)
            return response

        try:
            response = await call_with_retry(
                _send,
                attempts=self.retry_attempts,
                initial_delay=self.retry_initial_delay,
                max_delay=self.retry_max_delay,
            )
            response.raise_for_status()
            logger.info(f"✅ {kind.value} email sent to: {recipient_email}")
            return True
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error sending {kind.value} email: {e.response.status_code}")
            return False
        except Exception as e:
            logger.error(f"❌ Failed to send {kind.value} email to {recipient_email}: {e}")
            return False

    async def close(self):
        """Close the HTTP client connection"""
        await self.client.aclose()
        logger.info("EmailClient connection closed")
