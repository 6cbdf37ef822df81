import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from app.config import settings
from app.errors import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailService:
    """Outbound mail through an HTTP webhook; a missing webhook disables sending."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        frontend_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.email_webhook_url
        self.frontend_url = (frontend_url or settings.frontend_url).rstrip("/")
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def registration_url(self, email: str, token: str) -> str:
        return f"{self.frontend_url}/complete-registration?{urlencode({'email': email, 'token': token})}"

    def send_approval_email(self, to_email: str, to_name: str, national_id: str, registration_url: str) -> bool:
        """Post the approval notice; returns False when sending is disabled."""
        if not self.enabled:
            logger.warning("EMAIL_WEBHOOK_URL is not configured, skipping approval email")
            return False

        payload = {
            "type": "approval",
            "to": to_email,
            "subject": "Your membership request was approved - complete your registration",
            "templateVars": {
                "name": to_name,
                "dni": national_id,
                "registrationUrl": registration_url,
            },
        }

        try:
            with httpx.Client(timeout=settings.email_timeout_seconds, transport=self._transport) as client:
                response = client.post(self.webhook_url, json=payload)
        except httpx.RequestError as e:
            logger.error(f"Email webhook unreachable: {e}")
            raise EmailDeliveryError(f"Could not reach the email service: {e}") from e

        if response.is_error:
            logger.error(f"Email webhook answered {response.status_code}: {response.text[:200]}")
            raise EmailDeliveryError(f"Email service answered {response.status_code}")

        logger.info(f"Approval email sent to {to_email}")
        return True


email_service = EmailService()
