"""
Email gateway client for sending emails via HTTP gateway.

Uses HMAC-SHA256 signature for request authentication.
"""

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from html import escape

import requests

logger = logging.getLogger(__name__)

_VERIFICATION_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Verification code</title></head>
<body style="margin:0;padding:0;background-color:#f4f4f5;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0" style="padding:40px 20px;">
    <tr><td align="center">
      <table width="100%" cellpadding="0" cellspacing="0" style="max-width:480px;background-color:#ffffff;border-radius:12px;">
        <tr><td style="background-color:#111827;padding:32px;text-align:center;">
          <h1 style="margin:0;color:#ffffff;font-size:20px;">{app_name}</h1>
        </td></tr>
        <tr><td style="padding:40px 32px;">
          <h2 style="margin:0 0 12px;color:#111827;font-size:18px;">Your verification code</h2>
          <p style="margin:0 0 32px;color:#6b7280;font-size:14px;">
            Use the code below to confirm it's you. It is valid for <strong>{minutes} minutes</strong>.
          </p>
          <div style="background-color:#f9fafb;border:1px solid #e5e7eb;border-radius:8px;padding:24px;text-align:center;">
            <span style="font-size:36px;font-weight:700;color:#111827;letter-spacing:10px;">{code}</span>
          </div>
          <p style="margin:32px 0 0;color:#9ca3af;font-size:13px;">
            If you didn't request this code, ignore this email. No action is needed.
          </p>
        </td></tr>
        <tr><td style="background-color:#f9fafb;padding:20px 32px;text-align:center;color:#9ca3af;font-size:12px;">
          &copy; {year} {app_name}
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>
"""


def render_verification_email(code: str, app_name: str, minutes: int) -> str:
    """HTML body for the verification code email."""
    return _VERIFICATION_TEMPLATE.format(
        app_name=escape(app_name),
        code=escape(code),
        minutes=minutes,
        year=datetime.now(timezone.utc).year,
    )


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


class EmailGatewayClient:
    """Send emails via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the email gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Args:
            payload: Dict to send as JSON

        Raises:
            EmailGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        signature = hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": signature,
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=10,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Email gateway connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}") from e

        try:
            response_data = response.json()
        except ValueError:
            logger.error(f"Email gateway returned invalid JSON: {response.text}")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error: {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_email(self, to: str, subject: str, html: str) -> None:
        """
        Send an HTML email via gateway.

        Raises:
            EmailGatewayError: On gateway failure
        """
        payload = {
            "type": "custom",
            "email": to,
            "subject": subject,
            "html": html,
            "sender": "auth",
        }
        self._sign_and_send(payload)
        logger.info(f"Email sent to {to}: {subject}")

    def send_verification_code(
        self,
        email: str,
        code: str,
        app_name: str = "Auth Service",
        expiry_minutes: int = 15,
    ) -> None:
        """
        Send a verification code email.

        The code itself is never logged.

        Raises:
            EmailGatewayError: On any failure
        """
        self.send_email(
            to=email,
            subject="Verification code",
            html=render_verification_email(code, app_name, expiry_minutes),
        )
