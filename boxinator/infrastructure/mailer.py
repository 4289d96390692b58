"""Templated e-mail notifications.

Messages go out through SMTP when ``SMTP_HOST`` is configured; otherwise the
mailer only logs what it would have sent, which keeps local development and
tests free of a mail server.
"""
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

from boxinator.core.logging_config import get_logger
from boxinator.core_settings import Settings

logger = get_logger(__name__)


class Mailer:
    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.SMTP_HOST)

    def claim_url(self, shipment_id: int) -> str:
        return f"{self.settings.FRONTEND_URL.rstrip('/')}/claim-shipment/{shipment_id}"

    def send_receipt(self, email: str, shipment, is_guest: bool = False) -> None:
        """Send the shipment receipt; raises on delivery failure."""
        country = shipment.destination_country.name if shipment.destination_country else "Unknown"
        claim_block = ""
        if is_guest:
            claim_block = f"""
            <div style="background-color: #fff3cd; padding: 15px; border-radius: 5px; margin: 20px 0;">
              <h3 style="color: #856404; margin-top: 0;">Create an Account to Track Your Shipment</h3>
              <p style="color: #856404;">You can create a full account to track this shipment and manage future orders:</p>
              <p style="text-align: center;"><a href="{self.claim_url(shipment.id)}">Create Account &amp; Claim Shipment</a></p>
            </div>"""
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #333;">Shipment Receipt</h2>
          <p>Thank you for using Boxinator! Here are your shipment details:</p>
          <table style="width: 100%; border-collapse: collapse;">
            <tr><td><b>Order ID:</b></td><td>#{shipment.id}</td></tr>
            <tr><td><b>Receiver:</b></td><td>{escape(shipment.receiver_name)}</td></tr>
            <tr><td><b>Box:</b></td><td>{escape(shipment.tier)} ({shipment.weight:g}kg)</td></tr>
            <tr><td><b>Destination:</b></td><td>{escape(country)}</td></tr>
            <tr><td><b>Total Cost:</b></td><td>{shipment.total_cost:g} Kr</td></tr>
          </table>{claim_block}
          <p style="color: #666; font-size: 14px;">You will receive updates as your shipment progresses through our system.</p>
        </div>"""
        self._send(email, f"Boxinator Shipment Receipt - Order #{shipment.id}", html)
        logger.info(
            f"Shipment receipt sent for shipment {shipment.id}",
            extra={'extra_fields': {'shipment_id': shipment.id, 'is_guest': is_guest}},
        )

    def send_welcome(self, email: str, first_name: Optional[str]) -> None:
        name = escape(first_name or "there")
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #333;">Welcome to Boxinator, {name}!</h2>
          <p>Your account is ready. You can now create and track mystery box shipments worldwide.</p>
          <p><a href="{self.settings.FRONTEND_URL.rstrip('/')}/login">Start Shipping</a></p>
          <p style="color: #666; font-size: 14px;">The Boxinator Team</p>
        </div>"""
        self._send(email, "Welcome to Boxinator!", html)

    def _send(self, to: str, subject: str, html: str) -> None:
        if not self.enabled:
            logger.info(
                "SMTP not configured, email skipped",
                extra={'extra_fields': {'to': to, 'subject': subject}},
            )
            return

        msg = MIMEMultipart("alternative")
        msg["From"] = self.settings.FROM_EMAIL
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self.settings.SMTP_HOST, self.settings.SMTP_PORT, timeout=10) as server:
            if self.settings.SMTP_USER:
                server.starttls()
                server.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD or "")
            server.send_message(msg)
