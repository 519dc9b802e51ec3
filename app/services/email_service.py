"""
Email delivery for download links.
Composes a multipart (text + HTML) message and submits it over SMTP.
"""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from html import escape

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SMTP_TIMEOUT = 30  # seconds
SMTP_SSL_PORT = 465

SAFARI_NOTICE = (
    "IMPORTANT: open this link directly in Safari on your iPhone or iPad. "
    "It will not work from other apps such as Gmail or Chrome."
)


class EmailDeliveryError(Exception):
    """Raised when the download email cannot be submitted."""

    def __init__(self, message: str, recipient: str | None = None):
        super().__init__(message)
        self.recipient = recipient


def build_download_email(
    recipient: str, app_name: str, download_url: str, sender: str | None = None
) -> MIMEMultipart:
    """Build the download-link message with text and HTML alternatives."""
    sender = sender or settings.EMAIL_FROM

    text_body = (
        "Your app is ready!\n\n"
        f"The build of {app_name} completed successfully and can now be "
        "installed on your iOS device.\n\n"
        f"Install here:\n{download_url}\n\n"
        f"{SAFARI_NOTICE}\n\n"
        "---\n"
        "This email was generated automatically. Please do not reply."
    )

    safe_name = escape(app_name)
    safe_url = escape(download_url, quote=True)
    html_body = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Install {safe_name}</title></head>
<body style="font-family: -apple-system, Helvetica, Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1>Your app is ready!</h1>
  <p>The build of <strong>{safe_name}</strong> completed successfully and can now be installed on your iOS device.</p>
  <p style="text-align: center; margin: 30px 0;">
    <a href="{safe_url}" style="background: #667eea; color: white; padding: 15px 40px; border-radius: 8px; text-decoration: none;">Install App</a>
  </p>
  <div style="background: #fff3cd; border: 1px solid #ffc107; border-radius: 8px; padding: 15px;">
    <strong>Important:</strong> open this link directly in Safari on your iPhone or iPad.
    It will not work from other apps such as Gmail or Chrome.
  </div>
  <p style="font-size: 14px; color: #666;">If the button does not work, paste this link into Safari:<br>
    <a href="{safe_url}">{safe_url}</a></p>
</body>
</html>"""

    message = MIMEMultipart("alternative")
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = f"Your link to install {app_name}"
    message["Date"] = formatdate(localtime=False)
    message["Message-ID"] = make_msgid(domain=sender.split("@")[-1] if "@" in sender else None)
    message.attach(MIMEText(text_body, "plain", "utf-8"))
    message.attach(MIMEText(html_body, "html", "utf-8"))
    return message


class EmailService:
    """SMTP submission of download-link emails."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        sender: str | None = None,
    ):
        self.host = host if host is not None else settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USER
        self._password = password if password is not None else settings.SMTP_PASS
        self.sender = sender or settings.EMAIL_FROM

    def _send_sync(self, message: MIMEMultipart) -> None:
        if self.port == SMTP_SSL_PORT:
            smtp = smtplib.SMTP_SSL(host=self.host, port=self.port, timeout=SMTP_TIMEOUT)
        else:
            smtp = smtplib.SMTP(host=self.host, port=self.port, timeout=SMTP_TIMEOUT)

        with smtp:
            if self.port != SMTP_SSL_PORT:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()
            if self.username:
                smtp.login(self.username, self._password)
            smtp.send_message(message)

    async def send_download_link(self, recipient: str, app_name: str, download_url: str) -> str:
        """
        Send the download link to a tester.

        Args:
            recipient: Tester email address
            app_name: App label shown in the subject and body
            download_url: Install link produced by the pipeline

        Returns:
            str: Message-ID of the submitted email

        Raises:
            EmailDeliveryError: If SMTP is not configured or submission fails
        """
        if not self.host:
            raise EmailDeliveryError("SMTP_HOST not configured", recipient=recipient)

        message = build_download_email(recipient, app_name, download_url, sender=self.sender)

        logger.info("Sending download email", recipient=recipient, app_name=app_name)

        try:
            # smtplib is blocking; keep it off the event loop
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Download email failed", recipient=recipient, error=str(e))
            raise EmailDeliveryError(f"SMTP delivery failed: {e}", recipient=recipient) from e

        message_id = str(message["Message-ID"])
        logger.info("Download email sent", recipient=recipient, message_id=message_id)
        return message_id
