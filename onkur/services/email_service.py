"""
Email Service - Sends templated notification emails via SMTP
"""
import html
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional, Tuple

import aiosmtplib

from onkur.config import settings
from onkur.domain.effects import Cta, EmailMessage

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the SMTP server refuses or cannot be reached"""


def render_template(
    heading: str,
    body_lines: list,
    cta: Optional[Cta] = None,
    preview_text: Optional[str] = None,
) -> Tuple[str, str]:
    """Render the shared email layout; returns (html_body, text_body)"""
    paragraphs = "".join(
        f'<p style="margin:0 0 16px;line-height:1.6;">{html.escape(line)}</p>'
        for line in body_lines if line
    )
    button = ""
    if cta:
        button = (
            f'<p style="margin:24px 0;"><a href="{html.escape(cta.url, quote=True)}" '
            'style="background:#2f855a;color:#ffffff;padding:12px 20px;'
            f'border-radius:6px;text-decoration:none;">{html.escape(cta.label)}</a></p>'
        )
    preview = ""
    if preview_text:
        preview = f'<div style="display:none;max-height:0;overflow:hidden;">{html.escape(preview_text)}</div>'

    html_body = f"""<!doctype html>
<html>
  <body style="font-family:Arial,sans-serif;background:#f4f7f5;padding:24px;">
    {preview}
    <div style="max-width:560px;margin:0 auto;background:#ffffff;padding:32px;border-radius:8px;">
      <h1 style="font-size:22px;color:#22543d;margin:0 0 20px;">{html.escape(heading)}</h1>
      {paragraphs}
      {button}
      <p style="font-size:12px;color:#718096;margin-top:32px;">{html.escape(settings.APP_NAME)}</p>
    </div>
  </body>
</html>"""

    text_lines = [heading, ""] + [line for line in body_lines if line]
    if cta:
        text_lines += ["", f"{cta.label}: {cta.url}"]
    return html_body, "\n".join(text_lines)


class EmailService:
    """Service for sending emails via SMTP"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_pass = settings.SMTP_PASS
        self.use_tls = settings.SMTP_USE_TLS
        self.from_email = settings.EMAIL_FROM
        # Check if SMTP is properly configured
        self.smtp_configured = bool(
            self.smtp_host and
            self.smtp_host != "localhost" and
            self.smtp_user and
            self.smtp_pass
        )

    def _subject(self, subject: str) -> str:
        prefix = settings.EMAIL_SUBJECT_PREFIX
        if prefix and not subject.startswith(prefix):
            return f"{prefix} {subject}"
        return subject

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send an email; raises EmailDeliveryError when SMTP fails"""
        subject = self._subject(subject)

        # If SMTP is not configured, simulate success (for development/testing)
        if not self.smtp_configured:
            logger.warning(f"SMTP not configured - simulating email send to {to_email}")
            return {
                "success": True,
                "simulated": True,
                "to": to_email,
                "subject": subject
            }

        if html_body:
            message = MIMEMultipart("alternative")
            message.attach(MIMEText(body, "plain"))
            message.attach(MIMEText(html_body, "html"))
        else:
            message = MIMEText(body, "plain")

        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = to_email

        try:
            async with aiosmtplib.SMTP(
                hostname=self.smtp_host,
                port=self.smtp_port,
                use_tls=self.use_tls,
                timeout=settings.SMTP_TIMEOUT_SEC
            ) as smtp:
                await smtp.login(self.smtp_user, self.smtp_pass)
                await smtp.send_message(message)
        except aiosmtplib.SMTPException as e:
            logger.error(f"SMTP error sending to {to_email}: {e}")
            raise EmailDeliveryError(str(e)) from e

        logger.info(f"Email sent successfully to {to_email}")
        return {
            "success": True,
            "to": to_email,
            "subject": subject
        }

    async def send_templated_email(self, message: EmailMessage) -> Dict[str, Any]:
        """Render the shared layout and send it"""
        html_body, text_body = render_template(
            message.heading, message.body_lines, message.cta, message.preview_text
        )
        return await self.send_email(message.to, message.subject, text_body, html_body)


# Singleton instance
email_service = EmailService()
