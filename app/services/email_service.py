"""Email service for password resets and corporate-action notices."""

import asyncio
import logging
import smtplib
import ssl
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(self):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.user = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM_EMAIL
        self.from_name = settings.SMTP_FROM_NAME
        self.use_tls = settings.SMTP_TLS

    @property
    def is_configured(self) -> bool:
        """Check if email is properly configured."""
        return settings.email_enabled

    def _get_base_template(self, content: str, title: str = "Portfolios") -> str:
        """Wrap content in base HTML template."""
        return f"""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            line-height: 1.6;
            color: #1f2933;
            background-color: #f5f7fa;
            margin: 0;
            padding: 0;
        }}
        .container {{
            max-width: 600px;
            margin: 0 auto;
            background-color: #ffffff;
            border-radius: 6px;
        }}
        .header {{
            background-color: #243b53;
            color: white;
            padding: 20px;
            text-align: center;
        }}
        .content {{ padding: 24px; }}
        .footer {{
            padding: 16px 24px;
            text-align: center;
            font-size: 12px;
            color: #829ab1;
        }}
        .button {{
            display: inline-block;
            background-color: #334e68;
            color: white;
            padding: 12px 24px;
            text-decoration: none;
            border-radius: 4px;
            margin: 16px 0;
        }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{title}</h1></div>
        <div class="content">
            {content}
        </div>
        <div class="footer">
            <p>This message was sent automatically by {settings.APP_NAME}.</p>
            <p>&copy; {datetime.now().year} {settings.APP_NAME}</p>
        </div>
    </div>
</body>
</html>
"""

    def _send(self, to_email: str, msg: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        if self.use_tls:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                server.starttls(context=context)
                server.login(self.user, self.password)
                server.sendmail(self.from_email, to_email, msg.as_string())
        else:
            with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=30) as server:
                server.login(self.user, self.password)
                server.sendmail(self.from_email, to_email, msg.as_string())

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> bool:
        """
        Send an email.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML body content
            text_content: Plain text fallback (optional)

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.is_configured:
            logger.warning("Email not configured, skipping send")
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        if text_content:
            msg.attach(MIMEText(text_content, "plain", "utf-8"))
        msg.attach(MIMEText(html_content, "html", "utf-8"))

        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._send, to_email, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False

        logger.info(f"Email sent successfully to {to_email}: {subject}")
        return True

    async def send_password_reset(self, to_email: str, token: str) -> bool:
        """Send the reset link. The plaintext token only ever travels in this email."""
        link = f"{settings.FRONTEND_URL.rstrip('/')}/reset-password?token={token}"
        minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES

        content = f"""
        <h2>Reset your password</h2>
        <p>Someone asked to reset the password for this account.</p>
        <a href="{link}" class="button">Choose a new password</a>
        <p>The link expires in {minutes} minutes. If you did not ask for it, ignore this email.</p>
        """
        text = (
            f"Reset your password: {link}\n"
            f"The link expires in {minutes} minutes. If you did not ask for it, ignore this email."
        )
        html = self._get_base_template(content, "Password reset")
        return await self.send_email(to_email, f"[{settings.APP_NAME}] Password reset", html, text)

    async def send_proposal_notice(self, to_email: str, portfolio_name: str, note: str) -> bool:
        """Tell a portfolio owner a corporate action is waiting for approval."""
        content = f"""
        <h2>Corporate action pending</h2>
        <p>Portfolio <strong>{portfolio_name}</strong>:</p>
        <p>{note}</p>
        <a href="{settings.FRONTEND_URL}" class="button">Review</a>
        """
        html = self._get_base_template(content, "Corporate action")
        return await self.send_email(
            to_email,
            f"[{settings.APP_NAME}] Action required on {portfolio_name}",
            html,
            f"Portfolio {portfolio_name}: {note}",
        )


email_service = EmailService()
