"""Invite emails for group polls, sent over SMTP."""

import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from grouppoll.common import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    """Result of an email send operation."""

    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass
class SmtpConfig:
    """SMTP configuration, resolved once so sends never touch settings."""

    from_address: str
    server: str
    port: int
    username: str | None
    password: str | None

    @classmethod
    def from_settings(cls) -> "SmtpConfig":
        return cls(
            from_address=settings.EMAIL_FROM_ADDRESS,
            server=settings.SMTP_SERVER,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME or None,
            password=settings.SMTP_PASSWORD or None,
        )


@dataclass
class InviteEmail:
    subject: str
    body: str
    html_body: str


def build_invite_email(
    organizer_name: str,
    poll_title: str,
    poll_link: str,
    recipient_name: str | None = None,
    poll_description: str | None = None,
) -> InviteEmail:
    greeting = f"Hi {recipient_name}," if recipient_name else "Hi,"
    lines = [
        greeting,
        "",
        f"{organizer_name} is finding a time to meet for \"{poll_title}\".",
    ]
    if poll_description:
        lines += ["", poll_description]
    lines += [
        "",
        "Let them know when you're available:",
        poll_link,
    ]

    esc = html.escape
    description_html = f"<p>{esc(poll_description)}</p>" if poll_description else ""
    html_body = (
        f"<p>{esc(greeting)}</p>"
        f"<p><strong>{esc(organizer_name)}</strong> is finding a time to meet for "
        f"<strong>{esc(poll_title)}</strong>.</p>"
        f"{description_html}"
        f'<p><a href="{esc(poll_link)}">Share your availability</a></p>'
    )
    return InviteEmail(
        subject=f"{organizer_name} invited you to pick a time: {poll_title}",
        body="\n".join(lines),
        html_body=html_body,
    )


def _build_mime_message(
    from_addr: str, to: str, subject: str, body: str, html_body: str | None = None
) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["From"] = from_addr
    msg["To"] = to
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain", "utf-8"))
    if html_body:
        msg.attach(MIMEText(html_body, "html", "utf-8"))
    return msg


def send_via_smtp(
    config: SmtpConfig,
    to: str,
    subject: str,
    body: str,
    html_body: str | None = None,
) -> EmailResult:
    """Send one email via SMTP.

    Never raises: every failure is returned as an unsuccessful EmailResult.
    """
    if not config.server:
        return EmailResult(success=False, error="SMTP server is not configured")

    try:
        msg = _build_mime_message(config.from_address, to, subject, body, html_body)
        context = ssl.create_default_context()

        # Port 465 uses implicit TLS (SMTP_SSL), anything else uses STARTTLS
        if config.port == 465:
            with smtplib.SMTP_SSL(
                config.server, config.port, timeout=30, context=context
            ) as server:
                if config.password:
                    server.login(config.username or config.from_address, config.password)
                server.send_message(msg, to_addrs=[to])
        else:
            with smtplib.SMTP(config.server, config.port, timeout=30) as server:
                server.starttls(context=context)
                if config.password:
                    server.login(config.username or config.from_address, config.password)
                server.send_message(msg, to_addrs=[to])

        message_id = msg.get("Message-ID")
        logger.info(f"Email sent via SMTP to {to}, message_id={message_id}")
        return EmailResult(success=True, message_id=message_id)

    except smtplib.SMTPAuthenticationError as e:
        logger.error(f"SMTP authentication failed for {config.from_address}: {e}")
        return EmailResult(success=False, error=f"Authentication failed: {e}")
    except smtplib.SMTPException as e:
        logger.error(f"SMTP error sending email to {to}: {e}")
        return EmailResult(success=False, error=f"SMTP error: {e}")
    except Exception as e:
        logger.exception(f"Unexpected error sending email to {to}: {e}")
        return EmailResult(success=False, error=str(e))
