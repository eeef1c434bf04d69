# app/core/email_client.py
from __future__ import annotations

"""
SMTP transport used by the notification dispatcher.

Responsibilities:
  - Read SMTP configuration from environment variables.
  - Provide send_email(...) for the dispatcher; nothing in the order,
    wallet or coupon paths calls this directly.
  - Support both TLS (STARTTLS) and SSL connections.

Typical .env configuration:

    SMTP_HOST=smtp.example.com
    SMTP_PORT=465
    SMTP_USERNAME=orders@example.com
    SMTP_PASSWORD=app-password
    SMTP_FROM_EMAIL=orders@example.com
    SMTP_FROM_NAME=Kitchen Orders
    SMTP_USE_TLS=false
    SMTP_USE_SSL=true

Leaving SMTP_HOST empty disables email; in-app notifications still work.
"""

import os
import smtplib
from email.message import EmailMessage


def _get_bool_env(name: str, default: bool = False) -> bool:
    """
    Read a boolean env var ("1", "true", "yes", "y" are truthy).
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y"}


# ---------------------------------------------------------------------------
# Configuration: read once at import time
# ---------------------------------------------------------------------------

SMTP_HOST: str | None = os.getenv("SMTP_HOST")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))

SMTP_USERNAME: str | None = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD: str | None = os.getenv("SMTP_PASSWORD")

SMTP_FROM_EMAIL: str = os.getenv("SMTP_FROM_EMAIL", SMTP_USERNAME or "")
SMTP_FROM_NAME: str = os.getenv("SMTP_FROM_NAME", "Kitchen Orders")

SMTP_USE_TLS: bool = _get_bool_env("SMTP_USE_TLS", default=True)
SMTP_USE_SSL: bool = _get_bool_env("SMTP_USE_SSL", default=False)

SMTP_TIMEOUT_SECONDS: int = int(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))


def is_configured() -> bool:
    return bool(SMTP_HOST and SMTP_USERNAME and SMTP_PASSWORD)


def _create_smtp_client() -> smtplib.SMTP:
    """
    SSL (usually port 465) when SMTP_USE_SSL, else plain SMTP upgraded
    with STARTTLS when SMTP_USE_TLS (usually port 587).
    """
    if not SMTP_HOST:
        raise RuntimeError("SMTP_HOST is not configured. Please set it in .env.")

    if SMTP_USE_SSL:
        server: smtplib.SMTP = smtplib.SMTP_SSL(
            SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS
        )
    else:
        server = smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS)
        if SMTP_USE_TLS:
            server.starttls()

    return server


def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
) -> None:
    """
    Send an email to a single recipient.

    Raises
    ------
    RuntimeError:
        If required SMTP configuration is missing.
    smtplib.SMTPException / OSError:
        If the connection or send fails. The dispatcher catches these.
    """
    if not is_configured():
        raise RuntimeError(
            "SMTP is not configured correctly. "
            "Please set SMTP_HOST, SMTP_USERNAME, and SMTP_PASSWORD in .env."
        )

    msg = EmailMessage()
    msg["From"] = (
        f"{SMTP_FROM_NAME} <{SMTP_FROM_EMAIL}>" if SMTP_FROM_EMAIL else SMTP_USERNAME
    )
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")

    server = _create_smtp_client()
    try:
        server.login(SMTP_USERNAME, SMTP_PASSWORD)  # type: ignore[arg-type]
        server.send_message(msg)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            # Connection is being torn down anyway.
            pass
