# =============================================================================
# Mailer — Plain-Text Email over SMTP
# =============================================================================
#
# Used by the Celery worker for reward notifications and expiry reminders.
# Synchronous on purpose: it only ever runs inside worker processes.
#
# Transport follows settings:
#   smtp_use_ssl=True  → SMTP_SSL (implicit TLS, usually port 465)
#   smtp_use_ssl=False → SMTP + STARTTLS (usually port 587)
# An empty smtp_host disables sending; the message is logged and dropped.
# =============================================================================

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage

from bondquest.config import settings

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 15


def send_email(to: list[str], subject: str, body: str) -> bool:
    """
    Send a plain-text email.

    Returns:
        True when the SMTP server accepted the message, False when email
        is disabled, there are no recipients, or delivery failed.
    """
    recipients = [address for address in to if address]
    if not recipients:
        return False

    if not settings.smtp_host:
        logger.warning(
            "SMTP not configured; dropping email '%s' to %s", subject, recipients,
        )
        return False

    msg = EmailMessage()
    msg["From"] = settings.email_from
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        context = ssl.create_default_context()
        if settings.smtp_use_ssl:
            with smtplib.SMTP_SSL(
                settings.smtp_host,
                settings.smtp_port,
                context=context,
                timeout=SMTP_TIMEOUT_SECONDS,
            ) as server:
                _login(server)
                server.send_message(msg)
        else:
            with smtplib.SMTP(
                settings.smtp_host,
                settings.smtp_port,
                timeout=SMTP_TIMEOUT_SECONDS,
            ) as server:
                server.starttls(context=context)
                _login(server)
                server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send email '%s' to %s: %s", subject, recipients, e)
        return False

    logger.info("Email '%s' sent to %s", subject, recipients)
    return True


def _login(server: smtplib.SMTP) -> None:
    if settings.smtp_username and settings.smtp_password:
        server.login(settings.smtp_username, settings.smtp_password)


# ---------------------------------------------------------------------------
# Message bodies
# ---------------------------------------------------------------------------


def reward_awarded_message(
    reward_name: str,
    redemption_code: str,
    redemption_url: str | None,
    expires_at_text: str,
) -> tuple[str, str]:
    """(subject, body) for a newly awarded reward."""
    subject = f"You've won a BondQuest reward: {reward_name}"
    body = (
        "Congratulations!\n\n"
        f"You and your partner have been awarded \"{reward_name}\".\n\n"
        f"Redemption code: {redemption_code}\n"
        f"Claim it here: {redemption_url or '(open the Rewards tab in the app)'}\n\n"
        f"Please claim your reward before {expires_at_text}.\n\n"
        "Keep growing together,\nThe BondQuest team\n"
    )
    return subject, body


def reward_reminder_message(
    reward_name: str,
    redemption_code: str,
    redemption_url: str | None,
    expires_at_text: str,
) -> tuple[str, str]:
    """(subject, body) for an unclaimed reward about to expire."""
    subject = f"Reminder: your BondQuest reward expires soon ({reward_name})"
    body = (
        f"Your reward \"{reward_name}\" is still waiting for you.\n\n"
        f"Redemption code: {redemption_code}\n"
        f"Claim it here: {redemption_url or '(open the Rewards tab in the app)'}\n\n"
        f"It expires on {expires_at_text}.\n\n"
        "The BondQuest team\n"
    )
    return subject, body
