# =============================================================================
# Celery Task Definitions — Reward Notifications & Maintenance
# =============================================================================
#
# send_reward_notification(couple_reward_id)
#   Queued by the admin award endpoint. Emails both partners the
#   redemption code and marks the row notified.
#
# run_reward_maintenance()
#   Run by Celery beat. Expires awarded/claimed rewards past their expiry,
#   then emails reminders for unclaimed rewards that expire soon.
#
# IMPORTANT: Celery workers are SYNCHRONOUS.
# - Do NOT use `async/await` in Celery tasks
# - Do NOT use the async SQLAlchemy engine (use get_sync_session instead)
# The lifecycle rules are shared with the API through the pure helpers in
# bondquest.services.rewards, so the worker never writes `status` itself.
# =============================================================================

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from bondquest.db.engine import get_sync_session
from bondquest.db.models import Couple, CoupleReward, CoupleRewardStatus, Reward, User
from bondquest.services import rewards
from bondquest.services.mailer import (
    reward_awarded_message,
    reward_reminder_message,
    send_email,
)
from bondquest.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _partner_emails(session: Session, couple_id: int) -> list[str]:
    couple = session.get(Couple, couple_id)
    if couple is None:
        return []
    emails = []
    for user_id in couple.member_ids():
        user = session.get(User, user_id)
        if user is not None and user.email:
            emails.append(user.email)
    return emails


def _format_expiry(expires_at: datetime | None) -> str:
    if expires_at is None:
        return "no expiry date"
    return expires_at.strftime("%B %d, %Y")


def _mark_notified(task_id: str | None, couple_reward_id: int) -> bool:
    try:
        with get_sync_session() as session:
            couple_reward = session.get(CoupleReward, couple_reward_id)
            if couple_reward is None:
                return False
            couple_reward.notification_sent = True
            couple_reward.notified_at = datetime.now(UTC)
    except Exception:
        logger.exception(
            "[%s] Email sent but couple_reward=%d could not be marked notified",
            task_id, couple_reward_id,
        )
        return False
    return True


# ---------------------------------------------------------------------------
# Notification Task
# ---------------------------------------------------------------------------


@celery_app.task(
    bind=True,
    name="send_reward_notification",
    max_retries=3,
    default_retry_delay=60,
)
def send_reward_notification(self, couple_reward_id: int) -> dict:
    """
    Email both partners about a newly awarded reward.

    Three steps, each with its own session boundary:
      1. load the row and build the message (database errors are retried)
      2. send, outside any transaction
      3. mark the row notified in a short session of its own

    SMTP failures are reported by send_email returning False; the row is
    left un-notified so an admin can resend. Once an email has gone out
    the task never retries, so a failed step 3 is logged and leaves the
    flag unset rather than emailing the couple twice.
    """
    task_id = self.request.id
    logger.info("[%s] Sending reward notification for couple_reward=%d", task_id, couple_reward_id)

    try:
        with get_sync_session() as session:
            couple_reward = session.get(CoupleReward, couple_reward_id)
            if couple_reward is None:
                logger.warning("[%s] Couple reward %d not found", task_id, couple_reward_id)
                return {"couple_reward_id": couple_reward_id, "sent": False}

            reward = session.get(Reward, couple_reward.reward_id)
            recipients = _partner_emails(session, couple_reward.couple_id)
            subject, body = reward_awarded_message(
                reward.name if reward else "your reward",
                couple_reward.redemption_code,
                couple_reward.redemption_url,
                _format_expiry(couple_reward.expires_at),
            )
    except Exception as exc:
        logger.exception(
            "[%s] Notification lookup failed for couple_reward=%d: %s",
            task_id, couple_reward_id, exc,
        )
        raise self.retry(exc=exc)

    sent = send_email(recipients, subject, body)

    summary = {
        "couple_reward_id": couple_reward_id,
        "sent": sent,
        "recipients": len(recipients),
    }
    if sent:
        summary["marked"] = _mark_notified(task_id, couple_reward_id)

    logger.info("[%s] Notification done: %s", task_id, summary)
    return summary


# ---------------------------------------------------------------------------
# Maintenance Task
# ---------------------------------------------------------------------------


@celery_app.task(bind=True, name="run_reward_maintenance")
def run_reward_maintenance(self) -> dict:
    """Expire overdue rewards and send expiry reminders."""
    task_id = self.request.id
    now = datetime.now(UTC)

    with get_sync_session() as session:
        open_rows = session.scalars(
            select(CoupleReward).where(
                CoupleReward.status.in_([CoupleRewardStatus.AWARDED, CoupleRewardStatus.CLAIMED])
            )
        ).all()

        expired = rewards.expire_due(open_rows, now)
        for row in expired:
            logger.info("[%s] Couple reward %d expired", task_id, row.id)

        reminders_sent = 0
        for row in rewards.reminder_candidates(open_rows, now):
            reward = session.get(Reward, row.reward_id)
            subject, body = reward_reminder_message(
                reward.name if reward else "your reward",
                row.redemption_code,
                row.redemption_url,
                _format_expiry(row.expires_at),
            )
            if send_email(_partner_emails(session, row.couple_id), subject, body):
                row.reminders_sent_count = (row.reminders_sent_count or 0) + 1
                row.last_reminder_at = now
                reminders_sent += 1

    summary = {
        "checked": len(open_rows),
        "expired": len(expired),
        "reminders_sent": reminders_sent,
    }
    logger.info("[%s] Reward maintenance complete: %s", task_id, summary)
    return summary
