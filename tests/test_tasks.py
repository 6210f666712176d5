# =============================================================================
# Unit Tests — Celery Tasks (run in-process, no broker)
# =============================================================================
#
# Tasks are called directly, so `self.request` is a blank context and
# `self.retry` re-raises the original error. The sync session and the
# mailer are patched at the tasks module.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from bondquest.db.models import Couple, CoupleReward, CoupleRewardStatus as S, Reward, User
from bondquest.workers import tasks
from bondquest.workers.celery_app import celery_app


@dataclass
class FakeCoupleReward:
    id: int = 10
    couple_id: int = 1
    reward_id: int = 1
    status: S = S.AWARDED
    redemption_code: str = "ABCD1234"
    redemption_url: str | None = "http://localhost:5000/rewards/redeem/ABCD1234"
    expires_at: datetime | None = None
    notification_sent: bool = False
    notified_at: datetime | None = None
    reminders_sent_count: int = 0
    last_reminder_at: datetime | None = None


@dataclass
class FakeReward:
    name: str = "Spa Day"


@dataclass
class FakeCouple:
    user_id_1: int = 1
    user_id_2: int = 2

    def member_ids(self):
        return (self.user_id_1, self.user_id_2)


@dataclass
class FakeUser:
    email: str


def _session(couple_rewards: dict[int, FakeCoupleReward], open_rows=()) -> MagicMock:
    rows = {
        CoupleReward: couple_rewards,
        Reward: {1: FakeReward()},
        Couple: {1: FakeCouple()},
        User: {1: FakeUser("a@example.com"), 2: FakeUser("b@example.com")},
    }
    session = MagicMock()
    session.get.side_effect = lambda model, key: rows[model].get(key)
    session.scalars.return_value.all.return_value = list(open_rows)
    return session


def _sync_session(session: MagicMock) -> MagicMock:
    factory = MagicMock()
    factory.return_value.__enter__.return_value = session
    return factory


class TestBeatSchedule:
    def test_maintenance_is_scheduled(self):
        entry = celery_app.conf.beat_schedule["reward-maintenance"]
        assert entry["task"] == "run_reward_maintenance"
        assert entry["schedule"] > 0

    def test_tasks_registered_by_name(self):
        assert tasks.send_reward_notification.name == "send_reward_notification"
        assert tasks.run_reward_maintenance.name == "run_reward_maintenance"


class TestSendRewardNotification:
    def test_emails_both_partners_and_marks_notified(self):
        row = FakeCoupleReward(expires_at=datetime(2025, 7, 1, tzinfo=UTC))
        session = _session({10: row})

        with (
            patch("bondquest.workers.tasks.get_sync_session", _sync_session(session)),
            patch("bondquest.workers.tasks.send_email", return_value=True) as send,
        ):
            result = tasks.send_reward_notification(10)

        assert result == {"couple_reward_id": 10, "sent": True, "recipients": 2, "marked": True}
        recipients, subject, body = send.call_args.args
        assert recipients == ["a@example.com", "b@example.com"]
        assert "Spa Day" in subject
        assert "July 01, 2025" in body
        assert row.notification_sent is True
        assert row.notified_at is not None

    def test_smtp_failure_leaves_row_unnotified(self):
        row = FakeCoupleReward()
        session = _session({10: row})

        with (
            patch("bondquest.workers.tasks.get_sync_session", _sync_session(session)),
            patch("bondquest.workers.tasks.send_email", return_value=False),
        ):
            result = tasks.send_reward_notification(10)

        assert result["sent"] is False
        assert row.notification_sent is False

    def test_failed_mark_is_not_retried(self):
        session = _session({10: FakeCoupleReward()})
        loading = MagicMock()
        loading.__enter__.return_value = session
        factory = MagicMock(side_effect=[loading, RuntimeError("commit failed")])

        with (
            patch("bondquest.workers.tasks.get_sync_session", factory),
            patch("bondquest.workers.tasks.send_email", return_value=True) as send,
        ):
            result = tasks.send_reward_notification(10)

        send.assert_called_once()
        assert result["sent"] is True
        assert result["marked"] is False

    def test_missing_row(self):
        session = _session({})
        with (
            patch("bondquest.workers.tasks.get_sync_session", _sync_session(session)),
            patch("bondquest.workers.tasks.send_email") as send,
        ):
            result = tasks.send_reward_notification(99)
        assert result == {"couple_reward_id": 99, "sent": False}
        send.assert_not_called()

    def test_database_error_is_raised_for_retry(self):
        failing = MagicMock(side_effect=RuntimeError("db down"))
        with patch("bondquest.workers.tasks.get_sync_session", failing):
            with pytest.raises(RuntimeError):
                tasks.send_reward_notification(10)


class TestRunRewardMaintenance:
    def test_expires_and_reminds(self):
        now = datetime.now(UTC)
        overdue = FakeCoupleReward(id=1, expires_at=now - timedelta(days=1))
        expiring = FakeCoupleReward(id=2, expires_at=now + timedelta(days=2))
        capped = FakeCoupleReward(id=3, expires_at=now + timedelta(days=2), reminders_sent_count=99)
        session = _session({}, open_rows=[overdue, expiring, capped])

        with (
            patch("bondquest.workers.tasks.get_sync_session", _sync_session(session)),
            patch("bondquest.workers.tasks.send_email", return_value=True) as send,
        ):
            result = tasks.run_reward_maintenance()

        assert result == {"checked": 3, "expired": 1, "reminders_sent": 1}
        assert overdue.status == S.EXPIRED
        assert expiring.reminders_sent_count == 1
        assert expiring.last_reminder_at is not None
        assert send.call_args.args[1].startswith("Reminder:")

    def test_failed_reminder_is_not_counted(self):
        expiring = FakeCoupleReward(expires_at=datetime.now(UTC) + timedelta(days=2))
        session = _session({}, open_rows=[expiring])

        with (
            patch("bondquest.workers.tasks.get_sync_session", _sync_session(session)),
            patch("bondquest.workers.tasks.send_email", return_value=False),
        ):
            result = tasks.run_reward_maintenance()

        assert result["reminders_sent"] == 0
        assert expiring.reminders_sent_count == 0
