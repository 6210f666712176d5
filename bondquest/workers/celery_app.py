# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs the work that should not hold up an API request or that has
# to happen on a clock:
#   - send_reward_notification: email both partners about a new reward
#   - run_reward_maintenance:   expire overdue rewards, send reminders
#
# ARCHITECTURE:
# ┌──────────┐     ┌───────┐     ┌──────────────┐     ┌───────┐
# │ FastAPI  │────▶│ Redis │────▶│ Celery Worker│────▶│ Redis │
# │(producer)│     │(broker)│    │ (consumer)   │     │(result)│
# └──────────┘     └───────┘     └──────────────┘     └───────┘
#                      ▲
#                ┌───────────┐
#                │Celery beat│  (periodic maintenance)
#                └───────────┘
#
# Run locally:
#   celery -A bondquest.workers.celery_app worker --loglevel=info
#   celery -A bondquest.workers.celery_app beat --loglevel=info
# =============================================================================

from celery import Celery

from bondquest.config import settings

celery_app = Celery(
    "bondquest.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only; pickle can execute arbitrary code during deserialization.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Acknowledge after completion so a crashed worker's task is re-queued.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    task_soft_time_limit=120,
    task_time_limit=300,

    # --- Results ---
    result_expires=3600,

    timezone="UTC",
    enable_utc=True,

    include=["bondquest.workers.tasks"],
)

# ---------------------------------------------------------------------------
# Beat Schedule
# ---------------------------------------------------------------------------
# Maintenance is idempotent: expired rows are skipped on the next run and
# reminder counters cap how often a couple is emailed.
# ---------------------------------------------------------------------------
celery_app.conf.beat_schedule = {
    "reward-maintenance": {
        "task": "run_reward_maintenance",
        "schedule": settings.reward_maintenance_interval_minutes * 60.0,
    },
}
