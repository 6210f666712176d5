# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration and beat schedule
#   - tasks.py: reward notification emails and periodic reward maintenance
#
# Email delivery talks to an SMTP server that can be slow or down, and
# reward expiry has to run on a clock. Neither belongs in a request.
# =============================================================================
