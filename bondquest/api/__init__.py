# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines an APIRouter mounted under /api by bondquest.main:
#   - auth.py / users.py: registration, login, partner linking, check-ins
#   - couples.py: couple profile, dashboard, activities, achievements
#   - quizzes.py: quiz catalogue, AI generation and quiz sessions
#   - chats.py: AI companion chat
#   - bond.py: bond dimensions, assessments, strength and insights
#   - conversations.py: onboarding conversations and profile insights
#   - competitions.py / rewards.py / subscriptions.py: couple-facing views
#   - admin.py: everything that needs the admin role
#   - deps.py: shared dependencies (storage, current user, access checks)
#   - middleware.py: per-request logging
# =============================================================================
