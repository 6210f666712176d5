# =============================================================================
# BondQuest Backend
# =============================================================================
# A relationship-coaching API for couples: partner linking, compatibility
# quizzes, AI persona chat, XP/levels, bond-strength analytics, onboarding
# conversations, competitions and physical/digital rewards.
#
# Package structure:
#   bondquest/
#   ├── api/          → FastAPI route handlers (auth, quizzes, bond, rewards...)
#   ├── db/           → Database engine, ORM models and the storage repository
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Business logic (scoring, bond analytics, personas,
#   │                    LLM providers, reward lifecycle, email)
#   └── workers/      → Celery task definitions and beat schedule
# =============================================================================
