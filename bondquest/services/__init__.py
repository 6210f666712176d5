# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core business logic, separated from API handlers:
#   - scoring.py: quiz match percentage, XP and levels
#   - bond.py: bond dimensions and weighted bond strength
#   - couples.py: partner linking, XP awards, activities, achievements
#   - quizzes.py: daily quiz, session completion, generated quizzes
#   - companions.py: AI companion personas and chat replies
#   - insights.py: bond insights for weak dimensions
#   - conversation.py: Gemini onboarding conversations
#   - generation.py: LLM prompts and JSON parsing for generated content
#   - llm.py: multi-provider LLM abstraction (Anthropic, OpenAI, Gemini)
#   - competitions.py / rewards.py: competitions and the reward lifecycle
#   - auth.py / rate_limiter.py: passwords, tokens and AI throttling
#   - mailer.py: SMTP email
#   - errors.py: domain exceptions mapped to HTTP status codes
# =============================================================================
