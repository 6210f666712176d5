# =============================================================================
# Database Package
# =============================================================================
# Provides the async SQLAlchemy engine, session management, ORM models and
# the storage repository.
#
# Key exports:
#   - get_async_session: FastAPI dependency for database sessions
#   - get_sync_session: context manager for Celery workers
#   - Base: SQLAlchemy declarative base for ORM models
#   - DatabaseStorage: async repository used by routes and services
# =============================================================================
