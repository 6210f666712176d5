# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API, kept apart from the ORM models in
# bondquest/db/models.py so the public contract and the storage layout can
# change independently (and password hashes never leave the server).
# =============================================================================
