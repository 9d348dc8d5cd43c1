# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains the domain layer:
# - entities.py: SQLAlchemy tables (users, projects, applications, feedback)
# - models/: Pydantic schemas for requests, responses and envelopes
# - services/: business rules, one class of static methods per resource
#
# Services take an AsyncSession and raise app.exceptions errors; they never
# build HTTP responses.
# =============================================================================
