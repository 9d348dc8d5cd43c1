# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the Codionix API and client:
# - unit tests for lib/ (database, monitors, tracker, sanitize, config)
# - service tests against an in-memory SQLite database
# - HTTP tests through the FastAPI app with httpx.ASGITransport
#
# Run tests with: pytest
# =============================================================================
