# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable infrastructure:
# - database.py: connection pool client (connect/retry, health, sessions)
# - pool_monitor.py / query_monitor.py: pool utilization, query timeouts, leaks
# - request_tracker.py: in-flight request counting for graceful shutdown
# - logger.py: logging setup, correlation IDs, operation tracking
# - sanitize.py: redaction of secrets before they reach the logs
# - tokens.py / passwords.py: JWT pairs and bcrypt hashing
# - utils.py: ids, UTC helpers, pagination math
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================
