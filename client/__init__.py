# =============================================================================
# client/ - Codionix API Client
# =============================================================================
# - http.py: ApiClient with token refresh and resource helpers
# - cache.py: QueryCache, query_keys and optimistic Mutation
# =============================================================================

from .http import ApiClient, ApiError, AuthenticationExpired, TokenStore
from .cache import DuplicateSubmissionError, Mutation, QueryCache, query_keys

__all__ = [
    "ApiClient",
    "ApiError",
    "AuthenticationExpired",
    "TokenStore",
    "QueryCache",
    "Mutation",
    "DuplicateSubmissionError",
    "query_keys",
]
