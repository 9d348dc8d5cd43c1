# =============================================================================
# client/cache.py - Query Cache & Mutations
# =============================================================================
# Client-side cache for API reads plus a mutation helper with optimistic
# updates.
#
# Keys are hierarchical tuples so a prefix invalidates a whole family:
#
#   query_keys.projects.all              ("projects",)
#   query_keys.projects.lists()          ("projects", "list")
#   query_keys.projects.list(filters)    ("projects", "list", (("skills", "python"),))
#   query_keys.projects.detail(id)       ("projects", "detail", id)
#   query_keys.projects.applicants(id)   ("projects", "detail", id, "applicants")
#
#   cache.invalidate(query_keys.projects.lists())   # every filtered list
#
# Mutation flow:
#   1. reject duplicate submissions (DuplicateSubmissionError)
#   2. on_optimistic(variables, cache) -> rollback context
#   3. run mutation_fn, retrying once on 5xx / network errors, never on 4xx
#   4a. failure: on_rollback(context, cache), re-raise
#   4b. success: invalidate invalidate_keys
# =============================================================================

import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Awaitable, Callable, Iterable

import httpx

from client.http import ApiError

logger = logging.getLogger(__name__)

QueryKey = tuple

DEFAULT_STALE_SECONDS = 5 * 60
DEFAULT_DEBOUNCE_MS = 1000
RETRY_DELAY_SECONDS = 1.0


# =============================================================================
# Query Keys
# =============================================================================

def _freeze(filters: dict[str, Any] | None) -> tuple:
    """Dict filters -> hashable, order-independent key segment."""
    if not filters:
        return ()
    return tuple(sorted((k, v) for k, v in filters.items() if v is not None))


class ProjectKeys:
    all: QueryKey = ("projects",)

    @staticmethod
    def lists() -> QueryKey:
        return (*ProjectKeys.all, "list")

    @staticmethod
    def list(filters: dict[str, Any] | None = None) -> QueryKey:
        return (*ProjectKeys.lists(), _freeze(filters))

    @staticmethod
    def details() -> QueryKey:
        return (*ProjectKeys.all, "detail")

    @staticmethod
    def detail(project_id: str) -> QueryKey:
        return (*ProjectKeys.details(), project_id)

    @staticmethod
    def my_projects() -> QueryKey:
        return (*ProjectKeys.all, "my-projects")

    @staticmethod
    def applicants(project_id: str) -> QueryKey:
        return (*ProjectKeys.detail(project_id), "applicants")


class ApplicationKeys:
    all: QueryKey = ("applications",)

    @staticmethod
    def lists() -> QueryKey:
        return (*ApplicationKeys.all, "list")

    @staticmethod
    def list(filters: dict[str, Any] | None = None) -> QueryKey:
        return (*ApplicationKeys.lists(), _freeze(filters))

    @staticmethod
    def details() -> QueryKey:
        return (*ApplicationKeys.all, "detail")

    @staticmethod
    def detail(application_id: str) -> QueryKey:
        return (*ApplicationKeys.details(), application_id)

    @staticmethod
    def my_applications() -> QueryKey:
        return (*ApplicationKeys.all, "my-applications")


class UserKeys:
    all: QueryKey = ("user",)

    @staticmethod
    def current() -> QueryKey:
        return (*UserKeys.all, "current")

    @staticmethod
    def profile(user_id: str | None = None) -> QueryKey:
        if user_id:
            return (*UserKeys.all, "profile", user_id)
        return (*UserKeys.all, "profile")


class AuthKeys:
    all: QueryKey = ("auth",)

    @staticmethod
    def session() -> QueryKey:
        return (*AuthKeys.all, "session")


query_keys = SimpleNamespace(
    projects=ProjectKeys,
    applications=ApplicationKeys,
    user=UserKeys,
    auth=AuthKeys,
)


# =============================================================================
# Retry Policy
# =============================================================================

def is_retryable(exc: BaseException) -> bool:
    """Server errors and network failures are worth one more try; 4xx never."""
    if isinstance(exc, ApiError):
        return exc.is_server_error
    return isinstance(exc, httpx.TransportError)


async def _with_retry(fn: Callable[[], Awaitable[Any]], retries: int, delay: float) -> Any:
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if attempt >= retries or not is_retryable(e):
                raise
            attempt += 1
            logger.info(f"Retrying after {type(e).__name__} (attempt {attempt}/{retries})")
            await asyncio.sleep(delay)


# =============================================================================
# Query Cache
# =============================================================================

@dataclass
class CacheEntry:
    data: Any
    updated_at: float
    invalidated: bool = False


class QueryCache:
    """
    In-memory cache keyed by query_keys tuples.

    Args:
        stale_time: Seconds a fetched value is served without refetching
        clock: Monotonic time source (overridable in tests)
    """

    def __init__(self, stale_time: float = DEFAULT_STALE_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.stale_time = stale_time
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def get(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        return entry.data if entry else None

    def set(self, key: QueryKey, data: Any) -> None:
        self._entries[key] = CacheEntry(data=data, updated_at=self._clock())

    def remove(self, key: QueryKey) -> None:
        self._entries.pop(key, None)

    def is_stale(self, key: QueryKey, stale_time: float | None = None) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.invalidated:
            return True
        limit = self.stale_time if stale_time is None else stale_time
        return self._clock() - entry.updated_at >= limit

    async def get_or_fetch(
        self,
        key: QueryKey,
        fetch: Callable[[], Awaitable[Any]],
        stale_time: float | None = None,
        retries: int = 1,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ) -> Any:
        """Serve fresh cached data, otherwise fetch and store."""
        if not self.is_stale(key, stale_time):
            return self._entries[key].data
        data = await _with_retry(fetch, retries, retry_delay)
        self.set(key, data)
        return data

    def invalidate(self, prefix: QueryKey) -> int:
        """
        Mark every entry under `prefix` stale.

        Stale entries are still returned by get() but get_or_fetch()
        refetches them.

        Returns:
            Number of entries marked
        """
        count = 0
        for key, entry in self._entries.items():
            if key[: len(prefix)] == prefix:
                entry.invalidated = True
                count += 1
        return count

    def snapshot(self, key: QueryKey) -> Any:
        """Deep copy of the cached value, for rolling back optimistic edits."""
        return copy.deepcopy(self.get(key))

    def restore(self, key: QueryKey, snapshot: Any) -> None:
        if snapshot is None:
            self.remove(key)
        else:
            self.set(key, snapshot)


# =============================================================================
# Mutations
# =============================================================================

class DuplicateSubmissionError(Exception):
    """A submission arrived while the previous one was still in flight."""

    def __init__(self):
        super().__init__("Your previous request is still processing")


class Mutation:
    """
    Write operation with optimistic update, rollback and cache invalidation.

    Example:
        delete_project = Mutation(
            cache,
            lambda project_id: api.projects.delete(project_id),
            invalidate_keys=[query_keys.projects.all],
            on_optimistic=hide_project,
            on_rollback=lambda ctx, cache: cache.restore(*ctx),
        )
        await delete_project(project_id)
    """

    def __init__(
        self,
        cache: QueryCache,
        mutation_fn: Callable[[Any], Awaitable[Any]],
        invalidate_keys: Iterable[QueryKey] = (),
        on_optimistic: Callable[[Any, QueryCache], Any] | None = None,
        on_rollback: Callable[[Any, QueryCache], None] | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        retry_delay: float = RETRY_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cache = cache
        self.mutation_fn = mutation_fn
        self.invalidate_keys = list(invalidate_keys)
        self.on_optimistic = on_optimistic
        self.on_rollback = on_rollback
        self.debounce_ms = debounce_ms
        self.retry_delay = retry_delay
        self._clock = clock
        self._pending = False
        self._last_submit: float | None = None

    @property
    def is_pending(self) -> bool:
        return self._pending

    def _is_duplicate(self, now: float) -> bool:
        if self._pending:
            return True
        if self._last_submit is None:
            return False
        return (now - self._last_submit) * 1000 < self.debounce_ms

    async def __call__(self, variables: Any = None) -> Any:
        now = self._clock()
        if self._is_duplicate(now):
            raise DuplicateSubmissionError()

        self._pending = True
        self._last_submit = now
        try:
            context = self.on_optimistic(variables, self.cache) if self.on_optimistic else None
            try:
                result = await _with_retry(lambda: self.mutation_fn(variables), 1, self.retry_delay)
            except Exception as e:
                if self.on_rollback and context is not None:
                    logger.info(f"Mutation failed, rolling back optimistic update: {e}")
                    self.on_rollback(context, self.cache)
                raise

            for key in self.invalidate_keys:
                self.cache.invalidate(key)
            return result
        finally:
            self._pending = False
