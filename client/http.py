# =============================================================================
# client/http.py - Codionix API Client
# =============================================================================
# Async HTTP client for the Codionix API built on httpx.
#
# - Attaches the stored access token to every request
# - On 401, refreshes the token pair once and replays the request
# - Concurrent 401s share a single in-flight refresh; every waiter is
#   replayed with the new token, or fails with the same
#   AuthenticationExpired error (and the token store is cleared)
# - Unwraps the {"success", "data"} envelope; failures raise ApiError
#
# Usage:
#   async with ApiClient("http://localhost:5000/api/v1") as api:
#       await api.auth.login("ada@codionix.dev", "S3cure!pass")
#       page = await api.projects.list_projects(skills="python", limit=5)
# =============================================================================

import asyncio
import logging
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# A 401 from these means bad credentials, not an expired access token
NO_REFRESH_PATHS = ("/auth/login", "/auth/register", "/auth/refresh")


# =============================================================================
# Errors
# =============================================================================

class ApiError(Exception):
    """
    Error envelope returned by the API.

    Example body:
        {"success": false, "error": {"code": "CONFLICT", "message": "...", "details": {...}}}
    """

    def __init__(self, status: int, code: str, message: str, details: Any = None):
        self.status = status
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{status} {code}: {message}")

    @property
    def is_server_error(self) -> bool:
        return self.status >= 500


class AuthenticationExpired(ApiError):
    """The refresh token is missing, expired or revoked. Sign in again."""

    def __init__(self, message: str = "Session expired, please sign in again"):
        super().__init__(401, "AUTHENTICATION_EXPIRED", message)


# =============================================================================
# Token Store
# =============================================================================

class TokenStore:
    """
    Holds the current access/refresh token pair.

    on_cleared is called after clear(), e.g. to send the user back to a
    login prompt.
    """

    def __init__(
        self,
        access_token: str | None = None,
        refresh_token: str | None = None,
        on_cleared: Callable[[], None] | None = None,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.on_cleared = on_cleared

    def set(self, access_token: str, refresh_token: str) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        if self.on_cleared:
            self.on_cleared()


# =============================================================================
# Client
# =============================================================================

class ApiClient:
    """
    Args:
        base_url: API root including the version prefix
        token_store: Shared token store; a fresh one is created if omitted
        transport: httpx transport override (tests use ASGITransport or MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        token_store: TokenStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.tokens = token_store or TokenStore()
        self._http = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self._refresh_future: asyncio.Future | None = None

        self.auth = AuthApi(self)
        self.projects = ProjectsApi(self)
        self.applications = ApplicationsApi(self)
        self.users = UsersApi(self)
        self.feedback = FeedbackApi(self)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        token: str | None,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        return await self._http.request(method, path, json=json, params=params, headers=headers)

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        envelope: bool = False,
    ) -> Any:
        """
        Send a request and unwrap the response envelope.

        Args:
            envelope: Return the whole body instead of body["data"]
                      (list endpoints put pagination beside the data)

        Raises:
            ApiError: Non-2xx response
            AuthenticationExpired: 401 and the token pair could not be refreshed
            httpx.TransportError: Network failure
        """
        token = self.tokens.access_token
        response = await self._send(method, path, token, json=json, params=params)

        if response.status_code == 401 and not path.startswith(NO_REFRESH_PATHS):
            if self.tokens.access_token and self.tokens.access_token != token:
                # Someone refreshed while this request was in flight
                new_token = self.tokens.access_token
            else:
                new_token = await self._refreshed_token()
            response = await self._send(method, path, new_token, json=json, params=params)

        return self._unwrap(response, envelope)

    @staticmethod
    def _unwrap(response: httpx.Response, envelope: bool = False) -> Any:
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success:
            if envelope or not isinstance(body, dict):
                return body
            return body.get("data")

        error = body.get("error") if isinstance(body, dict) else None
        error = error or {}
        raise ApiError(
            response.status_code,
            error.get("code", "HTTP_ERROR"),
            error.get("message", response.reason_phrase),
            error.get("details"),
        )

    # -------------------------------------------------------------------------
    # Token refresh
    # -------------------------------------------------------------------------

    async def _refreshed_token(self) -> str:
        """
        Return a fresh access token, refreshing at most once at a time.

        Callers arriving while a refresh is running wait for its outcome
        instead of starting their own.
        """
        if self._refresh_future is not None:
            return await asyncio.shield(self._refresh_future)

        future = asyncio.get_running_loop().create_future()
        self._refresh_future = future
        try:
            token = await self._do_refresh()
        except (ApiError, httpx.HTTPError) as e:
            error = e if isinstance(e, AuthenticationExpired) else AuthenticationExpired()
            logger.warning(f"Token refresh failed: {e}")
            self.tokens.clear()
            future.set_exception(error)
            # Waiters re-raise it; mark retrieved so an unawaited future stays quiet
            future.exception()
            if error is e:
                raise
            raise error from e
        else:
            future.set_result(token)
            return token
        finally:
            self._refresh_future = None
            if not future.done():
                future.cancel()

    async def _do_refresh(self) -> str:
        refresh_token = self.tokens.refresh_token
        if not refresh_token:
            raise AuthenticationExpired("No refresh token")

        logger.debug("Access token rejected, refreshing")
        response = await self._send("POST", "/auth/refresh", None, json={"refreshToken": refresh_token})
        data = self._unwrap(response)
        self.tokens.set(data["accessToken"], data["refreshToken"])
        return data["accessToken"]


# =============================================================================
# Resource Helpers
# =============================================================================

class _Resource:
    def __init__(self, client: ApiClient):
        self._client = client


class AuthApi(_Resource):
    async def register(self, data: dict[str, Any]) -> dict[str, Any]:
        result = await self._client.request("POST", "/auth/register", json=data)
        self._remember(result)
        return result

    async def login(self, email: str, password: str) -> dict[str, Any]:
        result = await self._client.request("POST", "/auth/login", json={"email": email, "password": password})
        self._remember(result)
        return result

    def _remember(self, result: dict[str, Any]) -> None:
        tokens = result["tokens"]
        self._client.tokens.set(tokens["accessToken"], tokens["refreshToken"])

    async def logout(self) -> None:
        refresh_token = self._client.tokens.refresh_token
        try:
            if refresh_token:
                await self._client.request("POST", "/auth/logout", json={"refreshToken": refresh_token})
        finally:
            self._client.tokens.clear()

    async def me(self) -> dict[str, Any]:
        return await self._client.request("GET", "/auth/me")

    async def forgot_password(self, email: str) -> dict[str, Any]:
        return await self._client.request("POST", "/auth/forgot-password", json={"email": email})

    async def reset_password(self, token: str, password: str) -> dict[str, Any]:
        return await self._client.request("POST", "/auth/reset-password", json={"token": token, "password": password})

    async def verify_email(self, token: str) -> dict[str, Any]:
        return await self._client.request("POST", "/auth/verify-email", json={"token": token})

    async def resend_verification(self, email: str) -> dict[str, Any]:
        return await self._client.request("POST", "/auth/resend-verification", json={"email": email})


class ProjectsApi(_Resource):
    async def list_projects(self, **filters: Any) -> dict[str, Any]:
        """Returns {"data": [...], "pagination": {...}}."""
        return await self._client.request("GET", "/projects", params=filters, envelope=True)

    async def get(self, project_id: str) -> dict[str, Any]:
        return await self._client.request("GET", f"/projects/{project_id}")

    async def my_projects(self) -> list[dict[str, Any]]:
        return await self._client.request("GET", "/projects/my-projects")

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._client.request("POST", "/projects", json=data)

    async def update(self, project_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self._client.request("PATCH", f"/projects/{project_id}", json=data)

    async def delete(self, project_id: str) -> None:
        await self._client.request("DELETE", f"/projects/{project_id}")

    async def applications(self, project_id: str) -> list[dict[str, Any]]:
        return await self._client.request("GET", f"/projects/{project_id}/applications")


class ApplicationsApi(_Resource):
    async def list_applications(self, **filters: Any) -> dict[str, Any]:
        return await self._client.request("GET", "/applications", params=filters, envelope=True)

    async def my_applications(self) -> list[dict[str, Any]]:
        return await self._client.request("GET", "/applications/my-applications")

    async def get(self, application_id: str) -> dict[str, Any]:
        return await self._client.request("GET", f"/applications/{application_id}")

    async def create(self, project_id: str, cover_letter: str, resume_url: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"projectId": project_id, "coverLetter": cover_letter}
        if resume_url:
            body["resumeUrl"] = resume_url
        return await self._client.request("POST", "/applications", json=body)

    async def update_status(
        self, application_id: str, status: str, rejection_reason: str | None = None
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"status": status}
        if rejection_reason is not None:
            body["rejectionReason"] = rejection_reason
        return await self._client.request("PATCH", f"/applications/{application_id}/status", json=body)


class UsersApi(_Resource):
    async def me(self) -> dict[str, Any]:
        return await self._client.request("GET", "/users/me")

    async def update_profile(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._client.request("PATCH", "/users/me", json=data)

    async def update_avatar(self, url: str) -> dict[str, Any]:
        return await self._client.request("POST", "/users/me/avatar", json={"profilePictureUrl": url})


class FeedbackApi(_Resource):
    async def list_feedback(self, **filters: Any) -> dict[str, Any]:
        return await self._client.request("GET", "/feedback", params=filters, envelope=True)

    async def my_feedback(self) -> list[dict[str, Any]]:
        return await self._client.request("GET", "/feedback/my-feedback")

    async def given(self) -> list[dict[str, Any]]:
        return await self._client.request("GET", "/feedback/given")

    async def for_application(self, application_id: str) -> dict[str, Any] | None:
        return await self._client.request("GET", f"/feedback/application/{application_id}")

    async def get(self, feedback_id: str) -> dict[str, Any]:
        return await self._client.request("GET", f"/feedback/{feedback_id}")

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._client.request("POST", "/feedback", json=data)

    async def update(self, feedback_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self._client.request("PATCH", f"/feedback/{feedback_id}", json=data)

    async def delete(self, feedback_id: str) -> None:
        await self._client.request("DELETE", f"/feedback/{feedback_id}")
