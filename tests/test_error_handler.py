# =============================================================================
# tests/test_error_handler.py - Error Translation Tests
# =============================================================================
# Unit tests for translate_exception() and unique_violation_fields(), plus
# end-to-end checks that unhandled errors still come back as envelopes.
# =============================================================================

import logging

import pytest
from sqlalchemy.exc import DataError, IntegrityError, NoResultFound, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.exceptions import (
    ConflictError,
    DatabaseTimeoutError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from app.middleware.error_handler import (
    translate_exception,
    unique_violation_fields,
    validation_details,
)


def _integrity(message: str) -> IntegrityError:
    return IntegrityError("INSERT INTO users ...", {}, Exception(message))


class TestUniqueViolationFields:
    """Tests for reading the offending column out of driver messages."""

    def test_sqlite_message(self):
        exc = _integrity("UNIQUE constraint failed: users.email")
        assert unique_violation_fields(exc) == ["email"]

    def test_sqlite_composite(self):
        exc = _integrity("UNIQUE constraint failed: applications.project_id, applications.student_id")
        assert unique_violation_fields(exc) == ["projectId", "studentId"]

    def test_postgres_detail(self):
        exc = _integrity(
            'duplicate key value violates unique constraint "users_email_key"\n'
            "DETAIL:  Key (email)=(ada@codionix.dev) already exists."
        )
        assert unique_violation_fields(exc) == ["email"]

    def test_foreign_key_violation_is_not_unique(self):
        exc = _integrity("FOREIGN KEY constraint failed")
        assert unique_violation_fields(exc) is None


class TestTranslateException:
    """Tests for translate_exception()."""

    @pytest.mark.parametrize(
        "exc, status_code, code",
        [
            (ValidationError("bad"), 400, "VALIDATION_ERROR"),
            (ForbiddenError(), 403, "FORBIDDEN"),
            (NotFoundError("Project not found"), 404, "NOT_FOUND"),
            (ConflictError(), 409, "CONFLICT"),
            (DatabaseTimeoutError(), 503, "DATABASE_TIMEOUT"),
        ],
    )
    def test_domain_exceptions_pass_through(self, exc, status_code, code):
        result = translate_exception(exc)

        assert result.status_code == status_code
        assert result.code == code
        assert result.message == exc.message

    def test_server_errors_log_at_error(self):
        assert translate_exception(DatabaseTimeoutError()).level == logging.ERROR
        assert translate_exception(NotFoundError()).level == logging.WARNING

    def test_unique_violation_is_conflict(self):
        result = translate_exception(_integrity("UNIQUE constraint failed: users.email"))

        assert result.status_code == 409
        assert result.code == "CONFLICT"
        assert result.message == "email already exists"

    def test_other_integrity_error_is_bad_request(self):
        result = translate_exception(_integrity("NOT NULL constraint failed: projects.title"))

        assert result.status_code == 400
        assert result.message == "Invalid data provided"

    def test_no_result_is_not_found(self):
        result = translate_exception(NoResultFound())
        assert (result.status_code, result.message) == (404, "Record not found")

    def test_pool_timeout_is_service_unavailable(self):
        result = translate_exception(PoolTimeoutError("QueuePool limit reached"))
        assert (result.status_code, result.code) == (503, "DATABASE_TIMEOUT")

    def test_data_error_is_bad_request(self):
        result = translate_exception(DataError("SELECT", {}, Exception("invalid input syntax")))
        assert (result.status_code, result.code) == (400, "VALIDATION_ERROR")

    def test_other_database_error_is_generic(self):
        """Driver details never reach the client."""
        result = translate_exception(OperationalError("SELECT", {}, Exception("server closed the connection")))

        assert result.status_code == 500
        assert result.code == "DATABASE_ERROR"
        assert "server closed" not in result.message

    def test_http_exception(self):
        result = translate_exception(StarletteHTTPException(status_code=405, detail="Method Not Allowed"))
        assert (result.status_code, result.code) == (405, "METHOD_NOT_ALLOWED")

    def test_unknown_exception_is_internal(self):
        result = translate_exception(RuntimeError("secret stack detail"))

        assert result.status_code == 500
        assert result.code == "INTERNAL_ERROR"
        assert result.message == "An unexpected error occurred"


class TestValidationDetails:
    def test_strips_location_prefix_and_value_error(self):
        errors = [
            {"loc": ("body", "password"), "msg": "Value error, Password must contain at least one number"},
            {"loc": ("query", "page"), "msg": "Input should be greater than or equal to 1"},
        ]

        assert validation_details(errors) == [
            {"field": "password", "message": "Password must contain at least one number"},
            {"field": "page", "message": "Input should be greater than or equal to 1"},
        ]


# =============================================================================
# Through the HTTP pipeline
# =============================================================================

class TestErrorEnvelopes:
    """Errors rendered by the app carry errorId and correlationId."""

    async def test_unknown_route(self, client):
        response = await client.get("/api/v1/nope", headers={"X-Correlation-ID": "cid-404"})

        body = response.json()
        assert response.status_code == 404
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"
        assert body["error"]["message"] == "Route GET /api/v1/nope not found"
        assert body["error"]["details"]["correlationId"] == "cid-404"
        assert body["error"]["details"]["errorId"]

    async def test_unhandled_exception_becomes_internal_error(self, app, client, caplog):
        """A bug in a handler is logged with its traceback and hidden from the client."""
        # Arrange
        @app.get("/boom")
        async def boom():
            raise RuntimeError("kaboom")

        # Act
        with caplog.at_level(logging.ERROR, logger="app.middleware.error_handler"):
            response = await client.get("/boom")

        # Assert
        body = response.json()
        assert response.status_code == 500
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert "kaboom" not in response.text
        assert any(r.exc_info for r in caplog.records)

    async def test_validation_error_lists_fields(self, client, api_prefix):
        response = await client.post(
            f"{api_prefix}/auth/register",
            json={"email": "not-an-email", "password": "weak", "fullName": "A"},
        )

        body = response.json()
        assert response.status_code == 400
        assert body["error"]["code"] == "VALIDATION_ERROR"
        fields = {e["field"] for e in body["error"]["details"]["errors"]}
        assert {"email", "password"} <= fields
