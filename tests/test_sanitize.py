# =============================================================================
# tests/test_sanitize.py - Log Redaction Tests
# =============================================================================

from lib.sanitize import REDACTED, is_sensitive, sanitize, sanitize_headers


class TestSanitize:
    """Tests for sanitize()."""

    def test_redacts_top_level_fields(self):
        # Arrange
        body = {"email": "ada@codionix.dev", "password": "Str0ng!pass"}

        # Act
        result = sanitize(body)

        # Assert
        assert result == {"email": "ada@codionix.dev", "password": REDACTED}

    def test_matching_ignores_case_and_separators(self):
        assert is_sensitive("refreshToken")
        assert is_sensitive("refresh_token")
        assert is_sensitive("api-key")
        assert is_sensitive("Authorization")
        assert not is_sensitive("email")
        assert not is_sensitive(42)

    def test_recurses_into_nested_structures(self):
        body = {
            "user": {"email": "a@codionix.dev", "passwordHash": "$2b$..."},
            "cards": [{"creditCard": "4111", "cvv": "123", "label": "work"}],
        }

        result = sanitize(body)

        assert result["user"]["passwordHash"] == REDACTED
        assert result["cards"][0] == {"creditCard": REDACTED, "cvv": REDACTED, "label": "work"}

    def test_does_not_mutate_input(self):
        body = {"token": "abc", "nested": {"secret": "s"}}

        sanitize(body)

        assert body == {"token": "abc", "nested": {"secret": "s"}}

    def test_scalars_pass_through(self):
        assert sanitize("plain") == "plain"
        assert sanitize(None) is None
        assert sanitize(3) == 3


class TestSanitizeHeaders:
    """Tests for sanitize_headers()."""

    def test_redacts_credentials(self):
        headers = {"Authorization": "Bearer eyJ...", "Cookie": "sid=1", "Accept": "application/json"}

        result = sanitize_headers(headers)

        assert result == {"Authorization": REDACTED, "Cookie": REDACTED, "Accept": "application/json"}

    def test_empty(self):
        assert sanitize_headers(None) == {}
        assert sanitize_headers({}) == {}
