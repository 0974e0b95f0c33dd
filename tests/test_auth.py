"""Tests for the interactive authentication flow."""

import io
from unittest.mock import MagicMock, patch

import pytest

from settings_sync.core.auth import (
    BrowserAuthenticator,
    StoredTokenOnly,
    parse_auth_title,
    wait_for_token,
)
from settings_sync.core.exceptions import (
    AuthDeniedError,
    AuthError,
    AuthWindowClosedError,
)


class TestParseAuthTitle:
    @pytest.mark.parametrize(
        "title, token",
        [
            ("Success=abc123", "abc123"),
            ("Success code=abc123", "abc123"),
            ("  Success=abc123  ", "abc123"),
        ],
    )
    def test_success(self, title, token):
        assert parse_auth_title(title) == token

    def test_denied(self):
        with pytest.raises(AuthDeniedError, match="access_denied") as exc:
            parse_auth_title("Denied error=access_denied")
        assert exc.value.reason == "access_denied"

    def test_undecided(self):
        assert parse_auth_title("Sign in - Settings Sync") is None


class TestWaitForToken:
    def test_skips_loading_and_undecided_titles(self):
        titles = [None, "Loading...", "Success=tok"]
        assert wait_for_token(titles) == "tok"

    def test_exhausted_means_window_closed(self):
        with pytest.raises(AuthWindowClosedError):
            wait_for_token([None, "Sign in"])

    def test_window_closed_is_an_auth_error(self):
        with pytest.raises(AuthError):
            wait_for_token([])


class TestBrowserAuthenticator:
    def test_reads_pasted_title(self):
        opened = MagicMock()
        lines = io.StringIO("Still loading\nSuccess=pasted\n")
        auth = BrowserAuthenticator(open_url=opened, read_line=lines.readline)

        with patch("sys.stderr", new_callable=io.StringIO) as err:
            token = auth.authenticate("https://sync.example.com/auth")

        assert token == "pasted"
        opened.assert_called_once_with("https://sync.example.com/auth")
        assert "https://sync.example.com/auth" in err.getvalue()

    def test_empty_line_closes_window(self):
        lines = io.StringIO("\nSuccess=late\n")
        auth = BrowserAuthenticator(
            open_url=MagicMock(), read_line=lines.readline
        )

        with patch("sys.stderr", new_callable=io.StringIO):
            with pytest.raises(AuthWindowClosedError):
                auth.authenticate("https://sync.example.com/auth")


def test_stored_token_only_never_prompts():
    with pytest.raises(AuthError, match="settings-sync sync"):
        StoredTokenOnly().authenticate("https://sync.example.com/auth")
