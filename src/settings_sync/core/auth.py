"""Interactive authentication against the settings server.

The server's login page reports its outcome through the page title:
``Success=<token>`` once the user authorised the app, ``Denied=<reason>``
otherwise.  Any other title means the user has not decided yet.
"""

from __future__ import annotations

import logging
import re
import sys
import webbrowser
from typing import Callable, Iterable, Iterator, Protocol

from .exceptions import AuthDeniedError, AuthError, AuthWindowClosedError

logger = logging.getLogger(__name__)

_TITLE_SEPARATOR = re.compile(r"[ =]")


class Authenticator(Protocol):
    """Obtains a provider token for the given login page URL."""

    def authenticate(self, login_url: str) -> str: ...


def _title_value(title: str) -> str:
    # "Success code=abc" -> "abc"; a bare "Success=abc" has only two parts
    parts = _TITLE_SEPARATOR.split(title)
    if len(parts) > 2:
        return parts[2]
    return parts[-1]


def parse_auth_title(title: str) -> str | None:
    """Decode an authentication page title.

    Returns:
        The token for a ``Success`` title, ``None`` while undecided.

    Raises:
        AuthDeniedError: For a ``Denied`` title.
    """
    title = title.strip()
    if title.startswith("Denied"):
        raise AuthDeniedError(_title_value(title))
    if title.startswith("Success"):
        return _title_value(title)
    return None


def wait_for_token(titles: Iterable[str | None]) -> str:
    """Consume page titles until one carries a decision.

    ``None`` entries (page still loading) are skipped.  Running out of
    titles means the window was closed.

    Raises:
        AuthWindowClosedError: If the titles end without a decision.
        AuthDeniedError: If access was denied.
    """
    for title in titles:
        if title is None:
            continue
        token = parse_auth_title(title)
        if token:
            return token
    raise AuthWindowClosedError("User closed the connection window")


class BrowserAuthenticator:
    """Open the login page in a browser and read back its final title.

    The user pastes the page title (``Success=...``) into the terminal.  An
    empty line or end of input counts as closing the window.

    Args:
        open_url: Function opening a URL (defaults to ``webbrowser.open``).
        read_line: Function returning one line of user input, or ``""`` at
            end of input (defaults to ``sys.stdin.readline``).
    """

    def __init__(
        self,
        open_url: Callable[[str], object] | None = None,
        read_line: Callable[[], str] | None = None,
    ) -> None:
        self._open_url = open_url or webbrowser.open
        self._read_line = read_line or sys.stdin.readline

    def _titles(self) -> Iterator[str | None]:
        while True:
            line = self._read_line()
            if not line or not line.strip():
                return
            yield line.strip()

    def authenticate(self, login_url: str) -> str:
        logger.info("Opening authentication page %s", login_url)
        print(
            f"Authorize settings sync at {login_url}\n"
            "then paste the final page title here:",
            file=sys.stderr,
            flush=True,
        )
        self._open_url(login_url)
        return wait_for_token(self._titles())


class StoredTokenOnly:
    """Authenticator for non-interactive runs (the MCP server).

    Never prompts; a missing token has to be obtained through the CLI first.
    """

    def authenticate(self, login_url: str) -> str:
        raise AuthError(
            "No settings server token stored; run `settings-sync sync` "
            "in a terminal to sign in"
        )
