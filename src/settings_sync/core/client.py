import json
import logging
import threading
import time
from typing import Any, Callable, Mapping

import requests

from ..config import Config
from ..sync.models import (
    RemoteSettingsInfo,
    RemoteSnapshot,
    SaveResult,
    SettingsFile,
)
from ..sync.state import SyncStateStore
from .auth import Authenticator
from .exceptions import GatewayError, InvalidTokenError
from .retry import RetryConfig, call_with_retry

logger = logging.getLogger(__name__)

INVALID_TOKEN = "Invalid token"
MAX_TOKEN_RENEWALS = 3

_INFO_KEY = "settings-info"
_SNAPSHOT_KEY = "settings"


class SettingsApiClient:
    """Blocking client for the settings server.

    Fetches and saves settings snapshots, with token authentication, a short
    response cache and fixed-delay retries.  Methods block; async callers go
    through ``run_sync()``.

    Args:
        config: Runtime configuration (URL, retry and cache settings).
        state: Sync state store holding the cached token.
        authenticator: Interactive flow used when no token is stored.
        clock: Monotonic clock used for cache expiry.
    """

    def __init__(
        self,
        config: Config,
        state: SyncStateStore,
        authenticator: Authenticator,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.api_url = config.api_url.rstrip("/")
        self._state = state
        self._authenticator = authenticator
        self._clock = clock
        self._retry = RetryConfig(
            retries=config.fetch_retries, delay=config.retry_delay
        )
        self._thread_local = threading.local()
        self._cache: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._token_renewals = 0

    @property
    def session(self) -> requests.Session:
        """Current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = requests.Session()
        return self._thread_local.session

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch_info(self) -> RemoteSettingsInfo:
        """
        Fetch the ``{checksum, lastUpdate}`` summary of the server state.
        """
        cached = self._cache_get(_INFO_KEY)
        if cached is not None:
            return cached

        result = self._authorized(
            lambda token: self._request(
                "GET",
                "/package-sync/lastUpdate",
                params={"token": token},
            )
        )
        info = RemoteSettingsInfo.model_validate(result)
        self._cache_put(_INFO_KEY, info)
        return info

    def fetch_snapshot(self) -> RemoteSnapshot:
        """
        Fetch the full settings snapshot stored on the server.
        """
        cached = self._cache_get(_SNAPSHOT_KEY)
        if cached is not None:
            return cached

        result = self._authorized(
            lambda token: self._request(
                "GET",
                "/package-sync/settings",
                params={"token": token},
            )
        )
        snapshot = RemoteSnapshot.model_validate(result)
        self._cache_put(_SNAPSHOT_KEY, snapshot)
        return snapshot

    def save_snapshot(
        self, files: Mapping[str, SettingsFile]
    ) -> SaveResult:
        """
        Upload the local snapshot.  A successful save drops cached responses,
        since they no longer describe the server.
        """
        serialized = json.dumps(
            {
                "files": {
                    name: f.model_dump() for name, f in files.items()
                }
            }
        )
        result = self._authorized(
            lambda token: self._request(
                "POST",
                "/package-sync/settings",
                data={"token": token, "settings": serialized},
            )
        )
        save_result = SaveResult.model_validate(result)
        if save_result.success:
            self.invalidate_cache()
        return save_result

    def invalidate_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _authorized(
        self, send: Callable[[str], dict[str, Any]]
    ) -> dict[str, Any]:
        """
        Call ``send(token)``; on an ``Invalid token`` answer forget the token
        and authenticate again, at most ``MAX_TOKEN_RENEWALS`` times over the
        client's lifetime.
        """
        while True:
            result = send(self._get_token())
            error = result.get("error")
            if not error:
                return result

            if error == INVALID_TOKEN:
                if self._token_renewals < MAX_TOKEN_RENEWALS:
                    self._token_renewals += 1
                    logger.info(
                        "Token rejected, re-authenticating (%d/%d)",
                        self._token_renewals,
                        MAX_TOKEN_RENEWALS,
                    )
                    self._state.clear_token()
                    continue
                raise InvalidTokenError(error)

            raise GatewayError(str(error))

    def _get_token(self) -> str:
        """
        Get the token from state, or run the authentication flow.
        """
        token = self._state.get_token()
        if token:
            return token

        provider_token = self._authenticator.authenticate(
            f"{self.api_url}/authentication/app"
        )
        return self._exchange_token(provider_token)

    def _exchange_token(self, provider_token: str) -> str:
        """
        Trade a provider token for a settings server token and persist it.
        """
        result = self._request(
            "POST",
            "/authentication",
            data={
                "token": provider_token,
                "tokenType": 2,
                "returnToken": "true",
            },
        )
        token = result.get("token")
        if not token:
            raise GatewayError(
                f"Authentication failed: {result.get('error') or result}"
            )
        self._state.set_token(token)
        logger.info("Obtained settings server token")
        return token

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _request(
        self, method: str, path: str, **kwargs: Any
    ) -> dict[str, Any]:
        """
        Send one request (with retries on network errors) and decode the
        JSON body.
        """
        url = f"{self.api_url}{path}"

        def _send() -> requests.Response:
            return self._get_session().request(
                method, url, timeout=(10, 60), **kwargs
            )

        try:
            response = call_with_retry(_send, self._retry)
        except requests.RequestException as exc:
            raise GatewayError(f"{method} {path} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            raise GatewayError(
                f"{method} {path} returned a non-JSON response "
                f"(HTTP {response.status_code})",
                status_code=response.status_code,
            ) from None

        if not isinstance(body, dict):
            raise GatewayError(
                f"{method} {path} returned unexpected JSON: {body!r}",
                status_code=response.status_code,
            )
        return body

    def _cache_get(self, key: str) -> Any:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._cache[key]
                return None
            return value

    def _cache_put(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = (
                self._clock() + self.config.cache_ttl,
                value,
            )
