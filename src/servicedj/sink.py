"""
Remote playlist sink: push a generated block to a streaming service.

Calls are fallible, retryable and rate-limited:
- 429: retried with exponential backoff, honoring Retry-After
- 5xx / connection errors: retried with exponential backoff
- 401: the access token is refreshed once and the call retried
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

logger = logging.getLogger(__name__)


class SinkError(Exception):
    """Non-retryable sink failure."""
    pass


class SinkAuthError(SinkError):
    """Access token rejected (HTTP 401)."""
    pass


class RetryableSinkError(SinkError):
    pass


class RateLimitError(RetryableSinkError):
    """Raised when rate limit is exceeded (429 status code)."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class SinkServerError(RetryableSinkError):
    """Raised when the service returns a 5xx error."""
    pass


class SinkConnectionError(RetryableSinkError):
    """Raised when the connection fails or times out."""
    pass


def _retry_after_seconds(response: requests.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class RemotePlaylistSink:
    """Creates private playlists on a Web API shaped like Spotify's."""

    def __init__(
        self,
        access_token: str,
        refresh_token: Optional[Callable[[], Optional[str]]] = None,
        base_url: str = "https://api.spotify.com/v1",
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        batch_size: int = 100,
        timeout_seconds: float = 15.0,
        uri_prefix: str = "spotify:",
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            access_token: Bearer token for the service
            refresh_token: Callback returning a fresh access token (or None
                when refreshing is impossible); used once per request on 401
            base_url: API root
            max_retries: Retries after the first attempt for retryable errors
            backoff_seconds: First backoff delay; doubles per retry
            max_backoff_seconds: Cap for any single delay
            batch_size: URIs per add-tracks call (service limit is 100)
            timeout_seconds: Per-request timeout
            uri_prefix: URIs without this prefix are not pushed
            session: requests.Session to use
            sleep: Sleep function (tests pass a no-op)
        """
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.batch_size = batch_size
        self.timeout_seconds = timeout_seconds
        self.uri_prefix = uri_prefix
        self.session = session or requests.Session()
        self.sleep = sleep

    @classmethod
    def from_config(
        cls,
        config,
        access_token: str,
        refresh_token: Optional[Callable[[], Optional[str]]] = None,
        **kwargs,
    ) -> "RemotePlaylistSink":
        sink = config["sink"]
        return cls(
            access_token,
            refresh_token=refresh_token,
            base_url=sink.get("base_url", "https://api.spotify.com/v1"),
            max_retries=sink.get("max_retries", 3),
            backoff_seconds=sink.get("backoff_seconds", 1.0),
            max_backoff_seconds=sink.get("max_backoff_seconds", 30.0),
            batch_size=sink.get("batch_size", 100),
            timeout_seconds=sink.get("timeout_seconds", 15.0),
            uri_prefix=config.get("export", "uri_prefix", "spotify:"),
            **kwargs,
        )

    def _wait(self, retry_state) -> float:
        """Backoff delay: Retry-After when given, else exponential."""
        error = retry_state.outcome.exception()
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return min(error.retry_after, self.max_backoff_seconds)
        delay = self.backoff_seconds * (2 ** (retry_state.attempt_number - 1))
        return min(delay, self.max_backoff_seconds)

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        """One HTTP call, with status codes mapped to sink errors."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            response = self.session.request(
                method, url, headers=headers, timeout=self.timeout_seconds, **kwargs
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise SinkConnectionError(f"{method} {path}: {e}") from e

        status = response.status_code
        if status == 429:
            retry_after = _retry_after_seconds(response)
            raise RateLimitError(f"{method} {path} rate limited", retry_after=retry_after)
        if status == 401:
            raise SinkAuthError(f"{method} {path}: access token rejected")
        if status >= 500:
            raise SinkServerError(f"{method} {path} failed: {status}")
        if not response.ok:
            raise SinkError(f"{method} {path} failed: {status} {response.text[:200]}")
        return response

    def _send_with_backoff(self, method: str, path: str, **kwargs) -> requests.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception_type(RetryableSinkError),
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(self._send, method, path, **kwargs)

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Call the API with backoff and a single reauthentication on 401.

        Raises:
            SinkAuthError: If the token is rejected after one refresh
            SinkError: On non-retryable failures or exhausted retries
        """
        try:
            return self._send_with_backoff(method, path, **kwargs)
        except SinkAuthError:
            if self.refresh_token is None:
                raise
            logger.warning("Access token rejected; refreshing once")
            new_token = self.refresh_token()
            if not new_token:
                raise SinkAuthError("Authentication failed. Please re-authenticate.")
            self.access_token = new_token
            return self._send_with_backoff(method, path, **kwargs)

    def filter_uris(self, uris: Sequence[Optional[str]]) -> List[str]:
        return [u for u in uris if u and u.startswith(self.uri_prefix)]

    def push_playlist(self, name: str, description: str, uris: Sequence[Optional[str]]) -> Dict[str, Any]:
        """
        Create a private playlist and add tracks in order.

        Args:
            name: Playlist name
            description: Playlist description
            uris: Track URIs in playback order

        Returns:
            {"playlist_id", "url", "tracks_added"}

        Raises:
            SinkError: If no URI is pushable or a call ultimately fails
        """
        valid_uris = self.filter_uris(uris)
        if not valid_uris:
            raise SinkError(f"No {self.uri_prefix} URIs found in playlist tracks")
        if len(valid_uris) < len(uris):
            logger.warning(f"Dropping {len(uris) - len(valid_uris)} tracks without {self.uri_prefix} URI")

        user = self.request("GET", "me").json()
        playlist = self.request(
            "POST",
            f"users/{user['id']}/playlists",
            json={
                "name": name,
                "description": description,
                "public": False,
                "collaborative": False,
            },
        ).json()
        playlist_id = playlist["id"]

        tracks_added = 0
        for start in range(0, len(valid_uris), self.batch_size):
            batch = valid_uris[start:start + self.batch_size]
            self.request("POST", f"playlists/{playlist_id}/tracks", json={"uris": batch})
            tracks_added += len(batch)
            logger.debug(f"Added {tracks_added}/{len(valid_uris)} tracks to {playlist_id}")

        external_urls = playlist.get("external_urls") or {}
        url = next(iter(external_urls.values()), None)
        logger.info(f"✅ Pushed playlist {name!r}: {tracks_added} tracks ({url})")
        return {"playlist_id": playlist_id, "url": url, "tracks_added": tracks_added}
