from __future__ import annotations

import json
import os
import re
import threading
import time

import httpx

from notebot import AcquireCancelled, Note, RateLimiter

DEFAULT_HTTP_TIMEOUT = 30.0
NOTES_CREATE_PATH = "/api/notes/create"
CANCEL_POLL_SECONDS = 0.05

_HOST_RE = re.compile(r"^(?P<name>(?![.\-])[\w.\-]+|\[[0-9A-Fa-f:.]+\])(?::(?P<port>\d{1,5}))?$")


class NoteSubmitError(RuntimeError):
    pass


class RateLimitedError(NoteSubmitError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"rate limiter error: {reason}")


class SerializationError(NoteSubmitError):
    pass


class RequestBuildError(NoteSubmitError):
    pass


class TransportError(NoteSubmitError):
    pass


class APIError(NoteSubmitError):
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Misskey API returned non-OK status: {status_code}")


class RequestCancelled(RuntimeError):
    pass


class _InFlightSend:
    """Runs one ``send`` on a helper thread so the caller can walk away from it.

    A response that arrives after the caller gave up is closed by the helper.
    """

    def __init__(self, client: httpx.Client, request: httpx.Request) -> None:
        self._client = client
        self._request = request
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._abandoned = False
        self._response: httpx.Response | None = None
        self._error: BaseException | None = None

    def _run(self) -> None:
        try:
            response = self._client.send(self._request, stream=True)
        except BaseException as exc:  # noqa: BLE001
            with self._lock:
                self._error = exc
        else:
            with self._lock:
                if self._abandoned:
                    response.close()
                else:
                    self._response = response
        finally:
            self._done.set()

    def wait(self, cancel_event: threading.Event) -> httpx.Response:
        threading.Thread(target=self._run, name="note-submit", daemon=True).start()
        while not self._done.is_set():
            if cancel_event.wait(CANCEL_POLL_SECONDS):
                with self._lock:
                    if not self._done.is_set():
                        self._abandoned = True
                        raise RequestCancelled("request cancelled while in flight")
                break
        self._done.wait()
        if self._error is not None:
            raise self._error
        assert self._response is not None
        return self._response


def _env_int(name: str) -> int:
    try:
        return max(0, int(os.getenv(name, "0")))
    except ValueError:
        return 0


def _env_float(name: str) -> float:
    try:
        return max(0.0, float(os.getenv(name, "0")))
    except ValueError:
        return 0.0


class NoteSubmitter:
    """Posts notes to ``https://<host>/api/notes/create`` behind a token bucket.

    Zero values for ``max_requests`` and ``refill_interval`` select the
    defaults of :class:`notebot.RateLimiter` (3 requests per 10 seconds).
    Every failure is raised as a :class:`NoteSubmitError` subclass chained to
    its cause; nothing is retried here.
    """

    def __init__(
        self,
        *,
        host: str,
        auth_token: str,
        max_requests: int = 0,
        refill_interval: float = 0,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        rate_limiter: RateLimiter | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not host or not host.strip():
            raise ValueError("host is required")
        if not auth_token:
            raise ValueError("auth_token is required")
        self.host = host.strip().rstrip("/")
        self._auth_token = auth_token
        self.timeout = float(timeout or DEFAULT_HTTP_TIMEOUT)
        self.rate_limiter = rate_limiter or RateLimiter(max_requests, refill_interval)
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.Client(timeout=self.timeout)

    @classmethod
    def from_env(cls) -> "NoteSubmitter":
        host = os.getenv("MISSKEY_HOST", "").strip()
        if not host:
            raise NoteSubmitError("MISSKEY_HOST is required when USE_REAL_MISSKEY=1")
        token = os.getenv("MISSKEY_AUTH_TOKEN", "").strip()
        if not token:
            raise NoteSubmitError("MISSKEY_AUTH_TOKEN is required when USE_REAL_MISSKEY=1")
        return cls(
            host=host,
            auth_token=token,
            max_requests=_env_int("MISSKEY_MAX_REQUESTS"),
            refill_interval=_env_float("MISSKEY_REFILL_SECONDS"),
        )

    @property
    def endpoint(self) -> str:
        return f"https://{self.host}{NOTES_CREATE_PATH}"

    def close(self) -> None:
        if self._owns_client:
            self._http_client.close()

    def _endpoint_url(self) -> httpx.URL:
        match = _HOST_RE.match(self.host)
        if match is None:
            raise RequestBuildError(f"failed to create HTTP request: invalid host {self.host!r}")
        port = match.group("port")
        if port is not None and not 0 < int(port) <= 65535:
            raise RequestBuildError(f"failed to create HTTP request: invalid port {port}")
        try:
            return httpx.URL(self.endpoint)
        except httpx.InvalidURL as exc:
            raise RequestBuildError(f"failed to create HTTP request: {exc}") from exc

    def _send(self, request: httpx.Request, cancel_event: threading.Event | None) -> httpx.Response:
        if cancel_event is None:
            return self._http_client.send(request, stream=True)
        try:
            return _InFlightSend(self._http_client, request).wait(cancel_event)
        except RequestCancelled as exc:
            raise TransportError(f"failed to send request to Misskey API: {exc}") from exc

    def _payload(self, note: Note) -> bytes:
        body = {
            "i": self._auth_token,
            "text": note.text,
            "visibility": note.visibility.value,
        }
        try:
            return json.dumps(body, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"failed to serialize note: {exc}") from exc

    def _request_timeout(self, deadline: float | None, cancel_event: threading.Event | None) -> float:
        if cancel_event is not None and cancel_event.is_set():
            raise TransportError("request cancelled before it was sent")
        if deadline is None:
            return self.timeout
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TransportError("deadline exceeded before the request was sent")
        return min(self.timeout, remaining)

    def post(
        self,
        note: Note,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> None:
        """Submit one note.

        Args:
            note: Text and visibility to publish.
            cancel_event: Aborts the rate-limit wait, or the HTTP call before or
                while it is in flight.
            timeout: Overall budget in seconds for the wait plus the HTTP call.

        Raises:
            RateLimitedError: The token wait was cancelled or ran out of time.
            SerializationError: The payload could not be encoded.
            RequestBuildError: The host does not form a valid URL.
            TransportError: The request failed at the network level or was
                cancelled.
            APIError: The API answered with anything but 200.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None

        try:
            self.rate_limiter.acquire(cancel_event, timeout)
        except AcquireCancelled as exc:
            raise RateLimitedError(exc.reason) from exc

        payload = self._payload(note)
        url = self._endpoint_url()
        request_timeout = self._request_timeout(deadline, cancel_event)

        try:
            request = self._http_client.build_request(
                "POST",
                url,
                headers={"Content-Type": "application/json"},
                content=payload,
                timeout=request_timeout,
            )
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            raise RequestBuildError(f"failed to create HTTP request: {exc}") from exc

        try:
            response = self._send(request, cancel_event)
        except httpx.HTTPError as exc:
            raise TransportError(
                f"failed to send request to Misskey API: network_error={exc.__class__.__name__}"
            ) from exc

        try:
            if response.status_code != httpx.codes.OK:
                raise APIError(response.status_code)
        finally:
            response.close()
