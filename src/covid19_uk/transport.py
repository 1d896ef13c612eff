from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from concurrent.futures import Future
from dataclasses import dataclass, field

import requests

from covid19_uk.errors import NetworkError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: bytes
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class CancelToken:
    """
    Cancellation flag shared between a caller and an in-flight request.

    A token may carry a deadline (seconds from creation); once it passes the
    token counts as cancelled. Callbacks registered with ``on_cancel`` run on
    the thread that calls ``cancel``; the transport uses them to wake the
    waiting caller and to close the response its worker thread holds.
    """

    def __init__(self, deadline: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._deadline_at = time.monotonic() + deadline if deadline is not None else None

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline_at is not None and time.monotonic() >= self._deadline_at

    def remaining(self) -> float | None:
        if self._deadline_at is None:
            return None
        return max(0.0, self._deadline_at - time.monotonic())

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register callback; returns a function that unregisters it."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return unregister
        callback()
        return lambda: None

    def raise_if_cancelled(self, url: str | None = None) -> None:
        if self.cancelled:
            raise NetworkError("Request cancelled", url=url, cancelled=True)


class HttpTransport:
    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = {"Accept": "application/json", **(headers or {})}

    def get(self, url: str, cancel: CancelToken | None = None) -> TransportResponse:
        if cancel is None:
            return self._fetch(url, None)
        cancel.raise_if_cancelled(url)

        # The blocking request runs on a daemon thread so the caller can walk
        # away the moment the token fires; an abandoned worker only ends when
        # its socket times out or the server hangs up.
        future: Future[TransportResponse] = Future()
        wake = threading.Event()
        future.add_done_callback(lambda _: wake.set())
        unregister = cancel.on_cancel(wake.set)
        worker = threading.Thread(
            target=self._run, args=(future, url, cancel), name="covid19-uk-get", daemon=True
        )
        try:
            worker.start()
            wake.wait(cancel.remaining())
        finally:
            unregister()
        if cancel.cancelled:
            raise NetworkError("Request cancelled", url=url, cancelled=True)
        return future.result()

    def _run(self, future: Future, url: str, cancel: CancelToken) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(self._fetch(url, cancel))
        except BaseException as exc:
            future.set_exception(exc)

    def _fetch(self, url: str, cancel: CancelToken | None) -> TransportResponse:
        timeout = self._timeout_for(cancel)
        logger.debug("GET %s (timeout=%s)", url, timeout)
        try:
            resp = self.session.get(url, headers=self.headers, timeout=timeout, stream=True)
        except requests.Timeout as exc:
            raise self._failure(f"Request to {url} timed out", url, cancel) from exc
        except requests.RequestException as exc:
            raise self._failure(f"Request to {url} failed: {exc}", url, cancel) from exc

        unregister = cancel.on_cancel(resp.close) if cancel is not None else None
        try:
            chunks: list[bytes] = []
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if cancel is not None:
                    cancel.raise_if_cancelled(url)
                chunks.append(chunk)
            if cancel is not None:
                cancel.raise_if_cancelled(url)
        except (requests.RequestException, OSError) as exc:
            # urllib3 read errors arrive wrapped as RequestException or raw OSError.
            raise self._failure(f"Reading response from {url} failed: {exc}", url, cancel) from exc
        finally:
            if unregister is not None:
                unregister()
            resp.close()

        return TransportResponse(
            status_code=resp.status_code,
            body=b"".join(chunks),
            url=resp.url or url,
            headers=dict(resp.headers),
        )

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _timeout_for(self, cancel: CancelToken | None) -> float | None:
        remaining = cancel.remaining() if cancel is not None else None
        if remaining is None:
            return self.timeout
        # urllib3 rejects a zero timeout
        remaining = max(remaining, 0.001)
        if self.timeout is None:
            return remaining
        return min(self.timeout, remaining)

    @staticmethod
    def _failure(message: str, url: str, cancel: CancelToken | None) -> NetworkError:
        if cancel is not None and cancel.cancelled:
            return NetworkError("Request cancelled", url=url, cancelled=True)
        return NetworkError(message, url=url)
