from __future__ import annotations


class ApiError(Exception):
    """Base class for every failure raised by the client."""


class InvalidQuery(ApiError, ValueError):
    """The query was rejected locally; no request was sent."""


class NetworkError(ApiError):
    def __init__(self, message: str, *, url: str | None = None, cancelled: bool = False) -> None:
        super().__init__(message)
        self.url = url
        self.cancelled = cancelled


class HttpStatusError(ApiError):
    def __init__(self, status_code: int, body: str, *, url: str | None = None) -> None:
        super().__init__(f"API returned HTTP {status_code} for {url or 'request'}")
        self.status_code = status_code
        self.body = body
        self.url = url


class TooManyRequestsError(HttpStatusError):
    def __init__(
        self, body: str, *, url: str | None = None, retry_after: float | None = None
    ) -> None:
        super().__init__(429, body, url=url)
        self.retry_after = retry_after


class DecodeError(ApiError):
    """Payload did not match the documented response schema."""

    def __init__(self, detail: str, *, path: str | None = None) -> None:
        super().__init__(f"{path}: {detail}" if path else detail)
        self.detail = detail
        self.path = path
