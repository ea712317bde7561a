from typing import Protocol


class RateLimiter(Protocol):
    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        ...

    def retry_after(self, key: str, window_seconds: int) -> int:
        """Seconds until the next request for `key` would be admitted."""
        ...
