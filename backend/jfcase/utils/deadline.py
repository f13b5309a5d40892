import time

from jfcase.errors import AppError, ErrorCode


class Deadline:
    """Monotonic point in time after which a request-scoped operation must give up."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self, operation: str = "operation"):
        if self.expired:
            raise AppError(ErrorCode.REQUEST_TIMEOUT, f"{operation} exceeded the {self.seconds}s deadline")

    def bound(self, timeout: float) -> float:
        """The smaller of ``timeout`` and the remaining time, raising if nothing is left."""
        self.check()
        return min(timeout, self.remaining())
