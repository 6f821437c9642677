"""Exceptions shared between the sync engine and its data sources."""

from .schema import MetricType, SourceSide

# Statuses that mean the stored credential is no longer accepted
REAUTH_STATUS_CODES = frozenset({400, 401, 403})


class SourceError(Exception):
    """Base exception for failures raised by a measurement source."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message
        self.source = source
        self.status_code = status_code
        super().__init__(message)

    @property
    def requires_reauthentication(self) -> bool:
        """True when the caller should clear credentials and log in again."""
        return self.status_code in REAUTH_STATUS_CODES

    @property
    def is_retryable(self) -> bool:
        """True for transient failures (network errors, throttling, 5xx)."""
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500

    def to_dict(self) -> dict:
        """Convert exception to error response format."""
        return {
            "error": {
                "code": self.__class__.__name__.replace("Error", "").lower(),
                "message": self.message,
                "source": self.source,
                "status_code": self.status_code,
            }
        }


class SyncError(Exception):
    """
    A sync run failed because one of its fetches failed.

    Identifies the side and metric of the failing fetch and keeps the
    underlying exception as `cause` (also chained as __cause__).
    """

    def __init__(self, side: SourceSide, metric: MetricType, cause: BaseException):
        self.side = side
        self.metric = metric
        self.cause = cause
        super().__init__(f"Failed to fetch {side.value} {metric.value}: {cause}")

    @property
    def status_code(self) -> int | None:
        return getattr(self.cause, "status_code", None)

    @property
    def requires_reauthentication(self) -> bool:
        return bool(getattr(self.cause, "requires_reauthentication", False))

    @property
    def is_retryable(self) -> bool:
        return bool(getattr(self.cause, "is_retryable", False))

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": "sync",
                "message": str(self),
                "side": self.side.value,
                "metric": self.metric.value,
                "cause": type(self.cause).__name__,
                "status_code": self.status_code,
                "requires_reauthentication": self.requires_reauthentication,
            }
        }
