"""Custom exception classes for the rate comparison pipeline.

Every error carries an explicit :class:`ErrorKind`. The retry controller
only retries ``TRANSIENT`` errors; anything else (including exceptions that
do not derive from :class:`RateCompareError`) is treated as permanent.
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    """Whether a failure is worth retrying."""

    PERMANENT = "permanent"
    TRANSIENT = "transient"


class RateCompareError(Exception):
    """Base exception for all rate comparison errors."""

    code: str = "RATE_COMPARE_ERROR"
    kind: ErrorKind = ErrorKind.PERMANENT

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        self.attempts = 1
        super().__init__(self.message)

    @property
    def is_transient(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging and API error payloads."""
        return {
            "code": self.code,
            "kind": self.kind.value,
            "message": self.message,
            "attempts": self.attempts,
            "context": self.context,
        }


class ConfigurationError(RateCompareError):
    """Raised when channel or property configuration is unusable."""

    code = "CONFIGURATION_ERROR"


class InvalidRequestError(RateCompareError):
    """Raised for bad caller input (unknown property, bad date range...)."""

    code = "INVALID_REQUEST"


class PropertyNotFound(InvalidRequestError):
    """Raised when a comparison names a property that is not configured."""

    code = "PROPERTY_NOT_FOUND"

    def __init__(self, property_id: str):
        super().__init__(
            f"Unknown property: {property_id}",
            context={"property_id": property_id},
        )


class InvalidListingURL(RateCompareError):
    """Raised when a listing URL does not match the channel's URL shape."""

    code = "INVALID_LISTING_URL"

    def __init__(self, channel: str, url: str):
        super().__init__(
            f"Invalid {channel} listing URL: {url}",
            context={"channel": channel, "url": url},
        )


class RobotsDisallowed(RateCompareError):
    """Raised when a site's robots rules disallow the target path."""

    code = "ROBOTS_DISALLOWED"

    def __init__(self, url: str):
        super().__init__(
            f"robots.txt disallows fetching {url}",
            context={"url": url},
        )


class ValidationError(RateCompareError):
    """Raised when a candidate quote does not satisfy the quote schema."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, context={"field": field} if field else None)
        self.field = field


class ChannelNotConfigured(RateCompareError):
    """Raised when a property has no listing for a requested channel."""

    code = "CHANNEL_NOT_CONFIGURED"

    def __init__(self, channel: str, property_id: str):
        super().__init__(
            f"Property '{property_id}' has no {channel} listing configured",
            context={"channel": channel, "property_id": property_id},
        )


class UpstreamRejectedError(RateCompareError):
    """Raised when a channel answers with a non-retryable HTTP status."""

    code = "UPSTREAM_REJECTED"

    def __init__(self, url: str, status_code: int):
        super().__init__(
            f"HTTP {status_code} from {url}",
            context={"url": url, "status_code": status_code},
        )
        self.status_code = status_code


class NoPricingDataFound(RateCompareError):
    """Raised when no pricing label could be matched in a response.

    Transient because a render-timing race is a plausible cause; the retry
    controller retries it once.
    """

    code = "NO_PRICING_DATA"
    kind = ErrorKind.TRANSIENT


class NetworkTransientError(RateCompareError):
    """Raised on connection failures and retryable HTTP statuses."""

    code = "NETWORK_ERROR"
    kind = ErrorKind.TRANSIENT


class FetchTimeout(RateCompareError):
    """Raised when an in-flight fetch exceeds its timeout."""

    code = "FETCH_TIMEOUT"
    kind = ErrorKind.TRANSIENT

    def __init__(self, url: str, timeout: float):
        super().__init__(
            f"Fetching {url} timed out after {timeout:g}s",
            context={"url": url, "timeout": timeout},
        )


class RateFetchingError(RateCompareError):
    """Channel-tagged wrapper around any adapter failure."""

    code = "RATE_FETCHING_ERROR"

    def __init__(
        self,
        channel: str,
        property_id: str,
        check_in: date,
        check_out: date,
        cause: BaseException,
    ):
        self.channel = channel
        self.property_id = property_id
        self.check_in = check_in
        self.check_out = check_out
        self.cause = cause
        super().__init__(
            f"{channel} rate fetch failed: {cause}",
            context={
                "channel": channel,
                "property_id": property_id,
                "check_in": check_in.isoformat(),
                "check_out": check_out.isoformat(),
                "cause": type(cause).__name__,
            },
        )
        self.attempts = getattr(cause, "attempts", 1)
        # Mirror the cause so callers can still tell permanent from transient.
        self.kind = getattr(cause, "kind", ErrorKind.PERMANENT)

    @property
    def cause_code(self) -> str:
        return getattr(self.cause, "code", type(self.cause).__name__)


class AllChannelsFailedError(RateCompareError):
    """Raised when every requested channel failed for one comparison."""

    code = "ALL_CHANNELS_FAILED"

    def __init__(self, property_id: str, failures: List[RateFetchingError]):
        self.property_id = property_id
        self.failures = failures
        causes = "; ".join(f"{f.channel}: {f.cause}" for f in failures)
        super().__init__(
            f"All channels failed for property '{property_id}': {causes}",
            context={
                "property_id": property_id,
                "failures": {f.channel: f.cause_code for f in failures},
            },
        )
