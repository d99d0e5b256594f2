"""
Gateway-specific exceptions and failure classification
"""
from enum import Enum
from typing import Optional

import httpx

from core.exceptions import ApisixSDKError


class ErrorKind(str, Enum):
    """Best-effort classification of a failed request"""

    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    UNCLASSIFIED = "unclassified"


SUGGESTIONS = {
    ErrorKind.CONNECTION_REFUSED: "Check that APISIX is running and the base URL and port are correct",
    ErrorKind.TIMEOUT: "The server did not answer in time; increase the timeout or check network latency",
    ErrorKind.UNAUTHORIZED: "Check the Admin API key (X-API-KEY) and the allowed admin IP list",
    ErrorKind.NOT_FOUND: "The resource or endpoint does not exist; verify the id and the APISIX version",
    ErrorKind.VALIDATION: "The request body was rejected; check it against the resource schema",
    ErrorKind.RATE_LIMITED: "Too many requests; slow down or retry later",
    ErrorKind.UNCLASSIFIED: "Inspect the APISIX error log for more details",
}

STATUS_KINDS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.UNAUTHORIZED,
    404: ErrorKind.NOT_FOUND,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMITED,
}

# Checked in order, first match wins
MESSAGE_KINDS = (
    (ErrorKind.CONNECTION_REFUSED, ("econnrefused", "connection refused", "connect call failed", "all connection attempts failed")),
    (ErrorKind.TIMEOUT, ("timed out", "timeout")),
    (ErrorKind.UNAUTHORIZED, ("401", "unauthorized", "403", "forbidden")),
    (ErrorKind.NOT_FOUND, ("404", "not found")),
    (ErrorKind.RATE_LIMITED, ("429", "too many requests", "rate limit")),
    (ErrorKind.VALIDATION, ("400", "422", "invalid", "validation")),
)


def status_code_of(error: BaseException) -> Optional[int]:
    """HTTP status carried by an error, if the transport exposed one"""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def classify_failure(error: BaseException) -> ErrorKind:
    """Classify a raw transport failure into an ErrorKind"""
    if isinstance(error, httpx.ConnectError):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(error, httpx.TimeoutException):
        return ErrorKind.TIMEOUT

    status = status_code_of(error)
    if status is not None:
        # httpx error text embeds the request URL, so only the status is trusted here
        return STATUS_KINDS.get(status, ErrorKind.UNCLASSIFIED)

    text = str(error).lower()
    for kind, needles in MESSAGE_KINDS:
        if any(needle in text for needle in needles):
            return kind
    return ErrorKind.UNCLASSIFIED


class GatewayError(ApisixSDKError):
    """Base exception for requests to the gateway"""

    pass


class ApisixAPIError(GatewayError):
    """The server answered with a structured {"error_msg": ...} body"""

    def __init__(self, method: str, endpoint: str, error_msg: str, status_code: Optional[int] = None):
        self.method = method
        self.endpoint = endpoint
        self.error_msg = error_msg
        super().__init__(
            message=f"{method} {endpoint}: APISIX API Error: {error_msg}",
            error_code="APISIX_API_ERROR",
            details={"method": method, "endpoint": endpoint, "error_msg": error_msg},
            status_code=status_code or 500,
        )


class RequestFailedError(GatewayError):
    """Transport failure or an error response without a structured body"""

    def __init__(
        self,
        method: str,
        endpoint: str,
        url: str,
        reason: str,
        kind: ErrorKind = ErrorKind.UNCLASSIFIED,
        status_code: Optional[int] = None,
    ):
        self.method = method
        self.endpoint = endpoint
        self.url = url
        self.reason = reason
        self.kind = kind
        self.suggestion = SUGGESTIONS[kind]
        super().__init__(
            message=f"{method} {endpoint} failed ({url}): {reason}. Suggestion: {self.suggestion}",
            error_code=f"REQUEST_FAILED_{kind.name}",
            details={
                "method": method,
                "endpoint": endpoint,
                "url": url,
                "kind": kind.value,
                "api_status_code": status_code,
            },
            status_code=status_code or 502,
        )


class RequestCancelledError(GatewayError):
    """The caller's cancellation token fired while the request was in flight"""

    def __init__(self, method: str, endpoint: str):
        self.method = method
        self.endpoint = endpoint
        super().__init__(
            message=f"{method} {endpoint} was cancelled",
            error_code="REQUEST_CANCELLED",
            details={"method": method, "endpoint": endpoint},
            status_code=499,
        )


class FeatureNotSupportedError(GatewayError):
    """The connected APISIX version lacks a feature"""

    def __init__(self, feature: str, version: str):
        self.feature = feature
        self.version = version
        super().__init__(
            message=f"{feature} is not supported by APISIX {version}",
            error_code="FEATURE_NOT_SUPPORTED",
            details={"feature": feature, "version": version},
            status_code=501,
        )


def is_not_found(error: BaseException) -> bool:
    """Whether a domain error means the resource does not exist"""
    if isinstance(error, RequestFailedError):
        return error.kind == ErrorKind.NOT_FOUND
    if isinstance(error, ApisixAPIError):
        return error.status_code == 404 or "not found" in error.error_msg.lower()
    return False
