"""
APISIX SDK - Async client for the APISIX Admin and Control APIs

Every call goes through one request pipeline with routing, response caching,
retries with backoff and version-aware response normalization.
"""

from .base import ApisixClient
from .cache import ResponseCache
from .connections import ConnectionRegistry
from .control import Control
from .exceptions import (
    ApisixAPIError,
    ErrorKind,
    FeatureNotSupportedError,
    GatewayError,
    RequestCancelledError,
    RequestFailedError,
)
from .metrics import GatewayMetrics
from .normalizer import ResponseNormalizer
from .retry import RetryConfig, RetryExecutor, RetryPolicy
from .sdk import ApisixSDK, create_apisix_sdk
from .types import (
    AdminAPIConfig,
    BatchOperation,
    BatchResult,
    ControlAPIConfig,
    ImportResult,
    ImportStrategy,
    PaginatedResult,
    RequestDescriptor,
    SDKConfig,
    Surface,
    VersionConfig,
)
from .version import VersionNegotiator, compare_versions

__all__ = [
    "ApisixSDK",
    "create_apisix_sdk",
    "ApisixClient",
    "Control",
    "ResponseCache",
    "ConnectionRegistry",
    "ResponseNormalizer",
    "RetryConfig",
    "RetryExecutor",
    "RetryPolicy",
    "VersionNegotiator",
    "compare_versions",
    "GatewayMetrics",
    # Exceptions
    "GatewayError",
    "ApisixAPIError",
    "RequestFailedError",
    "RequestCancelledError",
    "FeatureNotSupportedError",
    "ErrorKind",
    # Types
    "SDKConfig",
    "AdminAPIConfig",
    "ControlAPIConfig",
    "Surface",
    "RequestDescriptor",
    "VersionConfig",
    "PaginatedResult",
    "BatchOperation",
    "BatchResult",
    "ImportStrategy",
    "ImportResult",
]
