"""
Type definitions for the APISIX SDK
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.config import Settings

ADMIN_PREFIX = "/apisix/admin"
DEFAULT_CONTROL_URL = "http://127.0.0.1:9090"
DEFAULT_TIMEOUT_MS = 30000


class Surface(str, Enum):
    """The two administrative HTTP surfaces of the gateway"""

    ADMIN = "admin"
    CONTROL = "control"


class ImportStrategy(str, Enum):
    """How import_data treats items that already exist"""

    REPLACE = "replace"
    MERGE = "merge"
    SKIP_EXISTING = "skip_existing"


# Configuration


class AdminAPIConfig(BaseModel):
    """Admin API connection settings"""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    base_url: str = Field(alias="baseURL", min_length=1)
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    timeout: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0, description="Timeout in milliseconds")
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")


class ControlAPIConfig(BaseModel):
    """Control API connection settings"""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    base_url: str = Field(default=DEFAULT_CONTROL_URL, alias="baseURL", min_length=1)
    timeout: Optional[int] = Field(default=None, gt=0, description="Timeout in milliseconds")
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")


class SDKConfig(BaseModel):
    """Per-client configuration

    Accepts both the camelCase shape ({"adminAPI": {"baseURL": ...}}) and
    snake_case field names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    admin_api: AdminAPIConfig = Field(alias="adminAPI")
    control_api: Optional[ControlAPIConfig] = Field(default=None, alias="controlAPI")

    cache_ttl: float = Field(default=30.0, gt=0, alias="cacheTTL", description="Seconds")
    max_retries: int = Field(default=3, ge=1, le=10, alias="maxRetries")
    retry_delay: float = Field(default=1.0, ge=0.0, alias="retryDelay", description="Base delay in seconds")
    retry_max_delay: float = Field(default=10.0, ge=0.0, alias="retryMaxDelay")
    retry_jitter: float = Field(default=0.1, ge=0.0, alias="retryJitter")
    max_connections: int = Field(default=10, ge=1, alias="maxConnections")
    connection_ttl: float = Field(default=300.0, gt=0, alias="connectionTTL", description="Seconds")

    @property
    def control(self) -> ControlAPIConfig:
        """Control config with the admin timeout applied when none is set"""
        control = self.control_api or ControlAPIConfig()
        if control.timeout is None:
            control = control.model_copy(update={"timeout": self.admin_api.timeout})
        return control

    @classmethod
    def from_settings(cls, settings: Settings) -> "SDKConfig":
        """Build a client config from environment-backed settings"""
        return cls(
            admin_api=AdminAPIConfig(
                base_url=settings.admin_base_url,
                api_key=settings.get_api_key(),
                timeout=settings.admin_timeout,
            ),
            control_api=ControlAPIConfig(
                base_url=settings.control_base_url,
                timeout=settings.resolved_control_timeout,
            ),
            cache_ttl=settings.cache_ttl,
            max_retries=settings.retry_max_attempts,
            retry_delay=settings.retry_base_delay,
            retry_max_delay=settings.retry_max_delay,
            retry_jitter=settings.retry_jitter,
            max_connections=settings.max_connections,
            connection_ttl=settings.connection_ttl,
        )


# Request/response records


@dataclass(frozen=True)
class RequestDescriptor:
    """One outgoing call, built fresh by every public operation"""

    endpoint: str
    method: str = "GET"
    body: Optional[Any] = None
    params: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None
    cancel_token: Optional[asyncio.Event] = None
    skip_cache: bool = False

    @property
    def is_read(self) -> bool:
        return (self.method or "GET").upper() == "GET"


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


@dataclass
class ConnectionRecord:
    url: str
    last_used: float
    keep_alive: bool = True


@dataclass(frozen=True)
class VersionConfig:
    """Feature matrix derived from the server version"""

    supports_credentials: bool
    supports_secrets: bool
    supports_new_response_format: bool
    supports_stream_routes: bool
    supports_pagination: bool

    def as_dict(self) -> Dict[str, bool]:
        return {
            "supports_credentials": self.supports_credentials,
            "supports_secrets": self.supports_secrets,
            "supports_new_response_format": self.supports_new_response_format,
            "supports_stream_routes": self.supports_stream_routes,
            "supports_pagination": self.supports_pagination,
        }


@dataclass
class CanonicalResource:
    value: Any
    id: Optional[str] = None


@dataclass
class CanonicalList:
    items: List[Any]
    total: Optional[int] = None
    has_more: Optional[bool] = None


@dataclass
class PaginatedResult:
    items: List[Any]
    page: int
    page_size: int
    total: Optional[int] = None
    has_more: Optional[bool] = None


@dataclass
class BatchOperation:
    operation: Literal["create", "update", "delete"]
    id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


@dataclass
class BatchItemResult:
    success: bool
    id: Optional[str] = None
    data: Optional[Any] = None
    error: Optional[str] = None


@dataclass
class BatchResult:
    total: int
    successful: int = 0
    failed: int = 0
    results: List[BatchItemResult] = field(default_factory=list)


@dataclass
class ImportFailure:
    error: str
    id: Optional[str] = None


@dataclass
class ImportResult:
    total: int
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[ImportFailure] = field(default_factory=list)
