"""
Server version discovery and feature negotiation
"""
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.logging import get_logger

from .types import VersionConfig

DEFAULT_VERSION = "3.0.0"
V3_THRESHOLD = "3.0.0"
STREAM_ROUTES_THRESHOLD = "2.10.0"

_SERVER_HEADER = re.compile(r"APISIX/(\d+(?:\.\d+)*)", re.IGNORECASE)
_LEADING_DIGITS = re.compile(r"^\d+")

# Features marked deprecated per major version
DEPRECATED_FEATURES: Dict[str, List[str]] = {
    "2": [],
    "3": ["etcd.health_check_retry"],
}


def _segments(version: str) -> List[int]:
    parts = []
    for part in str(version).strip().lstrip("vV").split("."):
        match = _LEADING_DIGITS.match(part)
        parts.append(int(match.group()) if match else 0)
    return parts


def compare_versions(version1: str, version2: str) -> int:
    """
    Compare two dotted version strings segment by segment

    Missing segments count as zero, so "3.0" and "3.0.0" are equal.

    Returns:
        -1, 0 or 1
    """
    v1, v2 = _segments(version1), _segments(version2)
    length = max(len(v1), len(v2))
    v1 += [0] * (length - len(v1))
    v2 += [0] * (length - len(v2))
    for a, b in zip(v1, v2):
        if a < b:
            return -1
        if a > b:
            return 1
    return 0


def parse_server_header(value: Optional[str]) -> Optional[str]:
    """Pull a version out of a Server header such as "APISIX/3.2.1" """
    if not value:
        return None
    match = _SERVER_HEADER.search(value)
    return match.group(1) if match else None


def build_version_config(version: str) -> VersionConfig:
    """Derive the feature matrix for a version"""
    v3 = compare_versions(version, V3_THRESHOLD) >= 0
    return VersionConfig(
        supports_credentials=v3,
        supports_secrets=v3,
        supports_new_response_format=v3,
        supports_stream_routes=compare_versions(version, STREAM_ROUTES_THRESHOLD) >= 0,
        supports_pagination=v3,
    )


class VersionNegotiator:
    """
    Resolves the server version once per client

    The server info comes from the Control API; when that fails an
    unauthenticated probe of the Admin root is tried, and when that fails too
    DEFAULT_VERSION is assumed. Nothing here raises on negotiation failure.
    """

    def __init__(
        self,
        fetch_server_info: Callable[[], Awaitable[Dict[str, Any]]],
        probe_admin: Callable[[], Awaitable[Optional[str]]],
        default_version: str = DEFAULT_VERSION,
    ):
        self._fetch_server_info = fetch_server_info
        self._probe_admin = probe_admin
        self.default_version = default_version
        self.logger = get_logger("apisix.version", domain="apisix")

        self._server_info: Optional[Dict[str, Any]] = None
        self._features: Optional[VersionConfig] = None

    async def get_server_info(self) -> Dict[str, Any]:
        if self._server_info is not None:
            return self._server_info

        info = await self._resolve_server_info()
        # Another task may have resolved it while we were waiting
        if self._server_info is None:
            self._server_info = info
        return self._server_info

    async def _resolve_server_info(self) -> Dict[str, Any]:
        try:
            info = await self._fetch_server_info()
            if isinstance(info, dict) and info.get("version"):
                return info
            self.logger.warning("Server info carried no version, probing Admin API")
        except Exception as e:
            self.logger.warning(f"Control API server info unavailable, probing Admin API: {e}")

        version = None
        try:
            version = await self._probe_admin()
        except Exception as e:
            self.logger.warning(f"Admin API probe failed, assuming APISIX {self.default_version}: {e}")

        return {
            "hostname": "unknown",
            "version": version or self.default_version,
            "up_time": 0,
            "boot_time": 0,
            "last_report_time": 0,
            "etcd_version": "unknown",
        }

    async def get_version(self) -> str:
        info = await self.get_server_info()
        return str(info["version"])

    async def is_at_least(self, version: str) -> bool:
        return compare_versions(await self.get_version(), version) >= 0

    async def is_version_3_or_later(self) -> bool:
        return await self.is_at_least(V3_THRESHOLD)

    async def feature_matrix(self) -> VersionConfig:
        if self._features is None:
            features = build_version_config(await self.get_version())
            if self._features is None:
                self._features = features
        return self._features

    async def supports(self, feature: str) -> bool:
        """Look up a flag by short name, e.g. "secrets" or "supports_secrets" """
        name = feature if feature.startswith("supports_") else f"supports_{feature}"
        matrix = (await self.feature_matrix()).as_dict()
        if name not in matrix:
            raise ValueError(f"Unknown feature: {feature}")
        return matrix[name]

    async def deprecated_features(self) -> List[str]:
        major = (await self.get_version()).split(".")[0]
        return list(DEPRECATED_FEATURES.get(major, []))
