"""Core utilities and configuration for the APISIX SDK"""
from core.config import Settings, get_settings
from core.exceptions import ApisixSDKError, ConfigurationError, ValidationError
from core.logging import get_logger, setup_logging

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "ApisixSDKError",
    "ConfigurationError",
    "ValidationError",
]
