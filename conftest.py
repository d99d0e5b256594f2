"""
Root conftest.py for pytest configuration

This file handles:
1. Automatic marker inheritance based on test location
2. Marker registration
"""
import os
from pathlib import Path

import pytest

# Primary test type markers, applied from the directory under tests/
PRIMARY_MARKERS = {
    "unit": "Fast tests without network access",
    "integration": "Tests against a running APISIX",
}

# Domain markers, applied from the directory under tests/unit/
DOMAIN_MARKERS = {
    "apisix_sdk": "Request pipeline and resource facade tests",
    "core": "Configuration, logging and error tests",
}

OTHER_MARKERS = {
    "slow": "Slow tests, deselected in CI",
    "critical": "Tests guarding core invariants",
}


def apply_auto_markers(item: pytest.Item) -> None:
    parts = Path(str(item.fspath)).parts
    if "tests" not in parts:
        return
    below = parts[parts.index("tests") + 1 :]
    for part in below:
        if part in PRIMARY_MARKERS or part in DOMAIN_MARKERS:
            item.add_marker(getattr(pytest.mark, part))


def pytest_collection_modifyitems(config, items):
    """Apply automatic markers and, in CI, drop slow tests"""
    in_ci = (
        os.environ.get("CI", "false").lower() == "true" or os.environ.get("GITHUB_ACTIONS", "false").lower() == "true"
    )

    deselected = []
    for item in items:
        apply_auto_markers(item)
        if in_ci and item.get_closest_marker("slow"):
            deselected.append(item)

    if deselected:
        config.hook.pytest_deselected(items=deselected)
        for item in deselected:
            items.remove(item)


def pytest_configure(config):
    """Register markers so --strict-markers accepts them"""
    for markers in (PRIMARY_MARKERS, DOMAIN_MARKERS, OTHER_MARKERS):
        for marker_name, description in markers.items():
            config.addinivalue_line("markers", f"{marker_name}: {description}")
