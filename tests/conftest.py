"""Pytest configuration and fixtures."""

import asyncio
import json

import pytest

from depbump.errors import PackageNotFound, RegistryUnreachable
from depbump.models import RegistryCacheEntry


class FakeRegistryClient:
    """Registry client serving versions from a dict."""

    def __init__(self, packages: dict[str, list[str]], unreachable: tuple[str, ...] = (), delay: float = 0.0):
        self.packages = packages
        self.unreachable = unreachable
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def lookup(self, package_name: str) -> RegistryCacheEntry:
        self.calls.append(package_name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if package_name in self.unreachable:
                raise RegistryUnreachable(package_name, f"Timeout fetching metadata for {package_name}")
            if package_name not in self.packages:
                raise PackageNotFound(package_name, f"Package {package_name} not found")
            return RegistryCacheEntry(package_name, 0.0, list(self.packages[package_name]))
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_registry():
    """Factory for fake registry clients."""
    return FakeRegistryClient


@pytest.fixture
def sample_package_json():
    """Sample package.json content for testing."""
    return """{
  "name": "test-project",
  "version": "1.0.0",
  "dependencies": {
    "express": "^4.18.0",
    "lodash": "~4.17.21"
  },
  "devDependencies": {
    "vitest": "0.34.0",
    "shared-utils": "workspace:*"
  }
}
"""


@pytest.fixture
def workspace(tmp_path):
    """Create a small monorepo with one private package."""

    def write(path, data):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2) + "\n")
        return path

    write(tmp_path / "package.json", {
        "name": "monorepo",
        "private": True,
        "devDependencies": {"typescript": "^5.0.0"},
    })
    write(tmp_path / "packages" / "app" / "package.json", {
        "name": "app",
        "dependencies": {"internal-lib": "^1.0.0", "react": "^18.0.0"},
    })
    write(tmp_path / "packages" / "internal-lib" / "package.json", {
        "name": "internal-lib",
        "private": True,
        "dependencies": {"lodash": "^4.17.0"},
    })
    write(tmp_path / "node_modules" / "react" / "package.json", {"name": "react"})
    return tmp_path
