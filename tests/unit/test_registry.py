"""Tests for the npm registry client."""

import asyncio
import time

import httpx
import pytest

from depbump.cache import RegistryCache
from depbump.errors import PackageNotFound, RegistryUnreachable
from depbump.models import RegistryCacheEntry
from depbump.registry import RegistryClient

PACKUMENT = {
    "name": "react",
    "dist-tags": {"latest": "18.2.0", "next": "19.0.0-rc.1"},
    "versions": {"17.0.2": {}, "18.0.0": {}, "18.2.0": {}, "19.0.0-rc.1": {}},
}


def make_client(tmp_path, handler, **kwargs):
    cache = RegistryCache(tmp_path / "cache.json", ttl=kwargs.pop("ttl", 60))
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RegistryClient(cache, registry_url="https://registry.test/", http_client=http_client, **kwargs)


class TestRegistryClient:
    """Test registry lookups."""

    @pytest.mark.asyncio
    async def test_lookup_returns_versions_and_tags(self, tmp_path):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=PACKUMENT)

        client = make_client(tmp_path, handler)
        entry = await client.lookup("react")

        assert entry.versions == ["17.0.2", "18.0.0", "18.2.0", "19.0.0-rc.1"]
        assert entry.dist_tags["latest"] == "18.2.0"
        assert str(requests[0].url) == "https://registry.test/react"
        assert "application/vnd.npm.install-v1+json" in requests[0].headers["accept"]

    @pytest.mark.asyncio
    async def test_lookup_populates_cache(self, tmp_path):
        client = make_client(tmp_path, lambda request: httpx.Response(200, json=PACKUMENT))
        await client.lookup("react")

        cached = client.cache.get("react")
        assert cached is not None
        assert cached.fetched_at == pytest.approx(time.time(), abs=5)

    @pytest.mark.asyncio
    async def test_fresh_cache_entry_skips_network(self, tmp_path):
        def handler(request):
            raise AssertionError("registry should not be queried")

        client = make_client(tmp_path, handler)
        client.cache.put(RegistryCacheEntry("react", time.time(), ["18.0.0"]))

        entry = await client.lookup("react")
        assert entry.versions == ["18.0.0"]

    @pytest.mark.asyncio
    async def test_stale_cache_entry_is_refetched(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=PACKUMENT)

        client = make_client(tmp_path, handler)
        client.cache.put(RegistryCacheEntry("react", time.time() - 3600, ["16.0.0"]))

        entry = await client.lookup("react")
        assert len(calls) == 1
        assert "18.2.0" in entry.versions

    @pytest.mark.asyncio
    async def test_force_bypasses_cache_once_per_run(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=PACKUMENT)

        client = make_client(tmp_path, handler, force=True)
        client.cache.put(RegistryCacheEntry("react", time.time(), ["16.0.0"]))

        first = await client.lookup("react")
        second = await client.lookup("react")

        assert len(calls) == 1
        assert first.versions == second.versions
        assert "16.0.0" not in first.versions

    @pytest.mark.asyncio
    async def test_zero_ttl_still_fetches_once_per_run(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=PACKUMENT)

        client = make_client(tmp_path, handler, ttl=0)
        await client.lookup("react")
        await client.lookup("react")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_lookups_coalesce(self, tmp_path):
        calls = []

        async def handler(request):
            calls.append(request)
            await asyncio.sleep(0.05)
            return httpx.Response(200, json=PACKUMENT)

        client = make_client(tmp_path, handler)
        entries = await asyncio.gather(*(client.lookup("react") for _ in range(10)))

        assert len(calls) == 1
        assert all(entry is entries[0] for entry in entries)

    @pytest.mark.asyncio
    async def test_concurrent_failures_are_shared(self, tmp_path):
        calls = []

        async def handler(request):
            calls.append(request)
            await asyncio.sleep(0.01)
            return httpx.Response(404)

        client = make_client(tmp_path, handler)
        results = await asyncio.gather(*(client.lookup("ghost") for _ in range(3)), return_exceptions=True)

        assert len(calls) == 1
        assert all(isinstance(result, PackageNotFound) for result in results)

    @pytest.mark.asyncio
    async def test_not_found(self, tmp_path):
        client = make_client(tmp_path, lambda request: httpx.Response(404))

        with pytest.raises(PackageNotFound) as exc_info:
            await client.lookup("nonexistent-package")
        assert exc_info.value.package_name == "nonexistent-package"
        assert "not found" in str(exc_info.value).lower()

    @pytest.mark.asyncio
    async def test_server_error_is_unreachable(self, tmp_path):
        client = make_client(tmp_path, lambda request: httpx.Response(503))

        with pytest.raises(RegistryUnreachable):
            await client.lookup("react")

    @pytest.mark.asyncio
    async def test_timeout_is_unreachable(self, tmp_path):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(tmp_path, handler)

        with pytest.raises(RegistryUnreachable) as exc_info:
            await client.lookup("react")
        assert "timeout" in str(exc_info.value).lower()

    @pytest.mark.asyncio
    async def test_connection_error_is_unreachable(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(tmp_path, handler)

        with pytest.raises(RegistryUnreachable):
            await client.lookup("react")

    @pytest.mark.asyncio
    async def test_invalid_json_is_unreachable(self, tmp_path):
        client = make_client(tmp_path, lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(RegistryUnreachable):
            await client.lookup("react")

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, tmp_path):
        client = make_client(tmp_path, lambda request: httpx.Response(503))

        with pytest.raises(RegistryUnreachable):
            await client.lookup("react")
        assert "react" not in client.cache

    @pytest.mark.asyncio
    async def test_failed_lookup_is_not_retried(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = make_client(tmp_path, handler)

        for _ in range(3):
            with pytest.raises(RegistryUnreachable):
                await client.lookup("flaky")
        assert len(calls) == 1
        assert "flaky" not in client.cache

    @pytest.mark.asyncio
    async def test_failure_is_remembered_per_client(self, tmp_path):
        client = make_client(tmp_path, lambda request: httpx.Response(404))
        with pytest.raises(PackageNotFound):
            await client.lookup("ghost")

        fresh = RegistryClient(
            client.cache,
            registry_url="https://registry.test",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=PACKUMENT))),
        )
        entry = await fresh.lookup("ghost")
        assert entry.dist_tags["latest"] == "18.2.0"

    def test_scoped_package_url(self, tmp_path):
        client = RegistryClient(RegistryCache(tmp_path / "cache.json"), registry_url="https://registry.test")
        assert client.package_url("@types/node") == "https://registry.test/@types%2Fnode"

    def test_client_initialization(self, tmp_path):
        client = RegistryClient(RegistryCache(tmp_path / "cache.json"))

        assert client.registry_url == "https://registry.npmjs.org"
        assert client.timeout == 30.0
        assert client.force is False
