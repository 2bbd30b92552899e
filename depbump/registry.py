"""npm registry client with cache and in-flight request coalescing."""

import asyncio
import logging
import time

import httpx

from .cache import RegistryCache
from .errors import PackageNotFound, RegistryError, RegistryUnreachable
from .models import RegistryCacheEntry

logger = logging.getLogger(__name__)

# abbreviated metadata: versions and dist-tags without readmes
ABBREVIATED_METADATA = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8"


class RegistryClient:
    """Fetches published versions for package names."""

    def __init__(
        self,
        cache: RegistryCache,
        registry_url: str = "https://registry.npmjs.org",
        timeout: float = 30.0,
        force: bool = False,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize registry client.

        Args:
            cache: Cache consulted before and populated after each fetch
            registry_url: Base URL of the npm-compatible registry
            timeout: Request timeout in seconds
            force: Ignore fresh cache entries (each name is still fetched at most once)
            http_client: Shared client; one is created per request when omitted
        """
        self.cache = cache
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self.force = force
        self._http_client = http_client
        self._inflight: dict[str, asyncio.Task] = {}
        self._fetched: set[str] = set()
        # failures are remembered for this run only, never written to the cache
        self._failed: dict[str, RegistryError] = {}

    async def lookup(self, package_name: str) -> RegistryCacheEntry:
        """Get published versions for a package.

        Concurrent lookups for the same name share one registry request. A
        failed lookup is not retried within the same client.

        Raises:
            PackageNotFound: The registry has no such package
            RegistryUnreachable: The request failed or timed out
        """
        failure = self._failed.get(package_name)
        if failure is not None:
            raise failure

        if package_name in self._fetched:
            entry = self.cache.get(package_name, fresh_only=False)
        elif not self.force:
            entry = self.cache.get(package_name)
        else:
            entry = None
        if entry is not None:
            return entry

        task = self._inflight.get(package_name)
        if task is None:
            task = asyncio.ensure_future(self._fetch(package_name))
            self._inflight[package_name] = task
            task.add_done_callback(lambda _: self._inflight.pop(package_name, None))

        return await asyncio.shield(task)

    def package_url(self, package_name: str) -> str:
        # scoped names keep the "@" but need their slash escaped
        return f"{self.registry_url}/{package_name.replace('/', '%2F')}"

    async def _fetch(self, package_name: str) -> RegistryCacheEntry:
        try:
            return await self._request(package_name)
        except RegistryError as e:
            self._failed[package_name] = e
            raise

    async def _request(self, package_name: str) -> RegistryCacheEntry:
        url = self.package_url(package_name)
        logger.debug("Fetching %s", url)

        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, headers={"Accept": ABBREVIATED_METADATA})
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers={"Accept": ABBREVIATED_METADATA})

            if response.status_code == 404:
                raise PackageNotFound(package_name, f"Package {package_name} not found")
            response.raise_for_status()
            metadata = response.json()

        except httpx.TimeoutException as e:
            raise RegistryUnreachable(package_name, f"Timeout fetching metadata for {package_name}") from e
        except httpx.HTTPStatusError as e:
            raise RegistryUnreachable(package_name, f"HTTP error fetching {package_name}: {e}") from e
        except httpx.HTTPError as e:
            raise RegistryUnreachable(package_name, f"Network error fetching {package_name}: {e}") from e
        except ValueError as e:
            raise RegistryUnreachable(package_name, f"Invalid metadata for {package_name}: {e}") from e

        if not isinstance(metadata, dict):
            raise RegistryUnreachable(package_name, f"Invalid metadata for {package_name}")

        entry = RegistryCacheEntry(
            package_name=package_name,
            fetched_at=time.time(),
            versions=list(metadata.get("versions") or {}),
            dist_tags=dict(metadata.get("dist-tags") or {}),
        )
        self.cache.put(entry)
        self._fetched.add(package_name)
        logger.debug("Fetched %d versions for %s", len(entry.versions), package_name)
        return entry
