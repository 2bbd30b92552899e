"""Run dependency resolution across all packages of a workspace."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .cache import RegistryCache
from .errors import ManifestWriteFailure
from .manifest import write_package
from .models import CheckOptions, PackageContext, RawDependency
from .registry import RegistryClient
from .scheduler import ProgressCallback, ResolutionScheduler

logger = logging.getLogger(__name__)

PackageHook = Callable[[PackageContext], None]
PackagesHook = Callable[[list[PackageContext]], None]


@dataclass
class CheckCallbacks:
    """Optional lifecycle hooks for a check run.

    Every hook defaults to doing nothing. ``before_package_write`` may return
    a bool or an awaitable bool; ``False`` skips writing that package.
    """

    after_packages_loaded: PackagesHook | None = None
    before_package_start: PackageHook | None = None
    after_package_end: PackageHook | None = None
    before_package_write: Callable[[PackageContext], bool | Awaitable[bool]] | None = None
    after_package_write: PackageHook | None = None
    after_packages_end: PackagesHook | None = None
    on_dependency_resolved: ProgressCallback | None = None


def private_package_filter(packages: list[PackageContext]) -> Callable[[RawDependency], bool]:
    """Build a filter dropping dependencies on private workspace packages."""
    private_names = {pkg.name for pkg in packages if pkg.private and pkg.raw_manifest and pkg.raw_manifest.get("name")}

    def dep_filter(dep: RawDependency) -> bool:
        return dep.name not in private_names

    return dep_filter


class PackageResolutionOrchestrator:
    """Resolves packages one after another and writes the ones that changed."""

    def __init__(
        self,
        cache: RegistryCache,
        client: RegistryClient,
        scheduler: ResolutionScheduler | None = None,
        writer: Callable[[PackageContext], None] = write_package,
    ):
        self.cache = cache
        self.client = client
        self.scheduler = scheduler or ResolutionScheduler(client)
        self.writer = writer

    async def run(
        self,
        packages: list[PackageContext],
        options: CheckOptions,
        callbacks: CheckCallbacks | None = None,
    ) -> list[PackageContext]:
        """Resolve every package, populating ``resolved`` in place.

        The registry cache is loaded first (unless ``options.force``) and
        dumped once at the end, even if a package fails.
        """
        callbacks = callbacks or CheckCallbacks()

        if not options.force:
            self.cache.load()

        try:
            if callbacks.after_packages_loaded:
                callbacks.after_packages_loaded(packages)

            dep_filter = private_package_filter(packages)

            for package in packages:
                if callbacks.before_package_start:
                    callbacks.before_package_start(package)

                await self._check_package(package, options, dep_filter, callbacks)

                if callbacks.after_package_end:
                    callbacks.after_package_end(package)

            if callbacks.after_packages_end:
                callbacks.after_packages_end(packages)
        finally:
            self._dump_cache()

        return packages

    async def _check_package(
        self,
        package: PackageContext,
        options: CheckOptions,
        dep_filter: Callable[[RawDependency], bool],
        callbacks: CheckCallbacks,
    ) -> None:
        package.resolved = await self.scheduler.resolve(
            package, options.mode, dep_filter, callbacks.on_dependency_resolved
        )

        if not options.write or not package.changes:
            return

        if callbacks.before_package_write:
            should_write = callbacks.before_package_write(package)
            if inspect.isawaitable(should_write):
                should_write = await should_write
            if should_write is False:
                logger.info("Skipping write for %s", package.name)
                return

        try:
            self.writer(package)
        except ManifestWriteFailure as e:
            logger.error("Failed to write %s: %s", package.name, e)
            package.write_error = str(e)
            return

        if callbacks.after_package_write:
            callbacks.after_package_write(package)

    def _dump_cache(self) -> None:
        try:
            self.cache.dump()
        except OSError as e:
            logger.warning("Could not save registry cache to %s: %s", self.cache.path, e)
