"""Concurrent resolution of one package's dependencies."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict

from .errors import RegistryError
from .models import PackageContext, RawDependency, ResolvedDependency, UpdateMode
from .policy import evaluate
from .registry import RegistryClient

logger = logging.getLogger(__name__)

DependencyFilter = Callable[[RawDependency], bool]
# (package name, dependency name, completed, total)
ProgressCallback = Callable[[str, str, int, int], None]


class ResolutionScheduler:
    """Resolves dependencies through a fixed pool of worker tasks."""

    def __init__(self, client: RegistryClient, max_concurrency: int = 10):
        """Initialize scheduler.

        Args:
            client: Registry client used for lookups
            max_concurrency: Maximum concurrent registry requests
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.client = client
        self.max_concurrency = max_concurrency

    async def resolve(
        self,
        package: PackageContext,
        mode: UpdateMode = UpdateMode.DEFAULT,
        dep_filter: DependencyFilter | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[ResolvedDependency]:
        """Resolve every dependency of a package that passes ``dep_filter``.

        Progress is reported in completion order; the returned list keeps the
        declaration order.
        """
        dependencies = [dep for dep in package.dependencies if dep_filter is None or dep_filter(dep)]
        total = len(dependencies)
        results: list[ResolvedDependency | None] = [None] * total
        if not total:
            return []

        queue: asyncio.Queue[tuple[int, RawDependency]] = asyncio.Queue()
        for item in enumerate(dependencies):
            queue.put_nowait(item)

        completed = 0

        async def worker() -> None:
            nonlocal completed
            while True:
                try:
                    index, dep = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[index] = await self.resolve_dependency(dep, mode)
                completed += 1
                if on_progress is not None:
                    try:
                        on_progress(package.name, dep.name, completed, total)
                    except Exception:
                        logger.exception("Progress callback failed for %s", dep.name)

        workers = [asyncio.create_task(worker()) for _ in range(min(self.max_concurrency, total))]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            raise

        logger.info(
            "Resolved %d dependencies of %s (%d updates)",
            total,
            package.name,
            sum(1 for result in results if result.update),
        )
        return results

    async def resolve_dependency(self, dep: RawDependency, mode: UpdateMode) -> ResolvedDependency:
        """Look up and evaluate a single dependency.

        Registry failures are recorded on the result instead of raised.
        """
        if not dep.update_eligible:
            return ResolvedDependency(**asdict(dep))

        try:
            entry = await self.client.lookup(dep.name)
        except RegistryError as e:
            logger.warning("Could not resolve %s: %s", dep.name, e)
            return ResolvedDependency(**asdict(dep), error=str(e))

        result = evaluate(dep.current_range, entry.versions, mode, entry.dist_tags)
        return ResolvedDependency(
            **asdict(dep),
            current_version=result.current_version,
            target_version=result.target_version,
            latest_version=result.latest_version,
            diff=result.diff,
            update=result.update,
        )
