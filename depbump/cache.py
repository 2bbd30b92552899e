"""Persistent registry metadata cache.

Strategy:
  - one entry per package name, the newest fetch overwrites
  - entries are fresh for ``ttl`` seconds after ``fetched_at``
  - loaded once at run start, dumped once at run end
  - a malformed cache file is discarded and the run starts cold
"""

import json
import logging
import os
import tempfile
import time
from dataclasses import asdict
from pathlib import Path

from .errors import CacheCorrupt
from .models import RegistryCacheEntry

logger = logging.getLogger(__name__)


class RegistryCache:
    """Registry metadata keyed by package name."""

    def __init__(self, path: Path | str, ttl: float = 30 * 60):
        self.path = Path(path)
        self.ttl = ttl
        self._entries: dict[str, RegistryCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, package_name: str) -> bool:
        return package_name in self._entries

    def is_fresh(self, entry: RegistryCacheEntry, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now - entry.fetched_at < self.ttl

    def get(
        self, package_name: str, now: float | None = None, fresh_only: bool = True
    ) -> RegistryCacheEntry | None:
        """Return the entry for a package if present (and fresh, unless ``fresh_only`` is False)."""
        entry = self._entries.get(package_name)
        if entry is None or (fresh_only and not self.is_fresh(entry, now)):
            return None
        return entry

    def put(self, entry: RegistryCacheEntry) -> None:
        self._entries[entry.package_name] = entry

    def clear(self) -> None:
        self._entries.clear()

    def load(self) -> None:
        """Load entries from disk. A missing file means an empty cache."""
        if not self.path.exists():
            logger.debug("No registry cache at %s", self.path)
            return

        try:
            self._entries = self._read()
        except CacheCorrupt as e:
            logger.warning("Discarding registry cache: %s", e)
            self._entries = {}
            return

        logger.debug("Loaded %d cached registry entries from %s", len(self._entries), self.path)

    def _read(self) -> dict[str, RegistryCacheEntry]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheCorrupt(f"cannot read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise CacheCorrupt(f"{self.path} does not hold a JSON object")

        entries: dict[str, RegistryCacheEntry] = {}
        for name, raw in data.items():
            try:
                entry = RegistryCacheEntry(
                    package_name=str(raw["package_name"]),
                    fetched_at=float(raw["fetched_at"]),
                    versions=[str(v) for v in raw["versions"]],
                    dist_tags={str(k): str(v) for k, v in raw.get("dist_tags", {}).items()},
                )
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise CacheCorrupt(f"malformed entry for {name!r}: {e}") from e
            entries[entry.package_name] = entry
        return entries

    def dump(self) -> None:
        """Write all entries to disk atomically.

        Raises:
            OSError: If the cache directory or file cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {name: asdict(entry) for name, entry in sorted(self._entries.items())}

        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".registry-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Wrote %d registry entries to %s", len(self._entries), self.path)
