"""Core data models for depbump."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class UpdateMode(str, Enum):
    """How aggressively a target version is chosen."""

    DEFAULT = "default"
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    LATEST = "latest"
    NEWEST = "newest"
    NEXT = "next"


class DiffSeverity(str, Enum):
    """Distance between the currently satisfied version and the target."""

    NONE = "none"
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"
    PRERELEASE = "prerelease"


@dataclass(frozen=True)
class RawDependency:
    """A single dependency declaration read from a manifest."""

    name: str
    current_range: str
    source: str = "dependencies"  # manifest section it came from
    update_eligible: bool = True


@dataclass(frozen=True)
class ResolvedDependency(RawDependency):
    """A dependency after registry lookup and policy evaluation."""

    current_version: str | None = None
    target_version: str | None = None
    latest_version: str | None = None
    diff: DiffSeverity = DiffSeverity.NONE
    update: bool = False
    error: str | None = None


@dataclass
class PackageContext:
    """A parsed manifest and its resolution results."""

    name: str
    file_path: Path | None
    raw_manifest: dict | None
    dependencies: list[RawDependency]
    resolved: list[ResolvedDependency] = field(default_factory=list)
    private: bool = False
    write_error: str | None = None

    @property
    def changes(self) -> list[ResolvedDependency]:
        return [dep for dep in self.resolved if dep.update]

    @property
    def errors(self) -> list[ResolvedDependency]:
        return [dep for dep in self.resolved if dep.error]


@dataclass
class RegistryCacheEntry:
    """Published-version metadata for one package, as last fetched."""

    package_name: str
    fetched_at: float
    versions: list[str]
    dist_tags: dict[str, str] = field(default_factory=dict)


@dataclass
class CheckOptions:
    """Options for one check run."""

    mode: UpdateMode = UpdateMode.DEFAULT
    write: bool = False
    force: bool = False
    recursive: bool = False
    cwd: Path = field(default_factory=Path.cwd)
    ignore_paths: list[str] = field(default_factory=list)
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    fail_on_outdated: bool = False
    all: bool = False
    global_packages: bool = False
