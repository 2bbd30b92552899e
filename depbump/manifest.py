"""package.json discovery, parsing and writing."""

import fnmatch
import json
import logging
import re
import subprocess
from pathlib import Path

from .errors import ManifestError, ManifestWriteFailure
from .models import CheckOptions, PackageContext, RawDependency
from .ranges import change_range, parse_range

logger = logging.getLogger(__name__)

DEPENDENCY_SECTIONS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

MANIFEST_NAME = "package.json"


class PackageJsonParser:
    """Parser for package.json manifests."""

    def __init__(self, include: list[str] | None = None, exclude: list[str] | None = None):
        self.include = include or []
        self.exclude = exclude or []
        # Specs that do not point at a registry version
        self.ineligible_patterns = [
            r"^\s*$",  # Empty
            r"^\s*[*xX]\s*$",  # Any version
            r"^workspace:",  # Workspace protocol
            r"^(file|link|portal|patch):",  # Local paths
            r"^npm:",  # Aliases
            r"^(git|git\+\w+|github|gitlab|bitbucket)[:+]",  # VCS
            r"^https?://",  # Tarball URLs
            r"^[\w.-]+/[\w.-]+(#.*)?$",  # GitHub shorthand
            r"^\.{0,2}/",  # Relative paths
        ]

    def _matches(self, name: str, patterns: list[str]) -> bool:
        for pattern in patterns:
            if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
                if re.search(pattern[1:-1], name):
                    return True
            elif fnmatch.fnmatchcase(name, pattern):
                return True
        return False

    def is_eligible(self, name: str, spec: str) -> bool:
        """Check if a dependency should be checked against the registry."""
        if any(re.match(pattern, spec) for pattern in self.ineligible_patterns):
            return False
        if parse_range(spec) is None:
            # dist-tag names such as "latest"
            return False
        if self.include and not self._matches(name, self.include):
            return False
        return not self._matches(name, self.exclude)

    def parse(self, content: str, file_path: Path | None = None) -> PackageContext:
        """Parse package.json content into a PackageContext."""
        try:
            raw = json.loads(content)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Invalid JSON in {file_path or MANIFEST_NAME}: {e}") from e
        if not isinstance(raw, dict):
            raise ManifestError(f"{file_path or MANIFEST_NAME} is not a JSON object")

        dependencies: list[RawDependency] = []
        for section in DEPENDENCY_SECTIONS:
            declared = raw.get(section)
            if not isinstance(declared, dict):
                continue
            for name, spec in declared.items():
                if not isinstance(spec, str):
                    continue
                dependencies.append(
                    RawDependency(
                        name=name,
                        current_range=spec,
                        source=section,
                        update_eligible=self.is_eligible(name, spec),
                    )
                )

        name = raw.get("name")
        if not isinstance(name, str) or not name:
            name = file_path.parent.name if file_path else "<unnamed>"

        return PackageContext(
            name=name,
            file_path=file_path,
            raw_manifest=raw,
            dependencies=dependencies,
            private=bool(raw.get("private")),
        )


def parse_package_json(
    content: str,
    file_path: Path | None = None,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> PackageContext:
    """Parse package.json content into a PackageContext.

    Args:
        content: The package.json file content
        file_path: Where the content was read from
        include: Only check dependencies matching these patterns
        exclude: Skip dependencies matching these patterns

    Returns:
        Parsed PackageContext with unresolved dependencies
    """
    parser = PackageJsonParser(include=include, exclude=exclude)
    return parser.parse(content, file_path)


def find_manifests(options: CheckOptions) -> list[Path]:
    """Locate package.json files under ``options.cwd``."""
    root = Path(options.cwd)
    if not options.recursive:
        manifest = root / MANIFEST_NAME
        return [manifest] if manifest.exists() else []

    manifests = []
    for path in sorted(root.rglob(MANIFEST_NAME)):
        relative = path.relative_to(root)
        if "node_modules" in relative.parts:
            continue
        if any(fnmatch.fnmatch(relative.as_posix(), pattern) for pattern in options.ignore_paths):
            continue
        manifests.append(path)
    return manifests


def load_packages(options: CheckOptions) -> list[PackageContext]:
    """Read and parse every manifest selected by ``options``."""
    packages = []
    for path in find_manifests(options):
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(f"Cannot read {path}: {e}") from e
        packages.append(parse_package_json(content, path, options.include, options.exclude))

    logger.info("Loaded %d manifests from %s", len(packages), options.cwd)
    return packages


def load_global_package(options: CheckOptions) -> PackageContext:
    """Build a synthetic package from globally installed npm packages."""
    try:
        completed = subprocess.run(
            ["npm", "ls", "--global", "--depth=0", "--json"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise ManifestError(f"Cannot run npm: {e}") from e

    try:
        listing = json.loads(completed.stdout or "{}")
    except json.JSONDecodeError as e:
        raise ManifestError(f"Unexpected output from npm ls: {e}") from e

    parser = PackageJsonParser(include=options.include, exclude=options.exclude)
    dependencies = []
    for name, info in (listing.get("dependencies") or {}).items():
        version = (info or {}).get("version")
        if not version:
            continue
        spec = f"^{version}"
        dependencies.append(
            RawDependency(
                name=name,
                current_range=spec,
                source="dependencies",
                update_eligible=parser.is_eligible(name, spec),
            )
        )

    return PackageContext(name="npm", file_path=None, raw_manifest=None, dependencies=dependencies)


def detect_indent(content: str) -> str | int:
    """Indentation used by the first indented line of a JSON document."""
    match = re.search(r"^([ \t]+)\S", content, re.MULTILINE)
    if not match:
        return 2
    indent = match.group(1)
    return indent if "\t" in indent else len(indent)


def update_manifest_content(content: str, package: PackageContext) -> str:
    """Return manifest content with updated version ranges.

    Only entries resolved with ``update`` are rewritten; key order and other
    fields are preserved.
    """
    raw = json.loads(content)
    for dep in package.changes:
        section = raw.get(dep.source)
        if not isinstance(section, dict) or dep.name not in section:
            continue
        section[dep.name] = change_range(dep.current_range, dep.target_version)

    updated = json.dumps(raw, indent=detect_indent(content), ensure_ascii=False)
    if content.endswith("\n"):
        updated += "\n"
    return updated


def write_package(package: PackageContext) -> None:
    """Write updated version ranges back to the package's manifest.

    Raises:
        ManifestWriteFailure: If the manifest cannot be read or written
    """
    if package.file_path is None:
        raise ManifestWriteFailure(f"{package.name} has no manifest file to write")

    path = Path(package.file_path)
    try:
        content = path.read_text(encoding="utf-8")
        path.write_text(update_manifest_content(content, package), encoding="utf-8")
    except (OSError, ValueError) as e:
        raise ManifestWriteFailure(f"Cannot write {path}: {e}") from e

    logger.info("Wrote %d updates to %s", len(package.changes), path)
