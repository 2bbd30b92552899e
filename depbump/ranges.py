"""npm-style version and range handling built on semantic_version.

Registry versions are semver strings (``1.2.3-beta.1``) parsed onto
:class:`semantic_version.Version`. Ranges are matched by
:class:`semantic_version.NpmSpec`, which follows npm semantics: caret, tilde,
x-ranges, primitive comparators, hyphen ranges, ``||`` unions and the npm
prerelease rule.
"""

import re
from dataclasses import dataclass

from semantic_version import NpmSpec, Version

SEMVER_RE = re.compile(
    r"^\s*[v=]*\s*(\d+\.\d+\.\d+)"
    r"(?:-([0-9A-Za-z.-]+))?"
    r"(?:\+[0-9A-Za-z.-]+)?\s*$"
)
LITERAL_RE = re.compile(
    r"(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?(?:-([0-9A-Za-z.-]+))?"
)
SIMPLE_RANGE_RE = re.compile(
    r"^\s*(\^|~>|~|>=|=)?\s*v?\d+(?:\.\d+){0,2}(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?\s*$"
)

ZERO = Version("0.0.0")


def parse_version(text: str) -> Version | None:
    """Parse a semver string, returning None when it is malformed.

    A leading ``v``/``=`` and build metadata are dropped, so ``v1.0.0+b.5``
    parses equal to ``1.0.0``.
    """
    match = SEMVER_RE.match(text)
    if not match:
        return None

    release, pre = match.groups()
    try:
        return Version(f"{release}-{pre}" if pre else release)
    except ValueError:
        return None


def prerelease_components(text: str) -> int:
    """Number of dot-separated prerelease identifiers in a version string."""
    match = SEMVER_RE.match(text)
    if not match or not match.group(2):
        return 0
    return len(match.group(2).split("."))


def is_prerelease(version: Version) -> bool:
    return bool(version.prerelease)


def _normalize(text: str) -> str:
    groups = []
    for group in text.split("||"):
        group = group.strip()
        # "> 1.2.3" is the same as ">1.2.3"
        group = re.sub(r"(\^|~>|~|>=|<=|>|<|=)\s+", r"\1", group)
        group = re.sub(r"(\^|~>|~|>=|<=|>|<|=)v", r"\1", group)
        group = group.replace("~>", "~")
        groups.append(" ".join(group.split()) or "*")
    return " || ".join(groups)


def _lower_bound_candidates(text: str) -> set[Version]:
    # the lowest matching version is always one of these
    candidates = {ZERO, Version("0.0.0-0")}
    for match in LITERAL_RE.finditer(text):
        parts = [int(part) if part and part.isdigit() else 0 for part in match.groups()[:3]]
        major, minor, patch = parts
        pre = match.group(4)
        candidates.update(
            Version(f"{major}.{minor}.{patch}"),
            Version(f"{major}.{minor}.{patch + 1}"),
            Version(f"{major}.{minor + 1}.0"),
            Version(f"{major + 1}.0.0"),
        )
        if pre:
            for text_pre in (pre, f"{pre}.0"):
                try:
                    candidates.add(Version(f"{major}.{minor}.{patch}-{text_pre}"))
                except ValueError:
                    continue
    return candidates


@dataclass(frozen=True)
class Range:
    """A parsed npm range."""

    raw: str
    expression: str
    spec: NpmSpec

    def satisfies(self, version: Version) -> bool:
        return self.spec.match(version)

    def min_version(self) -> Version | None:
        """Lowest version that satisfies this range, if any."""
        matching = [candidate for candidate in _lower_bound_candidates(self.expression) if self.satisfies(candidate)]
        return min(matching, default=None)


def parse_range(text: str) -> Range | None:
    """Parse an npm range expression, returning None if it is not one."""
    expression = _normalize(text)
    try:
        spec = NpmSpec(expression)
    except ValueError:
        return None
    return Range(raw=text, expression=expression, spec=spec)


def change_range(current_range: str, target_version: str) -> str:
    """Rewrite a range to point at a new version, keeping its operator.

    Compound ranges (unions, hyphens, x-ranges) collapse to a caret range.
    """
    match = SIMPLE_RANGE_RE.match(current_range)
    if match:
        return f"{match.group(1) or ''}{target_version}"
    return f"^{target_version}"
