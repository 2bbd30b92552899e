"""Update-mode policy: pick a target version for one dependency."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from semantic_version import Version

from .models import DiffSeverity, UpdateMode
from .ranges import Range, is_prerelease, parse_range, parse_version, prerelease_components

# (parsed, raw) pairs, sorted ascending by version
Candidates = list[tuple[Version, str]]


@dataclass(frozen=True)
class PolicyResult:
    """Outcome of evaluating one dependency against the registry versions."""

    current_version: str | None
    target_version: str | None
    latest_version: str | None
    diff: DiffSeverity
    update: bool


def collect_candidates(versions: Iterable[str]) -> Candidates:
    """Parse registry versions, skipping malformed ones.

    Versions equal after normalization are collapsed to the spelling with the
    fewest prerelease components.
    """
    best: dict[Version, str] = {}
    for raw in versions:
        parsed = parse_version(raw)
        if parsed is None:
            continue
        existing = best.get(parsed)
        if existing is None or _spelling_key(raw) < _spelling_key(existing):
            best[parsed] = raw
    return sorted(best.items())


def _spelling_key(raw: str) -> tuple[int, str]:
    return prerelease_components(raw), raw


def _highest(candidates: Candidates, accept: Callable[[Version], bool]) -> str | None:
    for parsed, raw in reversed(candidates):
        if accept(parsed):
            return raw
    return None


def _stable(version: Version) -> bool:
    return not is_prerelease(version)


def _same_release(version: Version, current: Version) -> bool:
    # prereleases of the release a prerelease range already targets
    return is_prerelease(current) and _release(version) == _release(current)


def _release(version: Version) -> tuple[int, int, int]:
    return version.major, version.minor, version.patch


def _pick_default(rng: Range, current: Version, candidates: Candidates, dist_tags: dict) -> str | None:
    return _highest(candidates, rng.satisfies)


def _pick_major(rng: Range, current: Version, candidates: Candidates, dist_tags: dict) -> str | None:
    return _highest(candidates, lambda v: _stable(v) and v >= current)


def _pick_minor(rng: Range, current: Version, candidates: Candidates, dist_tags: dict) -> str | None:
    return _highest(
        candidates,
        lambda v: (_stable(v) or _same_release(v, current)) and v.major == current.major,
    )


def _pick_patch(rng: Range, current: Version, candidates: Candidates, dist_tags: dict) -> str | None:
    return _highest(
        candidates,
        lambda v: (_stable(v) or _same_release(v, current)) and _release(v)[:2] == _release(current)[:2],
    )


def _pick_latest(rng: Range, current: Version, candidates: Candidates, dist_tags: dict) -> str | None:
    tagged = parse_version(dist_tags.get("latest", ""))
    if tagged is not None and _stable(tagged):
        for parsed, raw in candidates:
            if parsed == tagged:
                return raw
    return _pick_newest(rng, current, candidates, dist_tags)


def _pick_newest(rng: Range, current: Version, candidates: Candidates, dist_tags: dict) -> str | None:
    return _highest(candidates, _stable)


def _pick_next(rng: Range, current: Version, candidates: Candidates, dist_tags: dict) -> str | None:
    return candidates[-1][1] if candidates else None


PICKERS: dict[UpdateMode, Callable[[Range, Version, Candidates, dict], str | None]] = {
    UpdateMode.DEFAULT: _pick_default,
    UpdateMode.MAJOR: _pick_major,
    UpdateMode.MINOR: _pick_minor,
    UpdateMode.PATCH: _pick_patch,
    UpdateMode.LATEST: _pick_latest,
    UpdateMode.NEWEST: _pick_newest,
    UpdateMode.NEXT: _pick_next,
}


def classify_diff(current: Version, target: Version) -> DiffSeverity:
    """Classify how far ``target`` is from ``current``."""
    if current == target:
        return DiffSeverity.NONE

    current_major, current_minor, current_patch = _release(current)
    target_major, target_minor, target_patch = _release(target)

    if current_major != target_major:
        return DiffSeverity.MAJOR
    if current_minor != target_minor:
        return DiffSeverity.MINOR
    if current_patch != target_patch:
        return DiffSeverity.PATCH
    return DiffSeverity.PRERELEASE


def evaluate(
    current_range: str,
    versions: Iterable[str],
    mode: UpdateMode | str = UpdateMode.DEFAULT,
    dist_tags: dict[str, str] | None = None,
) -> PolicyResult:
    """Choose a target version for ``current_range`` under ``mode``.

    Args:
        current_range: Declared range, e.g. ``^1.2.0``
        versions: Published version strings from the registry
        mode: Update policy
        dist_tags: Registry distribution tags (``latest``, ``next``, ...)

    Returns:
        PolicyResult; ``update`` is True only when the target is newer than
        the version the range currently resolves to
    """
    mode = UpdateMode(mode)
    candidates = collect_candidates(versions)
    latest = _highest(candidates, _stable) or (candidates[-1][1] if candidates else None)

    rng = parse_range(current_range)
    current = rng.min_version() if rng is not None else None
    if rng is None or current is None:
        return PolicyResult(None, None, latest, DiffSeverity.NONE, False)

    # prefer the registry's own spelling of the current version
    current_text = next((raw for parsed, raw in candidates if parsed == current), str(current))

    target_text = PICKERS[mode](rng, current, candidates, dist_tags or {})
    target = parse_version(target_text) if target_text else None

    if target is None or target <= current:
        return PolicyResult(current_text, current_text, latest, DiffSeverity.NONE, False)

    return PolicyResult(current_text, target_text, latest, classify_diff(current, target), True)
