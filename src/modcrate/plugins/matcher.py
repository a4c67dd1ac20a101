"""IdentityMatcher: map a loaded plugin to its most likely remote package.

Local plugins carry an id and a display name but no reliable remote identity,
so every candidate package is scored from independent naming signals. A match
needs at least ``MIN_MATCH_SCORE`` points and a clear lead: when a second
eligible candidate lands within ``AMBIGUITY_THRESHOLD`` points of the best,
nothing is returned. A wrong auto-match is worse than no match.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from os.path import commonprefix
from typing import TYPE_CHECKING

from .models import LocalPlugin, MatchReport, MatchResult

if TYPE_CHECKING:
    from modcrate.catalog.models import Package

logger = logging.getLogger(__name__)

MIN_MATCH_SCORE = 60
AMBIGUITY_THRESHOLD = 5

Scorer = Callable[["Package", str, str], MatchReport]


def normalize(text: str | None) -> str:
    """Lowercase and drop everything that is not a letter or digit."""
    return "".join(c.lower() for c in text or "" if c.isalnum())


def tokenize(text: str | None) -> set[str]:
    """Split on camelCase and non-alphanumeric boundaries; keep tokens > 2 chars."""
    tokens: set[str] = set()
    if not text:
        return tokens
    start = 0
    for i in range(1, len(text)):
        prev, cur = text[i - 1], text[i]
        if (prev.islower() and cur.isupper()) or not cur.isalnum():
            piece = normalize(text[start:i])
            if len(piece) > 2:
                tokens.add(piece)
            start = i + 1 if not cur.isalnum() else i
    piece = normalize(text[start:])
    if len(piece) > 2:
        tokens.add(piece)
    return tokens


def _website_segment(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1] if url else ""


def score_match(package: Package, local_id: str, local_name: str) -> MatchReport:
    report = MatchReport()

    n_id = normalize(local_id)
    n_name = normalize(local_name)
    n_remote = normalize(package.short_name)
    n_namespace = normalize(package.namespace)

    # display name vs package name
    if n_name and n_name == n_remote:
        report.add(70, "exact name match")
    elif len(n_name) > 5 and len(n_remote) > 5:
        longer = max(len(n_name), len(n_remote))
        if len(commonprefix([n_name, n_remote])) / longer >= 0.75:
            report.add(60, "common name prefix")
        elif n_remote in n_name or n_name in n_remote:
            report.add(50, "name containment")

    if n_id and n_id == n_remote:
        report.add(80, "id equals package name")

    if n_remote and n_remote in n_id:
        # an empty namespace is a substring of every id
        if n_namespace and n_namespace in n_id:
            report.add(100, "id contains namespace and name")
        elif len(n_remote) >= 12:
            report.add(65, "id contains long package name")
        else:
            report.add(50, "id contains package name")

    if ("." in local_id or "-" in local_id) and n_namespace and n_namespace not in n_id:
        report.add(-100, f"namespaced id lacks namespace '{package.namespace}'")

    local_tokens = tokenize(local_name)
    remote_tokens = tokenize(package.short_name)
    shared = local_tokens & remote_tokens
    larger = max(len(local_tokens), len(remote_tokens))
    if len(shared) >= 2 or (len(shared) == 1 and larger <= 2):
        ratio = len(shared) / larger
        if ratio >= 0.8:
            report.add(75, f"token overlap {ratio:.2f}")
        elif ratio >= 0.65:
            report.add(65, f"token overlap {ratio:.2f}")
        elif ratio >= 0.5:
            report.add(55, f"token overlap {ratio:.2f}")

    n_segment = normalize(_website_segment(package.website_url))
    if n_segment and n_name:
        if n_segment == n_name:
            report.add(70, "website matches name")
        elif len(n_name) > 4 and (n_name in n_segment or n_segment in n_name):
            report.add(70, "website contains name")

    return report


def rank_candidates(
    local_id: str,
    local_name: str,
    candidates: Iterable[Package],
    scorer: Scorer = score_match,
) -> list[tuple[Package, MatchReport]]:
    """Every candidate with its report, best first."""
    scored = [(pkg, scorer(pkg, local_id, local_name)) for pkg in candidates]
    scored.sort(key=lambda pair: pair[1].total, reverse=True)
    return scored


def _select(
    local_id: str,
    local_name: str,
    candidates: Iterable[Package],
    scorer: Scorer,
) -> tuple[Package, MatchReport] | None:
    best: tuple[Package, MatchReport] | None = None
    ambiguous = False
    for pkg, report in rank_candidates(local_id, local_name, candidates, scorer):
        if report.total < MIN_MATCH_SCORE:
            break
        if best is None:
            best = (pkg, report)
            continue
        if pkg.full_name == best[0].full_name:
            continue
        if best[1].total - report.total <= AMBIGUITY_THRESHOLD:
            ambiguous = True
            logger.warning(
                "ambiguous match for %s (%s): %s (%d) vs %s (%d)",
                local_name,
                local_id,
                best[0].full_name,
                best[1].total,
                pkg.full_name,
                report.total,
            )
        break

    if best is None or ambiguous:
        return None
    for line in best[1].lines():
        logger.debug("  %s", line)
    logger.info("matched %s (%s) -> %s (score %d)", local_name, local_id, best[0].full_name, best[1].total)
    return best


def find_best_match(
    local_id: str,
    local_name: str,
    candidates: Iterable[Package],
    scorer: Scorer = score_match,
) -> Package | None:
    selected = _select(local_id, local_name, candidates, scorer)
    return selected[0] if selected else None


def _pinned(plugin: LocalPlugin, full_name: str, packages: list[Package]) -> MatchResult | None:
    wanted = full_name.lower()
    for pkg in packages:
        if pkg.full_name.lower() == wanted:
            report = MatchReport()
            report.add(0, f"manual mapping to {pkg.full_name}")
            return MatchResult(plugin=plugin, package=pkg, report=report, pinned=True)
    logger.warning("mapping for %s points at unknown package %s", plugin.id, full_name)
    return None


def match_all(
    plugins: Iterable[LocalPlugin],
    packages: list[Package],
    mod_map: dict[str, str] | None = None,
    scorer: Scorer = score_match,
) -> dict[str, MatchResult]:
    """Match every loaded plugin; manual mappings win over scoring."""
    mapping = {k.lower(): v for k, v in (mod_map or {}).items()}
    results: dict[str, MatchResult] = {}
    for plugin in plugins:
        pinned_name = mapping.get(plugin.id.lower())
        if pinned_name:
            result = _pinned(plugin, pinned_name, packages)
            if result is not None:
                results[plugin.id] = result
                continue
        selected = _select(plugin.id, plugin.name, packages, scorer)
        if selected is not None:
            results[plugin.id] = MatchResult(plugin=plugin, package=selected[0], report=selected[1])
    return results
