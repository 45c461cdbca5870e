"""
File-scope overlap between chains.

Chains declare the files they will touch as glob patterns. Two chains whose
patterns can claim the same file are likely to produce merge conflicts if
worked on at the same time.

Comparing two *patterns* (rather than a pattern and a path) has no cheap
exact answer. The check here is: either pattern matches the other as if it
were a path, or either matches a concrete stand-in built from the other
("**" -> "deep", "*" -> "x", "?" -> "a"). That catches the usual
directory-containment cases; it can miss overlaps between two patterns
that each wildcard a different segment.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

from taskchain.lib.config import TaskConfig
from taskchain.tasks.chains import ChainStore
from taskchain.tasks.models import Chain

logger = logging.getLogger(__name__)

GLOBSTAR_STANDIN = "deep"


@lru_cache(maxsize=512)
def _compile_glob(pattern: str) -> re.Pattern:
    """Translate a path glob to an anchored regex.

    "**/" matches zero or more directories, "**" anything (slashes
    included), "*" anything within one segment, "?" one non-slash char.
    """
    parts = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


def match_glob(pattern: str, path: str) -> bool:
    """True if path matches the glob pattern."""
    return bool(_compile_glob(pattern).match(path))


def materialize_pattern(pattern: str) -> str:
    """A concrete-looking path that pattern matches."""
    segments = []
    for segment in pattern.split("/"):
        if segment == "**":
            segments.append(GLOBSTAR_STANDIN)
        else:
            segments.append(segment.replace("*", "x").replace("?", "a"))
    return "/".join(segments)


def matches_pattern(pattern: str, candidate: str) -> bool:
    """Glob match, plus: "dir/**" also claims any candidate starting with "dir".

    The prefix test is on the raw string, so "src/api/**" claims "src/apiv2/x" too.
    """
    if not pattern or not candidate:
        return False

    if match_glob(pattern, candidate):
        return True

    if pattern.endswith("/**"):
        base = pattern[:-3]
        if candidate.startswith(base):
            return True

    return False


def patterns_overlap(pattern_a: str, pattern_b: str) -> bool:
    """Whether two patterns may claim a common file. Symmetric."""
    if not pattern_a or not pattern_b:
        return False

    if matches_pattern(pattern_a, pattern_b) or matches_pattern(pattern_b, pattern_a):
        return True

    concrete_a = materialize_pattern(pattern_a)
    concrete_b = materialize_pattern(pattern_b)
    return matches_pattern(pattern_a, concrete_b) or matches_pattern(pattern_b, concrete_a)


def has_overlap(scope_a: list[str] | None, scope_b: list[str] | None) -> bool:
    """True if any pattern of scope_a overlaps any pattern of scope_b.

    An empty scope never conflicts: no declared scope means no known conflict.
    """
    if not scope_a or not scope_b:
        return False
    return any(patterns_overlap(a, b) for a in scope_a for b in scope_b)


def get_overlapping_patterns(scope_a: list[str] | None, scope_b: list[str] | None) -> list[str]:
    """Patterns from either side that take part in at least one overlap.

    First-seen order, no duplicates.
    """
    overlaps: dict[str, None] = {}
    for a in scope_a or []:
        for b in scope_b or []:
            if patterns_overlap(a, b):
                overlaps.setdefault(a)
                overlaps.setdefault(b)
    return list(overlaps)


def resolve_file_scope(chain: Chain) -> list[str]:
    """The chain's declared scope, or the union of its tasks' scopes."""
    if chain.file_scope is not None:
        return list(chain.file_scope)

    merged: dict[str, None] = {}
    for task in chain.tasks:
        for pattern in task.file_scope or []:
            merged.setdefault(pattern)
    return list(merged)


def find_conflicting_chains(
    chain_id: str,
    project_root: Path,
    config: TaskConfig | None = None,
) -> list[Chain]:
    """Chains whose file scope overlaps chain_id's.

    Returns [] when chain_id doesn't exist or has no scope.
    """
    chains = ChainStore(project_root, config).get_all_chains()
    target = next((c for c in chains if c.id == chain_id), None)
    if target is None:
        logger.debug(f"[SCOPE] {chain_id} not found")
        return []

    target_scope = resolve_file_scope(target)
    if not target_scope:
        return []

    conflicts = []
    for chain in chains:
        if chain.id == chain_id:
            continue
        other_scope = resolve_file_scope(chain)
        if has_overlap(target_scope, other_scope):
            logger.info(
                f"[SCOPE] {chain_id} overlaps {chain.id}: "
                f"{', '.join(get_overlapping_patterns(target_scope, other_scope))}"
            )
            conflicts.append(chain)

    return conflicts
