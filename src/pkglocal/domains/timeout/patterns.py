"""Pattern matching for the resilient timeout.

Classifies process output chunks against a configuration's error and
progress patterns, and holds the default pattern sets for the package
managers the Shell-RPC layer drives (pip, uv, npm, Maven).

Compiled patterns are cached process-wide. The cache key is the CONTENT
of a pattern set (each pattern's source text and flags), so two distinct
TimeoutConfig objects with identical patterns share one compiled entry.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .value_objects import (
    PatternAction,
    PatternActionType,
    PatternLike,
    TimeoutConfig,
)

logger = logging.getLogger(__name__)

PatternKey = Tuple[Tuple[str, int], ...]
CompiledPatterns = Tuple["re.Pattern[str]", ...]


def _pattern_key(patterns: Sequence[PatternLike]) -> PatternKey:
    return tuple(
        (p.pattern, p.flags) if isinstance(p, re.Pattern) else (p, 0)
        for p in patterns
    )


class PatternCache:
    """Bounded, lock-guarded cache of compiled pattern sets.

    Entries are populated once and never mutated afterwards, so readers
    only need the lock for the lookup itself. When full, the oldest entry
    is evicted.
    """

    def __init__(self, max_size: int = 100) -> None:
        self.max_size = max_size
        self._entries: "OrderedDict[PatternKey, CompiledPatterns]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, patterns: Sequence[PatternLike]) -> CompiledPatterns:
        key = _pattern_key(patterns)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self.hits += 1
                return cached

            compiled = tuple(
                p if isinstance(p, re.Pattern) else re.compile(p) for p in patterns
            )
            if len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = compiled
            self.misses += 1
            return compiled

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
            }


_pattern_cache = PatternCache()


class PatternMatcher:
    """Classify output chunks for one timeout configuration.

    Error patterns take precedence over progress patterns. A chunk that
    matches neither yields ``extend``, leaving the stage-specific effect
    to the caller.

    Examples:
        >>> config = TimeoutConfig(1000, 500, 500, 5000,
        ...                        progress_patterns=[r"Downloading"],
        ...                        error_patterns=[r"ERROR:"])
        >>> PatternMatcher(config).process_output("ERROR: boom").action
        <PatternActionType.TERMINATE: 'terminate'>
    """

    def __init__(self, config: TimeoutConfig) -> None:
        self.config = config
        self.debug = config.debug
        self._error_patterns = _pattern_cache.get(config.error_patterns)
        self._progress_patterns = _pattern_cache.get(config.progress_patterns)

    def process_output(self, data: str) -> PatternAction:
        """Determine the action for one output chunk."""
        for regex in self._error_patterns:
            if regex.search(data):
                if self.debug:
                    logger.debug(f"Error pattern matched: {regex.pattern}")
                return PatternAction(
                    action=PatternActionType.TERMINATE,
                    pattern=regex,
                    pattern_source=regex.pattern,
                )

        for regex in self._progress_patterns:
            if regex.search(data):
                if self.debug:
                    logger.debug(f"Progress pattern matched: {regex.pattern}")
                return PatternAction(
                    action=PatternActionType.RESET,
                    pattern=regex,
                    pattern_source=regex.pattern,
                )

        return PatternAction(action=PatternActionType.EXTEND)

    def matches_error_pattern(self, data: str) -> bool:
        return any(regex.search(data) for regex in self._error_patterns)

    def matches_progress_pattern(self, data: str) -> bool:
        return any(regex.search(data) for regex in self._progress_patterns)


@dataclass(frozen=True)
class PatternSet:
    """Progress and error patterns for one kind of tool output."""
    progress_patterns: Tuple[str, ...]
    error_patterns: Tuple[str, ...]


DEFAULT_PATTERNS: Dict[str, PatternSet] = {
    "PIP_INSTALL": PatternSet(
        progress_patterns=(
            r"Collecting .+",
            r"Downloading .+",
            r"Building wheel",
            r"Installing collected",
            r"Running setup\.py",
            r"Preparing metadata",
            r"Building wheels for collected packages",
            r"Successfully installed",
        ),
        error_patterns=(
            r"ERROR: .+",
            r"Failed building wheel",
            r"No matching distribution",
            r"Could not find a version",
            r"Package .+ requires .+",
            r"ERROR: pip's dependency resolver does not currently take into account",
        ),
    ),
    "UV": PatternSet(
        progress_patterns=(
            r"Resolved \d+ packages?",
            r"Downloaded .+",
            r"Installed \d+ packages?",
            r"Added \d+ packages?",
            r"Removed \d+ packages?",
            r"Updated \d+ packages?",
            r"[⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏]",  # spinner frames
            r"\d+/\d+ packages? cached",
        ),
        error_patterns=(
            r"error: .+",
            r"failed to .+",
            r"No solution found",
            r"Because .+ depends on .+",
            r"Cannot install .+",
        ),
    ),
    "NPM": PatternSet(
        progress_patterns=(
            r"npm WARN",
            r"added \d+ packages?",
            r"removed \d+ packages?",
            r"updated \d+ packages?",
            r"found \d+ vulnerabilities",
            r"audited \d+ packages?",
            r"up to date",
            r"Installing dependencies",
        ),
        error_patterns=(
            r"npm ERR!",
            r"ERESOLVE",
            r"ENOTFOUND",
            r"EACCES",
            r"EPERM",
            r"Could not resolve dependency",
            r"Package .+ not found",
        ),
    ),
    "PIP_UNINSTALL": PatternSet(
        progress_patterns=(
            r"Found existing installation",
            r"Uninstalling .+",
            r"Successfully uninstalled",
            r"Proceed \(Y/n\)?",
        ),
        error_patterns=(
            r"ERROR: .+",
            r"Cannot uninstall",
            r"No such file or directory",
        ),
    ),
    "MAVEN": PatternSet(
        progress_patterns=(
            r"\[INFO\] Downloading from",
            r"\[INFO\] Downloaded from",
            r"\[INFO\] Building .+",
            r"\[INFO\] Compiling \d+ source files",
            r"\[INFO\] BUILD SUCCESS",
        ),
        error_patterns=(
            r"\[ERROR\]",
            r"\[FATAL\]",
            r"BUILD FAILURE",
            r"Failed to execute goal",
        ),
    ),
    # Quick commands produce no progress output worth tracking
    "QUICK_COMMAND": PatternSet(
        progress_patterns=(),
        error_patterns=(
            r"command not found",
            r"not recognized",
            r"No such file or directory",
            r"Permission denied",
            r"Access denied",
        ),
    ),
}


def merge_patterns(*pattern_sets: str) -> PatternSet:
    """Concatenate named default pattern sets, dropping duplicates.

    Order is preserved: earlier sets are checked first.
    """
    progress: List[str] = []
    errors: List[str] = []
    for name in pattern_sets:
        patterns = DEFAULT_PATTERNS[name]
        progress.extend(p for p in patterns.progress_patterns if p not in progress)
        errors.extend(p for p in patterns.error_patterns if p not in errors)
    return PatternSet(progress_patterns=tuple(progress), error_patterns=tuple(errors))


def create_pattern_config(
    pattern_set: str,
    *,
    base_timeout: int,
    activity_extension: int,
    grace_timeout: int,
    absolute_maximum: int,
    debug: bool = False,
) -> TimeoutConfig:
    """Build a TimeoutConfig using one of the default pattern sets."""
    patterns = DEFAULT_PATTERNS[pattern_set]
    return TimeoutConfig(
        base_timeout=base_timeout,
        activity_extension=activity_extension,
        grace_timeout=grace_timeout,
        absolute_maximum=absolute_maximum,
        progress_patterns=patterns.progress_patterns,
        error_patterns=patterns.error_patterns,
        debug=debug,
    )


def validate_patterns(config: TimeoutConfig) -> Tuple[bool, List[str]]:
    """Check a configuration's patterns for compile errors and conflicts.

    A conflict is a pattern source that appears in both the progress and
    the error list; the error list would always win, so the progress
    entry is dead.

    Returns:
        Tuple of (valid, errors).
    """
    errors: List[str] = []

    for label, patterns in (
        ("Progress", config.progress_patterns),
        ("Error", config.error_patterns),
    ):
        for index, pattern in enumerate(patterns):
            if isinstance(pattern, re.Pattern):
                continue
            try:
                re.compile(pattern)
            except (re.error, TypeError) as e:
                errors.append(f"{label} pattern {index} is invalid: {e}")

    progress_sources = {source for source, _ in _pattern_key(config.progress_patterns)}
    for source, _ in _pattern_key(config.error_patterns):
        if source in progress_sources:
            errors.append(
                f'Pattern conflict: "{source}" is both progress and error pattern'
            )

    return (not errors, errors)


def clear_pattern_cache() -> None:
    """Drop every compiled pattern set (mainly for tests)."""
    _pattern_cache.clear()


def pattern_cache_stats() -> Dict[str, int]:
    return _pattern_cache.stats()
