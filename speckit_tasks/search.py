"""Full-text task search with pattern and typo tolerant matching.

Three modes are supported:

``exact``
    Literal substring match.
``regex``
    Regular expression match. A pattern that fails to compile falls back to
    a literal match and the problem is reported in ``warnings``; a valid
    pattern that matches nothing also gets a literal attempt.
``fuzzy``
    Literal match first, then approximate matching per whitespace token
    using optimal string alignment distance (an adjacent transposition
    costs one edit).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from .errors import InvalidQueryError
from .models import Task, percentage
from .render import STATUS_ICONS
from .tasks_logging import get_logger

logger = get_logger("search")

SEARCH_FIELDS = ("description", "phase", "type", "tags")
SEARCH_MODES = ("exact", "regex", "fuzzy")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100
DEFAULT_THRESHOLD = 70
EXCERPT_RADIUS = 20

SCORE_EXACT = 100
SCORE_PREFIX = 90
SCORE_SUBSTRING = 75
SCORE_PATTERN = 60


@dataclass(slots=True)
class SearchOptions:
    query: str
    fields: Sequence[str] = ("description",)
    mode: str = "exact"
    case_sensitive: bool = False
    threshold: int = DEFAULT_THRESHOLD
    limit: Optional[int] = None

    def search_fields(self) -> Tuple[str, ...]:
        if "all" in self.fields:
            return SEARCH_FIELDS
        return tuple(dict.fromkeys(self.fields))

    def effective_limit(self) -> int:
        return min(self.limit or DEFAULT_LIMIT, MAX_LIMIT)

    def validate(self) -> None:
        if not self.query:
            raise InvalidQueryError("Search query must not be empty")
        if self.mode not in SEARCH_MODES:
            raise InvalidQueryError(
                f"Invalid search mode '{self.mode}'. Expected one of: {', '.join(SEARCH_MODES)}"
            )
        unknown = [name for name in self.fields if name != "all" and name not in SEARCH_FIELDS]
        if unknown or not self.fields:
            raise InvalidQueryError(
                f"Invalid search fields: {', '.join(unknown) or '(none)'}. "
                f"Expected any of: {', '.join(SEARCH_FIELDS)}, all"
            )
        if not 0 <= self.threshold <= 100:
            raise InvalidQueryError("threshold must be between 0 and 100")
        if self.limit is not None and self.limit < 0:
            raise InvalidQueryError("limit must be zero or positive")


@dataclass(slots=True)
class SearchMatch:
    """Where and how one field matched."""

    field: str
    matched_text: str
    excerpt: str
    kind: str
    score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "matched_text": self.matched_text,
            "excerpt": self.excerpt,
            "kind": self.kind,
            "score": self.score,
        }


@dataclass(slots=True)
class SearchHit:
    task: Task
    score: int
    matches: List[SearchMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task.to_dict(),
            "score": self.score,
            "matches": [match.to_dict() for match in self.matches],
        }


@dataclass(slots=True)
class SearchResult:
    hits: List[SearchHit]
    total_matches: int
    total_tasks: int
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": [hit.to_dict() for hit in self.hits],
            "total_matches": self.total_matches,
            "total_tasks": self.total_tasks,
            "warnings": list(self.warnings),
        }


def search_tasks(tasks: List[Task], options: SearchOptions) -> SearchResult:
    """Rank ``tasks`` against ``options.query``.

    A task scores its best field score; hits are ordered by score, ties keep
    document order, and the result is cut to the effective limit.
    """
    options.validate()
    warnings: List[str] = []
    pattern = _compile_pattern(options, warnings) if options.mode == "regex" else None

    hits: List[SearchHit] = []
    for task in tasks:
        matches = []
        for name in options.search_fields():
            value = field_value(task, name)
            if not value:
                continue
            match = _match_field(name, value, options, pattern)
            if match is not None:
                matches.append(match)
        if matches:
            hits.append(SearchHit(task, max(match.score for match in matches), matches))

    hits.sort(key=lambda hit: -hit.score)
    logger.debug("Search %r matched %d of %d tasks", options.query, len(hits), len(tasks))
    return SearchResult(
        hits=hits[: options.effective_limit()],
        total_matches=len(hits),
        total_tasks=len(tasks),
        warnings=warnings,
    )


def field_value(task: Task, name: str) -> str:
    if name == "description":
        return task.description
    if name == "phase":
        return task.metadata.phase or ""
    if name == "type":
        return task.metadata.type or ""
    return " ".join(task.metadata.tags)


def _compile_pattern(options: SearchOptions, warnings: List[str]) -> Optional[Pattern[str]]:
    flags = 0 if options.case_sensitive else re.IGNORECASE
    try:
        return re.compile(options.query, flags)
    except re.error as exc:
        message = f"Invalid regular expression '{options.query}' ({exc}); using literal match instead"
        logger.warning(message)
        warnings.append(message)
        return None


def _match_field(
    name: str,
    value: str,
    options: SearchOptions,
    pattern: Optional[Pattern[str]],
) -> Optional[SearchMatch]:
    if pattern is not None:
        found = next((m for m in pattern.finditer(value) if m.group(0)), None)
        if found is not None:
            return SearchMatch(
                name, found.group(0), build_excerpt(value, found.start(), len(found.group(0))),
                "regex", SCORE_PATTERN,
            )

    literal = _literal_match(name, value, options)
    if literal is not None or options.mode != "fuzzy":
        return literal

    return _fuzzy_match(name, value, options)


def _literal_match(name: str, value: str, options: SearchOptions) -> Optional[SearchMatch]:
    # Match on the original text so offsets stay valid when case mapping changes length
    flags = 0 if options.case_sensitive else re.IGNORECASE
    found = re.search(re.escape(options.query), value, flags)
    if found is None:
        return None

    start, end = found.span()
    if start == 0 and end == len(value):
        kind, score = "exact", SCORE_EXACT
    elif start == 0:
        kind, score = "prefix", SCORE_PREFIX
    else:
        kind, score = "substring", SCORE_SUBSTRING
    return SearchMatch(name, found.group(0), build_excerpt(value, start, end - start), kind, score)


def _fuzzy_match(name: str, value: str, options: SearchOptions) -> Optional[SearchMatch]:
    needle = options.query if options.case_sensitive else options.query.lower()
    best: Optional[Tuple[int, int, str]] = None

    for token in re.finditer(r"\S+", value):
        text = token.group(0)
        candidate = text if options.case_sensitive else text.lower()
        score = max(
            similarity(candidate, needle, options.threshold),
            similarity(candidate[: len(needle)], needle, options.threshold),
        )
        if score >= options.threshold and (best is None or score > best[0]):
            best = (score, token.start(), text)

    if best is None:
        return None

    score, index, text = best
    # half-up of similarity / 2
    return SearchMatch(name, text, build_excerpt(value, index, len(text)), "fuzzy", (score + 1) // 2)


def osa_distance(source: str, target: str, max_distance: Optional[int] = None) -> int:
    """Optimal string alignment distance between ``source`` and ``target``.

    With ``max_distance`` set, returns ``max_distance + 1`` as soon as the
    distance is known to exceed the bound.
    """
    if source == target:
        return 0
    rows, cols = len(source), len(target)
    if max_distance is not None and abs(rows - cols) > max_distance:
        return max_distance + 1

    previous2: List[int] = []
    previous = list(range(cols + 1))
    for i in range(1, rows + 1):
        current = [i] + [0] * cols
        for j in range(1, cols + 1):
            cost = 0 if source[i - 1] == target[j - 1] else 1
            current[j] = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            )
            if (
                i > 1 and j > 1
                and source[i - 1] == target[j - 2]
                and source[i - 2] == target[j - 1]
            ):
                current[j] = min(current[j], previous2[j - 2] + 1)

        # later rows grow from the last two, so both above the bound ends it
        if max_distance is not None and min(current) > max_distance and min(previous) > max_distance:
            return max_distance + 1
        previous2, previous = previous, current

    distance = previous[cols]
    if max_distance is not None and distance > max_distance:
        return max_distance + 1
    return distance


def similarity(candidate: str, query: str, threshold: int = 0) -> int:
    """Percentage similarity; returns 0 early when ``threshold`` is out of reach."""
    longest = max(len(candidate), len(query))
    if longest == 0:
        return 100

    bound = max_edits(longest, threshold)
    if bound < 0:
        return 0
    distance = osa_distance(candidate, query, bound)
    if distance > bound:
        return 0
    return percentage(longest - distance, longest)


def max_edits(length: int, threshold: int) -> int:
    """Largest edit distance still scoring at least ``threshold``, or -1."""
    for distance in range(length, -1, -1):
        if percentage(length - distance, length) >= threshold:
            return distance
    return -1


def build_excerpt(text: str, index: int, length: int) -> str:
    """Context around a match with the match wrapped in ``**``."""
    start = max(0, index - EXCERPT_RADIUS)
    end = min(len(text), index + length + EXCERPT_RADIUS)
    before = ("..." if start > 0 else "") + text[start:index]
    after = text[index + length:end] + ("..." if end < len(text) else "")
    return f"{before}**{text[index:index + length]}**{after}"


def format_search_report(result: SearchResult, options: SearchOptions) -> str:
    lines = [
        "# Task Search Results",
        "",
        f'**Query:** "{options.query}"',
        f"**Search fields:** {', '.join(options.fields)}",
        f"**Options:** {_describe_options(options)}",
        "",
    ]
    for warning in result.warnings:
        lines.append(f"> Warning: {warning}")
    if result.warnings:
        lines.append("")

    count = len(result.hits)
    lines.append(
        f"**Results:** {count} task{'' if count == 1 else 's'} found "
        f"(out of {result.total_tasks} total)"
    )
    lines.append("")

    if not result.hits:
        lines.append("*No tasks match your search query.*")
        if options.mode != "fuzzy":
            lines.append("")
            lines.append("*Tip: Try fuzzy mode for typo tolerance.*")
        return "\n".join(lines) + "\n"

    lines.append("---")
    lines.append("")
    for hit in result.hits:
        task = hit.task
        lines.append(f"## {STATUS_ICONS[task.status]} {task.task_id}: {task.description}")
        lines.append("")
        lines.append(f"**Relevance:** {hit.score}%")
        lines.append("")
        details = [
            f"{label}: {value}"
            for label, value in (
                ("phase", task.metadata.phase),
                ("type", task.metadata.type),
                ("priority", task.metadata.priority),
            )
            if value
        ]
        if details:
            lines.append(f"*{' | '.join(details)}*")
            lines.append("")
        lines.append("**Matches:**")
        lines.extend(f"- **{match.field}:** {match.excerpt}" for match in hit.matches)
        lines.append("")

    return "\n".join(lines)


def _describe_options(options: SearchOptions) -> str:
    described = []
    if options.mode == "fuzzy":
        described.append(f"fuzzy ({options.threshold}% threshold)")
    elif options.mode == "regex":
        described.append("regex")
    if options.case_sensitive:
        described.append("case-sensitive")
    return ", ".join(described) or "exact match"
