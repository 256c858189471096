import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

# =========================
# Score ranges (bands)
# =========================


@dataclass(frozen=True)
class ScoreRange:
    min_score: int
    max_score: int
    description: Optional[str] = None
    color: Optional[str] = None
    category_id: Any = None
    id: Any = None

    @property
    def is_overall(self) -> bool:
        return self.category_id is None


def round_percent(percentage: float) -> int:
    """Round half up, so 49.5 -> 50 and 50.5 -> 51."""
    return int(math.floor(percentage + 0.5))


def pick_range(percentage: float, ranges: Optional[Iterable[Any]]) -> Optional[Any]:
    """
    First range whose [min_score, max_score] contains round(percentage).

    Ranges are checked in the order given; callers sort by min_score.
    Both ends are inclusive. Returns None when nothing matches.
    """
    if not ranges:
        return None
    try:
        value = round_percent(float(percentage))
    except (TypeError, ValueError, OverflowError):
        return None
    for score_range in ranges:
        if score_range.min_score <= value <= score_range.max_score:
            return score_range
    return None


# =========================
# Authoring checks
# =========================


def validate_bounds(min_score: int, max_score: int) -> None:
    if min_score < 0 or max_score > 100:
        raise ValueError("Scores must be between 0 and 100")
    if min_score >= max_score:
        raise ValueError("Minimum score must be less than maximum score")


def find_overlap(min_score: int, max_score: int, existing: Iterable[Any]) -> Optional[Any]:
    """Return the first existing range that overlaps [min_score, max_score)."""
    for r in existing:
        if (
            (r.min_score <= min_score < r.max_score)
            or (r.min_score < max_score <= r.max_score)
            or (min_score <= r.min_score and max_score >= r.max_score)
        ):
            return r
    return None


def has_gaps(ranges: Sequence[Any]) -> bool:
    """True unless the ranges cover every integer percentage from 0 to 100."""
    if not ranges:
        return True
    ordered: List[Any] = sorted(ranges, key=lambda r: r.min_score)
    if ordered[0].min_score > 0:
        return True
    for current, following in zip(ordered, ordered[1:]):
        if current.max_score < following.min_score - 1:
            return True
    return max(r.max_score for r in ordered) < 100
