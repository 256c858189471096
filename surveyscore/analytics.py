from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional

from surveyscore.choices import find_choice_index, parse_labels, split_selection, to_text
from surveyscore.scoring import MULTI_CHOICE, RATING, SINGLE_CHOICE, scoring_kind

DEFAULT_RATING_SCALE = 5
MAX_RATING_SCALE = 100


@dataclass
class QuestionStats:
    question_id: Any
    prompt: str
    kind: Optional[str]
    labels: List[str] = field(default_factory=list)
    counts: List[int] = field(default_factory=list)
    answered: int = 0
    average: Optional[float] = None


def parse_day(value: Optional[str]) -> Optional[date]:
    """``YYYY-MM-DD`` or blank; anything else raises ValueError."""
    if value is None or not value.strip():
        return None
    return date.fromisoformat(value.strip())


def filter_by_date(respondents: Iterable[Any], start: Optional[date] = None, end: Optional[date] = None) -> List[Any]:
    """Keep respondents completed within [start, end], both whole days."""
    lower = datetime.combine(start, time.min) if start else None
    upper = datetime.combine(end, time.max) if end else None
    kept = []
    for respondent in respondents:
        completed = respondent.completed_at
        if completed is None:
            continue
        if lower and completed < lower:
            continue
        if upper and completed > upper:
            continue
        kept.append(respondent)
    return kept


def responses_by_date(respondents: Iterable[Any]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for respondent in respondents:
        if respondent.completed_at is None:
            continue
        day = respondent.completed_at.date().isoformat()
        counts[day] = counts.get(day, 0) + 1
    return dict(sorted(counts.items()))


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _rating_value(value: Any) -> Optional[int]:
    value = _first(value)
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(str(value).strip()) if isinstance(value, str) else float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _rating_scale(max_score: Any) -> int:
    try:
        scale = int(max_score) if max_score else DEFAULT_RATING_SCALE
    except (TypeError, ValueError, OverflowError):
        scale = DEFAULT_RATING_SCALE
    return min(max(scale, 1), MAX_RATING_SCALE)


def question_stats(question: Any, values: List[Any]) -> QuestionStats:
    """
    Distribution of the answers given to one question.

    Choice questions count each label (every selected label for
    multi-choice); ratings count each whole value from 1 up to the
    question's max score, 5 when unset, and carry the mean rating.
    """
    kind = scoring_kind(question.type)
    stats = QuestionStats(question_id=question.id, prompt=question.prompt, kind=kind, answered=len(values))

    labels = parse_labels(question.choices)
    if kind in (SINGLE_CHOICE, MULTI_CHOICE) or (kind == RATING and labels):
        stats.labels = labels
        stats.counts = [0] * len(labels)
        for value in values:
            picked = split_selection(value) if kind == MULTI_CHOICE else [to_text(_first(value))]
            for label in picked:
                index = find_choice_index(labels, label)
                if index >= 0:
                    stats.counts[index] += 1
        if kind != RATING:
            return stats

    if kind == RATING:
        ratings = [r for r in (_rating_value(v) for v in values) if r is not None]
        if not labels:
            scale = _rating_scale(question.max_score)
            stats.labels = [str(i) for i in range(1, scale + 1)]
            stats.counts = [0] * scale
            for rating in ratings:
                if 1 <= rating <= scale:
                    stats.counts[rating - 1] += 1
        stats.average = round(sum(ratings) / len(ratings), 2) if ratings else None

    return stats


def survey_stats(questions: Iterable[Any], answers: Iterable[Any]) -> List[QuestionStats]:
    """Per-question distributions; ``answers`` are rows with question_id and value."""
    values_by_question: Dict[Any, List[Any]] = {}
    for answer in answers:
        if answer.value is None:
            continue
        values_by_question.setdefault(answer.question_id, []).append(answer.value)
    return [question_stats(q, values_by_question.get(q.id, [])) for q in questions if scoring_kind(q.type) is not None]
