import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from surveyscore.choices import find_choice_index, parse_labels, parse_scores, split_selection, to_text

logger = logging.getLogger(__name__)

# =========================
# Question types
# =========================

SINGLE_CHOICE = "single-choice"
MULTI_CHOICE = "multi-choice"
RATING = "rating"

QUESTION_TYPES = {
    "single-choice": SINGLE_CHOICE,
    "single": SINGLE_CHOICE,
    "radio": SINGLE_CHOICE,
    "select": SINGLE_CHOICE,
    "multi-choice": MULTI_CHOICE,
    "multi": MULTI_CHOICE,
    "checkbox": MULTI_CHOICE,
    "rating": RATING,
    "scale": RATING,
}


def scoring_kind(question_type: Optional[str]) -> Optional[str]:
    """Map a stored question type to the scoring kind, or None if it never scores."""
    return QUESTION_TYPES.get((question_type or "").strip().lower())


# =========================
# Inputs and outputs
# =========================


@dataclass(frozen=True)
class Question:
    id: Any
    type: str = SINGLE_CHOICE
    scorable: Optional[bool] = True
    weight: Optional[float] = None
    choice_labels: Any = None
    choice_scores: Any = None
    max_score_fallback: Optional[float] = None


@dataclass(frozen=True)
class Category:
    id: Any
    title: str
    weight: Optional[float] = None
    questions: Tuple[Question, ...] = ()


@dataclass(frozen=True)
class Answer:
    question_id: Any
    value: Any = None


@dataclass(frozen=True)
class ScoringOptions:
    treat_missing_as_zero: bool = True
    use_question_weights: bool = False
    use_category_weights: bool = False


@dataclass
class ScoreResult:
    category_percents: Dict[str, float] = field(default_factory=dict)
    category_percents_by_id: Dict[Any, float] = field(default_factory=dict)
    total_percent: float = 0.0


# =========================
# Per-question scoring
# =========================


def _effective_weight(weight: Optional[float], enabled: bool) -> float:
    if not enabled or weight is None:
        return 1.0
    try:
        weight = float(weight)
    except (TypeError, ValueError, OverflowError):
        return 1.0
    return weight if math.isfinite(weight) and weight > 0 else 1.0


def _score_at(scores: List[float], index: int) -> float:
    if 0 <= index < len(scores):
        return scores[index]
    return 0.0


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def resolve_raw_score(question: Question, answer: Optional[Answer]) -> float:
    """
    Raw score for one answered question.

    single-choice: score at the position of the picked label.
    multi-choice: sum of the scores of every selected label.
    rating: the numeric answer itself.
    Anything unresolvable scores 0.
    """
    if answer is None:
        return 0.0

    kind = scoring_kind(question.type)
    if kind == RATING:
        picked = _first(answer.value)
        if isinstance(picked, bool) or picked is None:
            return 0.0
        try:
            number = float(str(picked).strip()) if isinstance(picked, str) else float(picked)
        except (TypeError, ValueError, OverflowError):
            return 0.0
        return number if math.isfinite(number) else 0.0

    labels = parse_labels(question.choice_labels)
    scores = parse_scores(question.choice_scores)

    if kind == MULTI_CHOICE:
        total = 0.0
        for label in split_selection(answer.value):
            index = find_choice_index(labels, label)
            if index >= 0:
                total += _score_at(scores, index)
        return total

    if kind == SINGLE_CHOICE:
        picked = _first(answer.value)
        if picked is None:
            return 0.0
        index = find_choice_index(labels, to_text(picked))
        if index < 0:
            logger.debug("Choice %r not found for question %s: %r", picked, question.id, labels)
            return 0.0
        return _score_at(scores, index)

    return 0.0


def question_bounds(question: Question) -> Tuple[float, float]:
    """(min, max) used to normalize a question's raw score."""
    scores = parse_scores(question.choice_scores)
    if scores:
        return min(scores), max(scores)
    fallback = question.max_score_fallback
    try:
        fallback = float(fallback) if fallback is not None else 1.0
    except (TypeError, ValueError, OverflowError):
        fallback = 1.0
    if not math.isfinite(fallback):
        fallback = 1.0
    return 0.0, max(1.0, fallback)


def normalize(raw: float, q_min: float, q_max: float) -> float:
    """
    Rescale ``raw`` into [0, 1].

    A degenerate range (q_min == q_max) scores 1 for anything above it, else 0.
    """
    if q_max == q_min:
        return 1.0 if raw > q_min else 0.0
    value = (raw - q_min) / (q_max - q_min)
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


def _is_eligible(question: Question) -> bool:
    return question.scorable is not False and scoring_kind(question.type) is not None


# =========================
# Aggregation
# =========================


def compute_scores(
    categories: Iterable[Category],
    answers: Iterable[Answer],
    options: Optional[ScoringOptions] = None,
) -> ScoreResult:
    """
    Percent score (0-100, 2 decimals) per category and overall.

    Each eligible question contributes its normalized score; a category is
    the (optionally weighted) mean of its questions, the total the
    (optionally weighted) mean of its categories. Never raises on bad data.
    """
    options = options or ScoringOptions()
    by_question: Dict[Any, Answer] = {}
    for answer in answers:
        by_question[answer.question_id] = answer

    result = ScoreResult()
    total_accum = 0.0
    total_weight = 0.0

    for category in categories:
        cat_accum = 0.0
        cat_weight = 0.0

        for question in category.questions or ():
            if question is None or not _is_eligible(question):
                continue
            answer = by_question.get(question.id)
            if answer is None and not options.treat_missing_as_zero:
                continue

            raw = resolve_raw_score(question, answer)
            q_min, q_max = question_bounds(question)
            weight = _effective_weight(question.weight, options.use_question_weights)
            cat_accum += normalize(raw, q_min, q_max) * weight
            cat_weight += weight

        cat_percent = (cat_accum / cat_weight) * 100 if cat_weight > 0 else 0.0
        result.category_percents[category.title] = round(cat_percent, 2)
        result.category_percents_by_id[category.id] = round(cat_percent, 2)

        category_weight = _effective_weight(category.weight, options.use_category_weights)
        total_accum += cat_percent * category_weight
        total_weight += category_weight

    result.total_percent = round(total_accum / total_weight, 2) if total_weight > 0 else 0.0
    return result


def question_from_mapping(data: Mapping[str, Any]) -> Question:
    """Build a Question from a plain dict such as a stored row or JSON payload."""
    return Question(
        id=data.get("id"),
        type=data.get("type") or "",
        scorable=data.get("scorable", True),
        weight=data.get("weight"),
        choice_labels=data.get("choices", data.get("choice_labels")),
        choice_scores=data.get("choice_scores"),
        max_score_fallback=data.get("max_score"),
    )


def category_from_mapping(data: Mapping[str, Any]) -> Category:
    return Category(
        id=data.get("id"),
        title=data.get("title") or "",
        weight=data.get("weight"),
        questions=tuple(question_from_mapping(q) for q in data.get("questions") or ()),
    )
