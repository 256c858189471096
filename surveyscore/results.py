from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from surveyscore import models
from surveyscore.ranges import ScoreRange, pick_range
from surveyscore.scoring import Answer, Category, Question, ScoringOptions, compute_scores

NO_DESCRIPTION = "No description available"


@dataclass
class CategoryResult:
    id: Any
    title: str
    percent: float
    band: Optional[ScoreRange] = None

    @property
    def description(self) -> str:
        if self.band is not None and self.band.description:
            return self.band.description
        return NO_DESCRIPTION


@dataclass
class SurveyResults:
    categories: List[CategoryResult] = field(default_factory=list)
    total_percent: float = 0.0
    total_band: Optional[ScoreRange] = None

    @property
    def total_description(self) -> str:
        if self.total_band is not None and self.total_band.description:
            return self.total_band.description
        return NO_DESCRIPTION

    @property
    def category_percents(self) -> Dict[str, float]:
        return {c.title: c.percent for c in self.categories}


def summarize(
    categories: List[Category],
    answers: Iterable[Answer],
    ranges_by_category: Dict[Any, List[ScoreRange]],
    overall_ranges: List[ScoreRange],
    options: Optional[ScoringOptions] = None,
) -> SurveyResults:
    """Score one respondent and attach the matching band to every percentage."""
    scores = compute_scores(categories, answers, options)
    results = SurveyResults(total_percent=scores.total_percent)
    for category in categories:
        percent = scores.category_percents_by_id.get(category.id, 0.0)
        band = pick_range(percent, ranges_by_category.get(category.id, []))
        results.categories.append(CategoryResult(id=category.id, title=category.title, percent=percent, band=band))
    results.total_band = pick_range(scores.total_percent, overall_ranges)
    return results


# =========================
# Loading from the database
# =========================


def to_question(row: models.Question) -> Question:
    return Question(
        id=row.id,
        type=row.type,
        scorable=row.scorable,
        weight=row.weight,
        choice_labels=row.choices,
        choice_scores=row.choice_scores,
        max_score_fallback=row.max_score,
    )


def to_category(row: models.Category) -> Category:
    return Category(
        id=row.id,
        title=row.title,
        weight=row.weight,
        questions=tuple(to_question(q) for q in row.questions),
    )


def to_range(row: models.ScoreRange) -> ScoreRange:
    return ScoreRange(
        id=row.id,
        category_id=row.category_id,
        min_score=row.min_score,
        max_score=row.max_score,
        color=row.color,
        description=row.description,
    )


async def load_categories(session: AsyncSession, survey_id: int) -> List[Category]:
    stmt = (
        select(models.Category)
        .where(models.Category.survey_id == survey_id)
        .options(selectinload(models.Category.questions))
        .order_by(models.Category.order, models.Category.id)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return [to_category(row) for row in rows]


async def load_answers(session: AsyncSession, respondent_id: int) -> List[Answer]:
    stmt = select(models.Answer).where(models.Answer.respondent_id == respondent_id)
    rows = (await session.execute(stmt)).scalars().all()
    return [Answer(question_id=row.question_id, value=row.value) for row in rows]


async def load_ranges(session: AsyncSession, survey_id: int) -> Tuple[Dict[Any, List[ScoreRange]], List[ScoreRange]]:
    stmt = (
        select(models.ScoreRange)
        .where(models.ScoreRange.survey_id == survey_id)
        .order_by(models.ScoreRange.min_score, models.ScoreRange.id)
    )
    rows = (await session.execute(stmt)).scalars().all()
    by_category: Dict[Any, List[ScoreRange]] = {}
    overall: List[ScoreRange] = []
    for row in rows:
        score_range = to_range(row)
        if score_range.is_overall:
            overall.append(score_range)
        else:
            by_category.setdefault(score_range.category_id, []).append(score_range)
    return by_category, overall


async def respondent_results(
    session: AsyncSession, respondent: models.Respondent, options: Optional[ScoringOptions] = None
) -> Tuple[List[Category], SurveyResults]:
    categories = await load_categories(session, respondent.survey_id)
    answers = await load_answers(session, respondent.id)
    by_category, overall = await load_ranges(session, respondent.survey_id)
    return categories, summarize(categories, answers, by_category, overall, options)
