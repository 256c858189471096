from datetime import date, datetime
from types import SimpleNamespace

import pytest

from surveyscore.analytics import filter_by_date, parse_day, question_stats, responses_by_date, survey_stats


def question(qid=1, type="single-choice", choices=None, max_score=None, prompt="Q"):
    return SimpleNamespace(id=qid, type=type, prompt=prompt, choices=choices, max_score=max_score)


def respondent(completed_at):
    return SimpleNamespace(completed_at=completed_at)


def test_parse_day():
    assert parse_day("2026-03-04") == date(2026, 3, 4)
    assert parse_day(" ") is None
    assert parse_day(None) is None
    with pytest.raises(ValueError):
        parse_day("04/03/2026")


def test_filter_by_date_includes_whole_days():
    early = respondent(datetime(2026, 1, 1, 0, 0))
    late = respondent(datetime(2026, 1, 3, 23, 59, 59))
    outside = respondent(datetime(2026, 1, 4, 0, 0))
    unfinished = respondent(None)
    everyone = [early, late, outside, unfinished]

    assert filter_by_date(everyone, date(2026, 1, 1), date(2026, 1, 3)) == [early, late]
    assert filter_by_date(everyone, start=date(2026, 1, 2)) == [late, outside]
    assert filter_by_date(everyone) == [early, late, outside]


def test_responses_by_date_sorted():
    counts = responses_by_date([
        respondent(datetime(2026, 2, 1, 10)),
        respondent(datetime(2026, 1, 5, 9)),
        respondent(datetime(2026, 1, 5, 18)),
        respondent(None),
    ])
    assert counts == {"2026-01-05": 2, "2026-02-01": 1}


def test_single_choice_counts_use_stored_choice_formats():
    stats = question_stats(question(choices='{"Yes","No","Kind of"}'), ["Yes", "No", " Yes", "Maybe"])
    assert stats.labels == ["Yes", "No", "Kind of"]
    assert stats.counts == [2, 1, 0]
    assert stats.answered == 4
    assert stats.average is None


def test_multi_choice_counts_every_selected_label():
    stats = question_stats(question(type="multi-choice", choices='["A", "B", "C"]'), ["A, C", ["C"], "B"])
    assert stats.counts == [1, 1, 2]


def test_rating_distribution_and_average():
    stats = question_stats(question(type="rating", max_score=4), ["1", 4, "4", "9", "abc", [2]])
    assert stats.labels == ["1", "2", "3", "4"]
    assert stats.counts == [1, 1, 0, 2]
    assert stats.average == 4.0


def test_rating_defaults_to_five_point_scale():
    stats = question_stats(question(type="rating"), [])
    assert stats.labels == ["1", "2", "3", "4", "5"]
    assert stats.counts == [0] * 5
    assert stats.average is None


def test_rating_scale_is_bounded():
    assert len(question_stats(question(type="rating", max_score=10**400), []).labels) == 100
    assert len(question_stats(question(type="rating", max_score=float("nan")), []).labels) == 5


def test_survey_stats_skips_text_questions():
    questions = [question(1, choices=["Yes", "No"]), question(2, type="text")]
    answers = [
        SimpleNamespace(question_id=1, value="No"),
        SimpleNamespace(question_id=1, value=None),
        SimpleNamespace(question_id=2, value="free text"),
    ]
    stats = survey_stats(questions, answers)
    assert [s.question_id for s in stats] == [1]
    assert stats[0].counts == [0, 1]
    assert stats[0].answered == 1
