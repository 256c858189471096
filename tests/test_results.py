from surveyscore.ranges import ScoreRange
from surveyscore.results import NO_DESCRIPTION, summarize
from surveyscore.scoring import Answer, Category, Question


def yes_no(qid):
    return Question(id=qid, type="radio", choice_labels=["No", "Yes"], choice_scores=[0, 1])


def test_summarize_attaches_bands_by_category_id():
    categories = [
        Category(id=1, title="Team", questions=(yes_no("a"), yes_no("b"))),
        Category(id=2, title="Team", questions=(yes_no("c"),)),
    ]
    answers = [Answer("a", "Yes"), Answer("b", "No"), Answer("c", "Yes")]
    ranges = {
        1: [ScoreRange(0, 60, "Half there", category_id=1)],
        2: [ScoreRange(61, 100, "All in", category_id=2)],
    }
    overall = [ScoreRange(0, 74, "Developing"), ScoreRange(75, 100, "Strong")]

    results = summarize(categories, answers, ranges, overall)

    assert [(c.id, c.percent) for c in results.categories] == [(1, 50.0), (2, 100.0)]
    assert results.categories[0].description == "Half there"
    assert results.categories[1].description == "All in"
    assert results.total_percent == 75.0
    assert results.total_band.description == "Strong"


def test_missing_band_has_placeholder_text():
    categories = [Category(id=1, title="Solo", questions=(yes_no("a"),))]
    results = summarize(categories, [Answer("a", "Yes")], {}, [])
    assert results.categories[0].band is None
    assert results.categories[0].description == NO_DESCRIPTION
    assert results.total_band is None
    assert results.total_description == NO_DESCRIPTION
    assert results.category_percents == {"Solo": 100.0}
