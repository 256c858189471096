import asyncio
from types import SimpleNamespace

import pytest

from surveyscore import reports
from surveyscore.ranges import ScoreRange
from surveyscore.reports import (
    DEFAULT_TEMPLATE,
    answer_text,
    build_html_report,
    email_report,
    generate_report,
    load_template,
    report_file_name,
    resolve_base_url,
    serve_url_for,
)
from surveyscore.results import CategoryResult, SurveyResults
from surveyscore.storage import ReportStorage


def sample_results():
    return SurveyResults(
        categories=[
            CategoryResult(id=1, title="Communication skills", percent=50.0, band=ScoreRange(0, 60, "Room to grow", "#ff0000")),
            CategoryResult(id=2, title="<b>Culture</b>", percent=100.0),
        ],
        total_percent=75.0,
        total_band=ScoreRange(70, 100, "Strong overall", "#00ff00"),
    )


class FakeResult:
    def __init__(self, row):
        self.row = row

    def scalars(self):
        return self

    def first(self):
        return self.row


class FakeSession:
    def __init__(self, smtp=None, survey=None):
        self.smtp = smtp
        self.survey = survey
        self.commits = 0

    async def execute(self, stmt):
        return FakeResult(self.smtp)

    async def get(self, model, key):
        return self.survey

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        pass


def test_load_template_defaults():
    assert load_template(None) is DEFAULT_TEMPLATE
    assert load_template("nope") is DEFAULT_TEMPLATE
    assert DEFAULT_TEMPLATE.enabled_sections == ["cover", "summary", "donutChart", "categories", "categoryText"]


def test_load_template_merges_partial_data():
    template = load_template({"page": {"margin": {"top": 5}}, "branding": {"primaryColor": "#000000"}})
    assert template.page.size == "A4"
    assert template.page.margin.top == 5
    assert template.page.margin.right == 14
    assert template.branding.primary_color == "#000000"
    assert template.branding.accent_color == "#4f46e5"
    assert template.enabled_sections == DEFAULT_TEMPLATE.enabled_sections


def test_load_template_sections():
    assert load_template({"sections": []}).enabled_sections == DEFAULT_TEMPLATE.enabled_sections
    template = load_template({"sections": [{"key": "summary", "enabled": True}, {"enabled": True}, {"key": "cover"}]})
    assert [s.key for s in template.sections] == ["summary", "cover"]
    assert template.enabled_sections == ["summary"]


def test_invalid_template_falls_back_to_default():
    assert load_template({"page": {"size": "A3"}}) is DEFAULT_TEMPLATE


def test_html_report_sections_and_escaping():
    html = build_html_report(DEFAULT_TEMPLATE, "Team <Survey>", "2026-10-18", sample_results())
    assert "Team &lt;Survey&gt;" in html
    assert "&lt;b&gt;Culture&lt;/b&gt;" in html
    assert "<b>Culture</b>" not in html
    assert "75.00%" in html
    assert "Strong overall" in html
    assert "Room to grow" in html
    assert "No description available" in html
    assert "Communicatio..." in html
    assert "Your Responses" not in html


def test_html_report_only_renders_enabled_sections():
    template = load_template({"sections": [{"key": "categories", "enabled": True}, {"key": "responses", "enabled": True}]})
    html = build_html_report(template, "S", "now", sample_results(), responses=[("How are you?", "Fine, thanks")])
    assert "Category scores" in html
    assert "Summary" not in html
    assert "Your Responses" in html
    assert "Fine, thanks" in html


def test_resolve_base_url(monkeypatch):
    assert resolve_base_url({"origin": "https://app.example.com/"}) == "https://app.example.com"
    assert resolve_base_url({"origin": "null", "host": "h.test", "x-forwarded-proto": "https"}) == "https://h.test"
    monkeypatch.setattr(reports.settings, "site_url", "https://site.test/")
    assert resolve_base_url({}) == "https://site.test"
    monkeypatch.setattr(reports.settings, "site_url", None)
    monkeypatch.setattr(reports.settings, "app_port", 8000)
    assert resolve_base_url({}) == "http://localhost:8000"


def test_file_name_and_serve_url():
    name = report_file_name(3, 7)
    assert name.startswith("report-3-7-") and name.endswith(".pdf")
    assert serve_url_for("http://x.test", "a b.pdf") == "http://x.test/api/reports/serve?file_name=a%20b.pdf"


def test_answer_text():
    assert answer_text(["A", "C"]) == "A, C"
    assert answer_text(None) == ""
    assert answer_text(4) == "4"


def test_email_skipped_without_smtp():
    sent, message = asyncio.run(email_report(FakeSession(smtp=None), "r@example.com", "http://x/r.pdf", "S"))
    assert sent is False
    assert message.startswith("Email skipped")


def test_email_failure_is_reported_not_raised(monkeypatch):
    async def failing_send(**kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(reports, "send_email", failing_send)
    smtp = SimpleNamespace(host="smtp.test", port=587, username=None, password=None, use_tls=True, from_email="f@x", from_name="F")
    sent, message = asyncio.run(email_report(FakeSession(smtp=smtp), "r@example.com", "http://x/r.pdf", "S"))
    assert sent is False
    assert message == "Email failed: connection refused"


def test_email_sent(monkeypatch):
    captured = {}

    async def fake_send(**kwargs):
        captured.update(kwargs)

    monkeypatch.setattr(reports, "send_email", fake_send)
    smtp = SimpleNamespace(host="smtp.test", port=587, username=None, password=None, use_tls=True, from_email="f@x", from_name="F")
    sent, message = asyncio.run(email_report(FakeSession(smtp=smtp), "r@example.com", "http://x/r.pdf", "Team"))
    assert (sent, message) == (True, "Email sent.")
    assert captured["to_email"] == "r@example.com"
    assert captured["subject"] == "Your report for Team"
    assert "http://x/r.pdf" in captured["html_content"]


def test_generate_report_stores_pdf_and_updates_respondent(monkeypatch, tmp_path):
    async def fake_results(session, respondent, options=None):
        return [], sample_results()

    async def fake_pdf(html, template):
        assert "Strong overall" in html
        return b"%PDF-1.4 fake"

    monkeypatch.setattr(reports, "respondent_results", fake_results)
    monkeypatch.setattr(reports, "render_pdf", fake_pdf)

    session = FakeSession(smtp=None, survey=SimpleNamespace(id=3, title="Team"))
    respondent = SimpleNamespace(id=7, survey_id=3, report_url=None, email=None)
    storage = ReportStorage(tmp_path)

    outcome = asyncio.run(generate_report(session, respondent, "r@example.com", DEFAULT_TEMPLATE, "http://example.test", storage))

    assert outcome.serve_url.startswith("http://example.test/api/reports/serve?file_name=report-3-7-")
    assert outcome.email_sent is False
    assert respondent.report_url == outcome.serve_url
    assert respondent.email == "r@example.com"
    assert session.commits == 1
    stored = list(tmp_path.iterdir())
    assert len(stored) == 1
    assert stored[0].read_bytes() == b"%PDF-1.4 fake"


def test_generate_report_requires_survey(tmp_path):
    session = FakeSession(survey=None)
    respondent = SimpleNamespace(id=7, survey_id=3)
    with pytest.raises(reports.ReportError):
        asyncio.run(generate_report(session, respondent, "r@example.com", DEFAULT_TEMPLATE, "http://x", ReportStorage(tmp_path)))


def test_generate_report_writes_pdf_off_the_event_loop(monkeypatch, tmp_path):
    calls = []

    async def fake_results(session, respondent, options=None):
        return [], sample_results()

    async def fake_pdf(html, template):
        return b"%PDF"

    async def recording_threadpool(func, *args):
        calls.append(func.__name__)
        return func(*args)

    monkeypatch.setattr(reports, "respondent_results", fake_results)
    monkeypatch.setattr(reports, "render_pdf", fake_pdf)
    monkeypatch.setattr(reports, "run_in_threadpool", recording_threadpool)

    session = FakeSession(survey=SimpleNamespace(id=1, title="T"))
    respondent = SimpleNamespace(id=2, survey_id=1, report_url=None, email=None)
    asyncio.run(generate_report(session, respondent, "r@example.com", DEFAULT_TEMPLATE, "http://x", ReportStorage(tmp_path)))
    assert calls == ["save"]
