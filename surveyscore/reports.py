import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, select_autoescape
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from surveyscore import models
from surveyscore.config import settings
from surveyscore.email import send_email
from surveyscore.results import SurveyResults, respondent_results
from surveyscore.storage import ReportStorage

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)

SECTION_KEYS = ("cover", "summary", "donutChart", "categories", "categoryText", "responses")
MAX_OVERVIEW_NAME = 15


class ReportError(RuntimeError):
    pass


# =========================
# Template configuration
# =========================


class PageMargin(BaseModel):
    top: float = 18
    right: float = 14
    bottom: float = 18
    left: float = 14


class PageConfig(BaseModel):
    size: Literal["A4", "Letter"] = "A4"
    orientation: Literal["portrait", "landscape"] = "portrait"
    margin: PageMargin = Field(default_factory=PageMargin)


class Branding(BaseModel):
    logo_url: str = Field(default="", alias="logoUrl")
    primary_color: str = Field(default="#111827", alias="primaryColor")
    accent_color: str = Field(default="#4f46e5", alias="accentColor")

    model_config = {"populate_by_name": True}


class Section(BaseModel):
    key: str
    enabled: bool = False


def default_sections() -> List[Section]:
    return [Section(key=key, enabled=key != "responses") for key in SECTION_KEYS]


class ReportTemplateConfig(BaseModel):
    name: str = "Default Template"
    page: PageConfig = Field(default_factory=PageConfig)
    branding: Branding = Field(default_factory=Branding)
    sections: List[Section] = Field(default_factory=default_sections)

    @field_validator("sections", mode="before")
    @classmethod
    def _clean_sections(cls, value):
        if not isinstance(value, list):
            return default_sections()
        kept = [
            {"key": s["key"], "enabled": bool(s.get("enabled"))}
            for s in value
            if isinstance(s, dict) and s.get("key")
        ]
        return kept or default_sections()

    @property
    def enabled_sections(self) -> List[str]:
        return [s.key for s in self.sections if s.enabled]


DEFAULT_TEMPLATE = ReportTemplateConfig()


def load_template(data: Any) -> ReportTemplateConfig:
    """Merge a partial template over the defaults; anything unusable gives the default."""
    if not isinstance(data, dict):
        return DEFAULT_TEMPLATE
    try:
        return ReportTemplateConfig.model_validate(data)
    except ValidationError as exc:
        logger.warning("Invalid report template, using default: %s", exc)
        return DEFAULT_TEMPLATE


# =========================
# HTML
# =========================


def _short_name(name: str) -> str:
    return name[:12] + "..." if len(name) > MAX_OVERVIEW_NAME else name


def build_html_report(
    template: ReportTemplateConfig,
    survey_title: str,
    generated_at: str,
    results: SurveyResults,
    responses: Optional[List[Tuple[str, str]]] = None,
) -> str:
    accent = template.branding.accent_color
    rows = [
        {
            "title": c.title,
            "short_title": _short_name(c.title),
            "percent": c.percent,
            "color": (c.band.color if c.band and c.band.color else accent),
            "description": c.description,
        }
        for c in results.categories
    ]
    total_band = results.total_band
    return jinja_env.get_template("reports/report.html").render(
        template=template,
        sections=template.enabled_sections,
        survey_title=survey_title or "Survey",
        generated_at=generated_at,
        rows=rows,
        total_percent=results.total_percent,
        total_description=total_band.description if total_band and total_band.description else None,
        total_color=(total_band.color if total_band and total_band.color else accent),
        responses=responses or [],
    )


def render_email(serve_url: str, survey_title: str) -> str:
    return jinja_env.get_template("email/report_ready.html").render(serve_url=serve_url, survey_title=survey_title)


# =========================
# PDF
# =========================


async def render_pdf(html: str, template: ReportTemplateConfig) -> bytes:
    margin = template.page.margin
    try:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(
                headless=True,
                executable_path=settings.chromium_executable_path or None,
            )
            try:
                page = await browser.new_page()
                await page.set_content(html, wait_until="networkidle")
                return await page.pdf(
                    format=template.page.size,
                    landscape=template.page.orientation == "landscape",
                    print_background=True,
                    margin={
                        "top": f"{margin.top}mm",
                        "right": f"{margin.right}mm",
                        "bottom": f"{margin.bottom}mm",
                        "left": f"{margin.left}mm",
                    },
                )
            finally:
                await browser.close()
    except PlaywrightError as exc:
        raise ReportError(f"PDF rendering failed: {exc}") from exc


# =========================
# Report job
# =========================


@dataclass
class ReportOutcome:
    serve_url: str
    email_sent: bool
    email_message: str


def resolve_base_url(headers: Dict[str, str]) -> str:
    origin = (headers.get("origin") or "").rstrip("/")
    if origin and origin != "null":
        return origin
    host = headers.get("host")
    if host:
        scheme = "https" if headers.get("x-forwarded-proto") == "https" else "http"
        return f"{scheme}://{host}"
    if settings.site_url:
        return settings.site_url.rstrip("/")
    return f"http://localhost:{settings.app_port}"


def report_file_name(survey_id: Any, respondent_id: Any) -> str:
    return f"report-{survey_id}-{respondent_id}-{uuid.uuid4()}.pdf"


def serve_url_for(base_url: str, file_name: str) -> str:
    return f"{base_url}/api/reports/serve?file_name={quote(file_name)}"


def answer_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


async def load_responses(session: AsyncSession, respondent_id: int) -> List[Tuple[str, str]]:
    stmt = (
        select(models.Question.prompt, models.Answer.value)
        .join(models.Answer, models.Answer.question_id == models.Question.id)
        .where(models.Answer.respondent_id == respondent_id)
        .order_by(models.Question.category_id, models.Question.order)
    )
    return [(prompt, answer_text(value)) for prompt, value in (await session.execute(stmt)).all()]


async def email_report(session: AsyncSession, to_email: str, serve_url: str, survey_title: str) -> Tuple[bool, str]:
    smtp = (await session.execute(select(models.SMTPSettings).limit(1))).scalars().first()
    if not smtp or not smtp.host:
        return False, "Email skipped: SMTP is not configured."
    try:
        await send_email(
            host=smtp.host,
            port=smtp.port,
            username=smtp.username,
            password=smtp.password,
            use_tls=smtp.use_tls,
            from_email=smtp.from_email,
            from_name=smtp.from_name,
            to_email=to_email,
            subject=f"Your report for {survey_title}",
            html_content=render_email(serve_url, survey_title),
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Report email to %s failed (continuing): %s", to_email, exc)
        return False, f"Email failed: {exc}"
    return True, "Email sent."


async def generate_report(
    session: AsyncSession,
    respondent: models.Respondent,
    email: str,
    template: ReportTemplateConfig,
    base_url: str,
    storage: ReportStorage,
) -> ReportOutcome:
    survey = await session.get(models.Survey, respondent.survey_id)
    if survey is None:
        raise ReportError("Survey not found")
    survey_id, survey_title = survey.id, survey.title or "Survey"
    respondent_id = respondent.id

    _, results = await respondent_results(session, respondent, settings.scoring_options())
    responses = await load_responses(session, respondent_id) if "responses" in template.enabled_sections else []

    html = build_html_report(
        template=template,
        survey_title=survey_title,
        generated_at=datetime.utcnow().strftime("%Y-%m-%d %H:%M UTC"),
        results=results,
        responses=responses,
    )
    pdf = await render_pdf(html, template)

    file_name = report_file_name(survey_id, respondent_id)
    try:
        await run_in_threadpool(storage.save, file_name, pdf)
    except OSError as exc:
        raise ReportError(f"PDF upload failed: {exc}") from exc
    serve_url = serve_url_for(base_url, file_name)

    respondent.report_url = serve_url
    respondent.email = email
    try:
        await session.commit()
    except Exception as exc:  # noqa: BLE001
        await session.rollback()
        logger.warning("Could not save report_url for respondent %s: %s", respondent_id, exc)

    email_sent, email_message = await email_report(session, email, serve_url, survey_title)
    logger.info("Generated report %s for respondent %s", file_name, respondent_id)
    return ReportOutcome(serve_url=serve_url, email_sent=email_sent, email_message=email_message)
