import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from fastapi import Depends, FastAPI, Form, HTTPException, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from starlette.concurrency import run_in_threadpool
from starlette.middleware.sessions import SessionMiddleware

from surveyscore import models
from surveyscore.analytics import filter_by_date, parse_day, responses_by_date, survey_stats
from surveyscore.choices import parse_scores
from surveyscore.config import settings
from surveyscore.db import Base, engine, get_session
from surveyscore.email import send_email
from surveyscore.ranges import find_overlap, has_gaps, validate_bounds
from surveyscore.reports import (
    DEFAULT_TEMPLATE,
    SECTION_KEYS,
    ReportError,
    ReportTemplateConfig,
    generate_report,
    load_template,
    resolve_base_url,
)
from surveyscore.results import load_answers, load_categories, load_ranges, respondent_results, summarize
from surveyscore.scoring import MULTI_CHOICE, RATING, SINGLE_CHOICE, scoring_kind
from surveyscore.security import get_password_hash, hash_token, new_access_token, verify_password
from surveyscore.storage import ReportStorage, get_storage

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Survey Scoring")
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key, session_cookie="admin_session", https_only=False)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

QUESTION_TYPE_CHOICES = [SINGLE_CHOICE, MULTI_CHOICE, RATING, "text"]
SURVEY_STATUSES = {"draft", "published", "archived"}


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@app.on_event("startup")
async def startup_event():
    await init_db()
    async with AsyncSession(engine) as session:
        await ensure_admin_user(session)
        await ensure_smtp_settings(session)
        await ensure_report_template(session)
        await session.commit()


async def ensure_admin_user(session: AsyncSession) -> None:
    result = await session.execute(select(models.AdminUser))
    admin = result.scalars().first()
    if admin:
        return
    admin_user = models.AdminUser(
        email=settings.admin_email,
        password_hash=get_password_hash(settings.admin_password),
    )
    session.add(admin_user)


async def ensure_smtp_settings(session: AsyncSession) -> None:
    result = await session.execute(select(models.SMTPSettings))
    settings_row = result.scalars().first()
    if settings_row:
        return
    settings_row = models.SMTPSettings(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_email=settings.smtp_from_email,
        from_name=settings.smtp_from_name,
    )
    session.add(settings_row)


async def ensure_report_template(session: AsyncSession) -> None:
    result = await session.execute(select(func.count(models.ReportTemplate.id)))
    if result.scalar_one() > 0:
        return
    session.add(
        models.ReportTemplate(
            name=DEFAULT_TEMPLATE.name,
            config=DEFAULT_TEMPLATE.model_dump(by_alias=True),
            is_default=True,
        )
    )


def get_admin_user(request: Request) -> Optional[int]:
    return request.session.get("admin_user_id")


def require_admin(request: Request) -> int:
    admin_id = get_admin_user(request)
    if not admin_id:
        raise HTTPException(status_code=status.HTTP_302_FOUND, headers={"Location": "/admin/login"})
    return admin_id


async def get_smtp(session: AsyncSession) -> models.SMTPSettings:
    result = await session.execute(select(models.SMTPSettings).limit(1))
    settings_row = result.scalars().first()
    if not settings_row:
        raise HTTPException(status_code=500, detail="SMTP settings not initialized")
    return settings_row


async def get_template_row(session: AsyncSession) -> Optional[models.ReportTemplate]:
    result = await session.execute(
        select(models.ReportTemplate).order_by(models.ReportTemplate.is_default.desc(), models.ReportTemplate.id).limit(1)
    )
    return result.scalars().first()


async def get_report_template(session: AsyncSession) -> ReportTemplateConfig:
    row = await get_template_row(session)
    return load_template(row.config) if row else DEFAULT_TEMPLATE


async def get_survey(session: AsyncSession, survey_id: int, with_questions: bool = False) -> models.Survey:
    stmt = select(models.Survey).where(models.Survey.id == survey_id)
    if with_questions:
        stmt = stmt.options(selectinload(models.Survey.categories).selectinload(models.Category.questions))
    survey = (await session.execute(stmt)).scalars().first()
    if not survey:
        raise HTTPException(status_code=404, detail="Survey not found")
    return survey


async def get_respondent_by_token(session: AsyncSession, token: str) -> Optional[models.Respondent]:
    result = await session.execute(
        select(models.Respondent).where(models.Respondent.access_token_hash == hash_token(token))
    )
    return result.scalars().first()


def split_lines(text: Optional[str]) -> list[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def split_scores(text: Optional[str]) -> list[float]:
    return parse_scores([part for part in re.split(r"[,\n]", text or "") if part.strip()])


def question_form_error(question_type: str, labels: list[str], scores: list[float]) -> Optional[str]:
    kind = scoring_kind(question_type)
    if question_type not in QUESTION_TYPE_CHOICES:
        return "Unknown question type"
    if kind in (SINGLE_CHOICE, MULTI_CHOICE) and not labels:
        return "Choice questions need at least one choice"
    if labels and scores and len(labels) != len(scores):
        return "Each choice needs exactly one score"
    if len(labels) != len(set(labels)):
        return "Choice labels must be unique"
    return None


@app.get("/", response_class=RedirectResponse)
async def root():
    return RedirectResponse("/surveys")


# =========================
# Admin: auth and dashboard
# =========================


@app.get("/admin/login", response_class=HTMLResponse)
async def admin_login_page(request: Request):
    return templates.TemplateResponse(request, "admin/login.html", {"request": request, "error": None})


@app.post("/admin/login")
async def admin_login(request: Request, email: str = Form(...), password: str = Form(...), session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(models.AdminUser).where(models.AdminUser.email == email))
    admin = result.scalars().first()
    if not admin or not verify_password(password, admin.password_hash):
        logger.info("Failed admin login for %s", email)
        return templates.TemplateResponse(request, "admin/login.html", {"request": request, "error": "Invalid credentials"}, status_code=400)
    request.session["admin_user_id"] = admin.id
    return RedirectResponse(url="/admin", status_code=303)


@app.post("/admin/logout")
async def admin_logout(request: Request):
    request.session.clear()
    return RedirectResponse(url="/admin/login", status_code=303)


@app.get("/admin", response_class=HTMLResponse)
async def admin_dashboard(request: Request, session: AsyncSession = Depends(get_session), admin_id: int = Depends(require_admin)):
    stmt = (
        select(
            models.Survey.id,
            models.Survey.title,
            models.Survey.status,
            func.count(models.Respondent.id).label("respondents"),
        )
        .outerjoin(models.Respondent, models.Respondent.survey_id == models.Survey.id)
        .group_by(models.Survey.id)
        .order_by(models.Survey.created_at.desc())
    )
    surveys = (await session.execute(stmt)).all()
    return templates.TemplateResponse(request, "admin/dashboard.html", {"request": request, "surveys": surveys})


# =========================
# Admin: survey structure
# =========================


@app.post("/admin/surveys/add")
async def add_survey(
    request: Request,
    title: str = Form(...),
    description: Optional[str] = Form(None),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    survey = models.Survey(title=title.strip(), description=(description or "").strip() or None)
    session.add(survey)
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{survey.id}", status_code=303)


async def render_survey_editor(request: Request, session: AsyncSession, survey_id: int, error: Optional[str] = None, status_code: int = 200):
    survey = await get_survey(session, survey_id, with_questions=True)
    return templates.TemplateResponse(
        request,
        "admin/survey_edit.html",
        {
            "request": request,
            "survey": survey,
            "question_types": QUESTION_TYPE_CHOICES,
            "statuses": sorted(SURVEY_STATUSES),
            "error": error,
        },
        status_code=status_code,
    )


@app.get("/admin/surveys/{survey_id}", response_class=HTMLResponse)
async def edit_survey(request: Request, survey_id: int, session: AsyncSession = Depends(get_session), admin_id: int = Depends(require_admin)):
    return await render_survey_editor(request, session, survey_id)


@app.post("/admin/surveys/{survey_id}/status")
async def set_survey_status(
    request: Request,
    survey_id: int,
    survey_status: str = Form(..., alias="status"),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    if survey_status not in SURVEY_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    survey = await get_survey(session, survey_id)
    survey.status = survey_status
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{survey_id}", status_code=303)


@app.post("/admin/surveys/{survey_id}/edit")
async def update_survey(
    request: Request,
    survey_id: int,
    title: str = Form(...),
    description: Optional[str] = Form(None),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    survey = await get_survey(session, survey_id)
    if not title.strip():
        return await render_survey_editor(request, session, survey_id, error="Title is required", status_code=400)
    survey.title = title.strip()
    survey.description = (description or "").strip() or None
    survey.updated_at = datetime.utcnow()
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{survey_id}", status_code=303)


@app.post("/admin/surveys/{survey_id}/delete")
async def delete_survey(
    request: Request,
    survey_id: int,
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    survey = await get_survey(session, survey_id)
    await session.execute(delete(models.ScoreRange).where(models.ScoreRange.survey_id == survey_id))
    await session.delete(survey)
    await session.commit()
    logger.info("Deleted survey %s", survey_id)
    return RedirectResponse(url="/admin", status_code=303)


@app.post("/admin/surveys/{survey_id}/categories/add")
async def add_category(
    request: Request,
    survey_id: int,
    title: str = Form(...),
    description: Optional[str] = Form(None),
    weight: float = Form(1.0),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    survey = await get_survey(session, survey_id, with_questions=True)
    title = title.strip()
    if any(c.title == title for c in survey.categories):
        return await render_survey_editor(request, session, survey_id, error="A category with this title already exists", status_code=400)
    session.add(
        models.Category(
            survey_id=survey_id,
            title=title,
            description=(description or "").strip() or None,
            weight=weight if weight > 0 else 1.0,
            order=len(survey.categories),
        )
    )
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{survey_id}", status_code=303)


@app.post("/admin/categories/{category_id}/edit")
async def update_category(
    request: Request,
    category_id: int,
    title: str = Form(...),
    description: Optional[str] = Form(None),
    weight: float = Form(1.0),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    category = await session.get(models.Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    survey = await get_survey(session, category.survey_id, with_questions=True)
    title = title.strip()
    if not title:
        return await render_survey_editor(request, session, survey.id, error="Title is required", status_code=400)
    if any(c.title == title and c.id != category_id for c in survey.categories):
        return await render_survey_editor(request, session, survey.id, error="A category with this title already exists", status_code=400)
    category.title = title
    category.description = (description or "").strip() or None
    category.weight = weight if weight > 0 else 1.0
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{survey.id}", status_code=303)


@app.post("/admin/categories/{category_id}/delete")
async def delete_category(
    request: Request,
    category_id: int,
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    category = await session.get(models.Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    survey_id = category.survey_id
    await session.delete(category)
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{survey_id}", status_code=303)


@app.post("/admin/categories/{category_id}/questions/add")
async def add_question(
    request: Request,
    category_id: int,
    prompt: str = Form(...),
    question_type: str = Form(..., alias="type"),
    choices: Optional[str] = Form(None),
    choice_scores: Optional[str] = Form(None),
    max_score: Optional[float] = Form(None),
    weight: float = Form(1.0),
    help_text: Optional[str] = Form(None),
    required: Optional[bool] = Form(False),
    scorable: Optional[bool] = Form(False),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    result = await session.execute(
        select(models.Category).where(models.Category.id == category_id).options(selectinload(models.Category.questions))
    )
    category = result.scalars().first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    labels = split_lines(choices)
    scores = split_scores(choice_scores)
    kind = scoring_kind(question_type)
    error = question_form_error(question_type, labels, scores)
    if error:
        return await render_survey_editor(request, session, category.survey_id, error=error, status_code=400)

    session.add(
        models.Question(
            category_id=category_id,
            type=question_type,
            prompt=prompt.strip(),
            help_text=(help_text or "").strip() or None,
            choices=labels or None,
            choice_scores=scores or None,
            max_score=max_score,
            weight=weight if weight > 0 else 1.0,
            required=bool(required),
            scorable=bool(scorable) and kind is not None,
            order=len(category.questions),
        )
    )
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{category.survey_id}", status_code=303)


@app.post("/admin/questions/{question_id}/edit")
async def update_question(
    request: Request,
    question_id: int,
    prompt: str = Form(...),
    question_type: str = Form(..., alias="type"),
    choices: Optional[str] = Form(None),
    choice_scores: Optional[str] = Form(None),
    max_score: Optional[float] = Form(None),
    weight: float = Form(1.0),
    help_text: Optional[str] = Form(None),
    required: Optional[bool] = Form(False),
    scorable: Optional[bool] = Form(False),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    question = await session.get(models.Question, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    category = await session.get(models.Category, question.category_id)

    labels = split_lines(choices)
    scores = split_scores(choice_scores)
    kind = scoring_kind(question_type)
    error = question_form_error(question_type, labels, scores)
    if error:
        return await render_survey_editor(request, session, category.survey_id, error=error, status_code=400)

    question.type = question_type
    question.prompt = prompt.strip()
    question.help_text = (help_text or "").strip() or None
    question.choices = labels or None
    question.choice_scores = scores or None
    question.max_score = max_score
    question.weight = weight if weight > 0 else 1.0
    question.required = bool(required)
    question.scorable = bool(scorable) and kind is not None
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{category.survey_id}", status_code=303)


@app.post("/admin/questions/{question_id}/delete")
async def delete_question(
    request: Request,
    question_id: int,
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    question = await session.get(models.Question, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    category = await session.get(models.Category, question.category_id)
    await session.delete(question)
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{category.survey_id}", status_code=303)


# =========================
# Admin: score ranges
# =========================


async def render_ranges(request: Request, session: AsyncSession, survey_id: int, error: Optional[str] = None, status_code: int = 200):
    survey = await get_survey(session, survey_id, with_questions=True)
    rows = (
        await session.execute(
            select(models.ScoreRange)
            .where(models.ScoreRange.survey_id == survey_id)
            .order_by(models.ScoreRange.min_score, models.ScoreRange.id)
        )
    ).scalars().all()
    scopes = [{"id": None, "title": "Overall"}] + [{"id": c.id, "title": c.title} for c in survey.categories]
    for scope in scopes:
        scope["ranges"] = [r for r in rows if r.category_id == scope["id"]]
        scope["has_gaps"] = has_gaps(scope["ranges"])
    return templates.TemplateResponse(
        request,
        "admin/ranges.html",
        {"request": request, "survey": survey, "scopes": scopes, "error": error},
        status_code=status_code,
    )


@app.get("/admin/surveys/{survey_id}/ranges", response_class=HTMLResponse)
async def score_ranges(request: Request, survey_id: int, session: AsyncSession = Depends(get_session), admin_id: int = Depends(require_admin)):
    return await render_ranges(request, session, survey_id)


@app.post("/admin/surveys/{survey_id}/ranges/add")
async def add_score_range(
    request: Request,
    survey_id: int,
    min_score: int = Form(...),
    max_score: int = Form(...),
    color: str = Form("#4f46e5"),
    description: str = Form(...),
    category_id: Optional[str] = Form(None),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    survey = await get_survey(session, survey_id, with_questions=True)
    scope_id = int(category_id) if category_id else None
    if scope_id is not None and scope_id not in {c.id for c in survey.categories}:
        raise HTTPException(status_code=400, detail="Invalid category")

    try:
        validate_bounds(min_score, max_score)
    except ValueError as exc:
        return await render_ranges(request, session, survey_id, error=str(exc), status_code=400)

    existing = (
        await session.execute(
            select(models.ScoreRange).where(
                models.ScoreRange.survey_id == survey_id,
                models.ScoreRange.category_id.is_(None) if scope_id is None else models.ScoreRange.category_id == scope_id,
            )
        )
    ).scalars().all()
    if find_overlap(min_score, max_score, existing):
        return await render_ranges(request, session, survey_id, error="This range overlaps with an existing range", status_code=400)

    session.add(
        models.ScoreRange(
            survey_id=survey_id,
            category_id=scope_id,
            min_score=min_score,
            max_score=max_score,
            color=color,
            description=description.strip(),
        )
    )
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{survey_id}/ranges", status_code=303)


@app.post("/admin/ranges/{range_id}/delete")
async def delete_score_range(
    request: Request,
    range_id: int,
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    score_range = await session.get(models.ScoreRange, range_id)
    if not score_range:
        raise HTTPException(status_code=404, detail="Score range not found")
    survey_id = score_range.survey_id
    await session.delete(score_range)
    await session.commit()
    return RedirectResponse(url=f"/admin/surveys/{survey_id}/ranges", status_code=303)


# =========================
# Admin: responses
# =========================


@app.get("/admin/surveys/{survey_id}/responses", response_class=HTMLResponse)
async def survey_responses(request: Request, survey_id: int, session: AsyncSession = Depends(get_session), admin_id: int = Depends(require_admin)):
    survey = await get_survey(session, survey_id)
    categories = await load_categories(session, survey_id)
    by_category, overall = await load_ranges(session, survey_id)
    respondents = (
        await session.execute(
            select(models.Respondent)
            .where(models.Respondent.survey_id == survey_id)
            .order_by(models.Respondent.completed_at.desc())
        )
    ).scalars().all()

    options = settings.scoring_options()
    rows = []
    for respondent in respondents:
        answers = await load_answers(session, respondent.id)
        rows.append({"respondent": respondent, "results": summarize(categories, answers, by_category, overall, options)})

    return templates.TemplateResponse(
        request,
        "admin/responses.html",
        {"request": request, "survey": survey, "categories": categories, "rows": rows},
    )


@app.get("/admin/surveys/{survey_id}/analytics", response_class=HTMLResponse)
async def survey_analytics(
    request: Request,
    survey_id: int,
    start: Optional[str] = None,
    end: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    survey = await get_survey(session, survey_id, with_questions=True)
    error = None
    try:
        start_day, end_day = parse_day(start), parse_day(end)
    except ValueError:
        start_day = end_day = None
        error = "Dates must be in YYYY-MM-DD format"

    respondents = (
        await session.execute(select(models.Respondent).where(models.Respondent.survey_id == survey_id))
    ).scalars().all()
    respondents = filter_by_date(respondents, start_day, end_day)
    respondent_ids = [r.id for r in respondents]
    answers = []
    if respondent_ids:
        answers = (
            await session.execute(select(models.Answer).where(models.Answer.respondent_id.in_(respondent_ids)))
        ).scalars().all()

    questions = [q for category in survey.categories for q in category.questions]
    return templates.TemplateResponse(
        request,
        "admin/analytics.html",
        {
            "request": request,
            "survey": survey,
            "start": start_day.isoformat() if start_day else "",
            "end": end_day.isoformat() if end_day else "",
            "error": error,
            "total": len(respondents),
            "by_date": responses_by_date(respondents),
            "stats": survey_stats(questions, answers),
        },
        status_code=400 if error else 200,
    )


# =========================
# Admin: report template
# =========================


@app.get("/admin/report-template", response_class=HTMLResponse)
async def report_template_page(request: Request, session: AsyncSession = Depends(get_session), admin_id: int = Depends(require_admin)):
    template = await get_report_template(session)
    return templates.TemplateResponse(
        request,
        "admin/report_template.html",
        {"request": request, "template": template, "section_keys": SECTION_KEYS, "message": None},
    )


@app.post("/admin/report-template")
async def save_report_template(request: Request, session: AsyncSession = Depends(get_session), admin_id: int = Depends(require_admin)):
    form = await request.form()
    data: dict[str, Any] = {
        "name": form.get("name") or DEFAULT_TEMPLATE.name,
        "page": {
            "size": form.get("page_size") or "A4",
            "orientation": form.get("orientation") or "portrait",
            "margin": {side: form.get(f"margin_{side}") or getattr(DEFAULT_TEMPLATE.page.margin, side) for side in ("top", "right", "bottom", "left")},
        },
        "branding": {
            "logoUrl": form.get("logo_url") or "",
            "primaryColor": form.get("primary_color") or DEFAULT_TEMPLATE.branding.primary_color,
            "accentColor": form.get("accent_color") or DEFAULT_TEMPLATE.branding.accent_color,
        },
        "sections": [{"key": key, "enabled": bool(form.get(f"section_{key}"))} for key in SECTION_KEYS],
    }
    template = load_template(data)

    row = await get_template_row(session)
    if row is None:
        row = models.ReportTemplate(is_default=True)
        session.add(row)
    row.name = template.name
    row.config = template.model_dump(by_alias=True)
    row.updated_at = datetime.utcnow()
    await session.commit()
    return RedirectResponse(url="/admin/report-template", status_code=303)


# =========================
# Admin: SMTP
# =========================


@app.get("/admin/smtp", response_class=HTMLResponse)
async def smtp_page(request: Request, session: AsyncSession = Depends(get_session), admin_id: int = Depends(require_admin)):
    smtp = await get_smtp(session)
    return templates.TemplateResponse(request, "admin/smtp.html", {"request": request, "smtp": smtp, "message": None})


@app.post("/admin/smtp")
async def save_smtp(
    request: Request,
    host: str = Form(...),
    port: int = Form(...),
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    use_tls: Optional[bool] = Form(False),
    from_email: str = Form(...),
    from_name: str = Form(...),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    smtp = await get_smtp(session)
    smtp.host = host
    smtp.port = port
    smtp.username = username or None
    smtp.password = password or None
    smtp.use_tls = bool(use_tls)
    smtp.from_email = from_email
    smtp.from_name = from_name
    smtp.updated_at = datetime.utcnow()
    await session.commit()
    return RedirectResponse(url="/admin/smtp", status_code=303)


@app.post("/admin/smtp/test", response_class=HTMLResponse)
async def test_smtp(
    request: Request,
    to_email: str = Form(...),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
):
    smtp = await get_smtp(session)
    html = "<p>This is a test email from the survey system.</p>"
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
            subject="SMTP test",
            html_content=html,
        )
        message = "Test email sent"
    except Exception as exc:  # noqa: BLE001
        message = f"Failed to send: {exc}"
    return templates.TemplateResponse(request, "admin/smtp.html", {"request": request, "smtp": smtp, "message": message})


# =========================
# Respondents
# =========================


@app.get("/surveys", response_class=HTMLResponse)
async def list_surveys(request: Request, session: AsyncSession = Depends(get_session)):
    result = await session.execute(
        select(models.Survey).where(models.Survey.status == "published").order_by(models.Survey.title)
    )
    return templates.TemplateResponse(request, "survey/list.html", {"request": request, "surveys": result.scalars().all()})


async def get_published_survey(session: AsyncSession, survey_id: int) -> models.Survey:
    survey = await get_survey(session, survey_id, with_questions=True)
    if survey.status != "published":
        raise HTTPException(status_code=404, detail="Survey not found")
    return survey


def render_survey_form(request: Request, survey: models.Survey, error: Optional[str] = None, values: Optional[dict] = None, status_code: int = 200):
    return templates.TemplateResponse(
        request,
        "survey/form.html",
        {
            "request": request,
            "survey": survey,
            "kind_of": scoring_kind,
            "values": values or {},
            "error": error,
        },
        status_code=status_code,
    )


@app.get("/surveys/{survey_id}/take", response_class=HTMLResponse)
async def survey_page(request: Request, survey_id: int, session: AsyncSession = Depends(get_session)):
    survey = await get_published_survey(session, survey_id)
    return render_survey_form(request, survey)


@app.post("/surveys/{survey_id}/take")
async def submit_survey(request: Request, survey_id: int, session: AsyncSession = Depends(get_session)):
    survey = await get_published_survey(session, survey_id)
    form = await request.form()

    values: dict[int, Any] = {}
    missing = []
    for category in survey.categories:
        for question in category.questions:
            key = f"q{question.id}"
            if scoring_kind(question.type) == MULTI_CHOICE:
                value = [v for v in form.getlist(key) if isinstance(v, str) and v.strip()]
            else:
                value = form.get(key)
                value = value if isinstance(value, str) and value.strip() else None
            if value:
                values[question.id] = value
            elif question.required:
                missing.append(question.id)

    if missing:
        return render_survey_form(request, survey, error="Please answer all required questions", values=values, status_code=400)

    token, token_hash = new_access_token()
    respondent = models.Respondent(survey_id=survey_id, access_token_hash=token_hash, completed_at=datetime.utcnow())
    session.add(respondent)
    await session.flush()
    for question_id, value in values.items():
        session.add(models.Answer(respondent_id=respondent.id, question_id=question_id, value=value))
    await session.commit()
    logger.info("Stored %d answers for respondent %s on survey %s", len(values), respondent.id, survey_id)

    return RedirectResponse(url=f"/surveys/{survey_id}/results/{token}", status_code=303)


async def get_survey_respondent(session: AsyncSession, survey_id: int, token: str) -> models.Respondent:
    respondent = await get_respondent_by_token(session, token)
    if not respondent or respondent.survey_id != survey_id:
        raise HTTPException(status_code=404, detail="Results not found")
    return respondent


async def render_results(request: Request, session: AsyncSession, survey_id: int, token: str, **extra):
    survey = await get_survey(session, survey_id)
    respondent = await get_survey_respondent(session, survey_id, token)
    _, results = await respondent_results(session, respondent, settings.scoring_options())
    status_code = extra.pop("status_code", 200)
    context = {"request": request, "survey": survey, "results": results, "token": token, "message": None, "error": None, "serve_url": None}
    context.update(extra)
    return templates.TemplateResponse(request, "survey/results.html", context, status_code=status_code)


@app.get("/surveys/{survey_id}/results/{token}", response_class=HTMLResponse)
async def results_page(request: Request, survey_id: int, token: str, session: AsyncSession = Depends(get_session)):
    return await render_results(request, session, survey_id, token)


@app.post("/surveys/{survey_id}/results/{token}/report", response_class=HTMLResponse)
async def request_report(
    request: Request,
    survey_id: int,
    token: str,
    email: str = Form(...),
    session: AsyncSession = Depends(get_session),
    storage: ReportStorage = Depends(get_storage),
):
    respondent = await get_survey_respondent(session, survey_id, token)
    template = await get_report_template(session)
    try:
        outcome = await generate_report(
            session, respondent, email.strip(), template, resolve_base_url(dict(request.headers)), storage
        )
    except ReportError as exc:
        logger.exception("Report generation failed for respondent %s", respondent.id)
        return await render_results(request, session, survey_id, token, error=str(exc), status_code=500)
    return await render_results(request, session, survey_id, token, message=outcome.email_message, serve_url=outcome.serve_url)


# =========================
# Reports API
# =========================


class ReportRequest(BaseModel):
    token: Optional[str] = None
    email: Optional[str] = None
    template: Optional[dict] = None


@app.post("/api/reports/generate")
async def api_generate_report(
    request: Request,
    payload: ReportRequest,
    session: AsyncSession = Depends(get_session),
    storage: ReportStorage = Depends(get_storage),
):
    if not payload.token or not payload.email:
        return JSONResponse({"error": "Missing required fields", "requiredFields": ["token", "email"]}, status_code=400)
    respondent = await get_respondent_by_token(session, payload.token)
    if not respondent:
        return JSONResponse({"error": "Respondent not found"}, status_code=404)

    template = load_template(payload.template) if payload.template else await get_report_template(session)
    try:
        outcome = await generate_report(
            session, respondent, payload.email.strip(), template, resolve_base_url(dict(request.headers)), storage
        )
    except ReportError as exc:
        logger.exception("Report generation failed for respondent %s", respondent.id)
        return JSONResponse({"error": str(exc)}, status_code=500)
    return {
        "success": True,
        "serveUrl": outcome.serve_url,
        "emailSent": outcome.email_sent,
        "emailMessage": outcome.email_message,
    }


@app.get("/api/reports/serve")
async def serve_report(file_name: Optional[str] = None, storage: ReportStorage = Depends(get_storage)):
    try:
        data = await run_in_threadpool(storage.load, file_name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    logger.info("Serving report %s", file_name)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={
            "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0",
            "Pragma": "no-cache",
            "Expires": "0",
            "Content-Disposition": f'inline; filename="{file_name}"',
        },
    )


@app.get("/health")
async def healthcheck():
    return {"status": "ok"}
