import datetime as dt
from sqlalchemy import JSON, Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from surveyscore.db import Base


class AdminUser(Base):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)


class Survey(Base):
    __tablename__ = "surveys"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="draft")  # draft, published, archived
    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)

    categories = relationship(
        "Category", back_populates="survey", order_by="Category.order", cascade="all, delete-orphan"
    )
    respondents = relationship("Respondent", back_populates="survey", cascade="all, delete-orphan")


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    survey_id = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    weight = Column(Float, nullable=False, default=1.0)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)

    survey = relationship("Survey", back_populates="categories")
    questions = relationship(
        "Question", back_populates="category", order_by="Question.order", cascade="all, delete-orphan"
    )


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(32), nullable=False)  # single-choice, multi-choice, rating, text
    prompt = Column(Text, nullable=False)
    help_text = Column(Text, nullable=True)
    choices = Column(JSON, nullable=True)  # labels, positionally aligned with choice_scores
    choice_scores = Column(JSON, nullable=True)
    max_score = Column(Float, nullable=True)  # legacy rating cap, used only without choice_scores
    weight = Column(Float, nullable=False, default=1.0)
    required = Column(Boolean, nullable=False, default=False)
    scorable = Column(Boolean, nullable=False, default=True)
    order = Column(Integer, nullable=False, default=0)

    category = relationship("Category", back_populates="questions")


class Respondent(Base):
    __tablename__ = "respondents"

    id = Column(Integer, primary_key=True)
    survey_id = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)
    email = Column(String(255), nullable=True)
    access_token_hash = Column(String(128), nullable=False, unique=True)
    report_url = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    survey = relationship("Survey", back_populates="respondents")
    answers = relationship("Answer", back_populates="respondent", cascade="all, delete-orphan")


class Answer(Base):
    __tablename__ = "answers"

    id = Column(Integer, primary_key=True)
    respondent_id = Column(Integer, ForeignKey("respondents.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    value = Column(JSON, nullable=True)  # string, or list of labels for multi-choice
    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)

    respondent = relationship("Respondent", back_populates="answers")
    __table_args__ = (UniqueConstraint("respondent_id", "question_id", name="uq_answer_per_question"),)


class ScoreRange(Base):
    __tablename__ = "score_ranges"

    id = Column(Integer, primary_key=True)
    survey_id = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=True, index=True)  # NULL = overall
    min_score = Column(Integer, nullable=False)
    max_score = Column(Integer, nullable=False)
    color = Column(String(7), nullable=False, default="#4f46e5")
    description = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)

    __table_args__ = (
        CheckConstraint("min_score >= 0 AND max_score <= 100 AND min_score < max_score", name="score_ranges_min_max_check"),
    )


class ReportTemplate(Base):
    __tablename__ = "report_templates"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    config = Column(JSON, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)


class SMTPSettings(Base):
    __tablename__ = "smtp_settings"

    id = Column(Integer, primary_key=True)
    host = Column(String(255), nullable=False)
    port = Column(Integer, nullable=False, default=587)
    username = Column(String(255), nullable=True)
    password = Column(String(255), nullable=True)
    use_tls = Column(Boolean, nullable=False, default=True)
    from_email = Column(String(255), nullable=False)
    from_name = Column(String(255), nullable=False)
    updated_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)
