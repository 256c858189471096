from pydantic_settings import BaseSettings
from pydantic import Field

from surveyscore.scoring import ScoringOptions


class Settings(BaseSettings):
    secret_key: str = Field(default="change_me", alias="SECRET_KEY")
    admin_email: str = Field(default="admin@example.com", alias="ADMIN_EMAIL")
    admin_password: str = Field(default="changeme123", alias="ADMIN_PASSWORD")
    database_url: str = Field(default="postgresql+asyncpg://postgres:postgres@db:5432/survey_db", alias="DATABASE_URL")
    sync_database_url: str = Field(default="postgresql+psycopg2://postgres:postgres@db:5432/survey_db", alias="SYNC_DATABASE_URL")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    smtp_host: str = Field(default="localhost", alias="SMTP_HOST")
    smtp_port: int = Field(default=1025, alias="SMTP_PORT")
    smtp_username: str | None = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=False, alias="SMTP_USE_TLS")
    smtp_from_email: str = Field(default="survey@example.com", alias="SMTP_FROM_EMAIL")
    smtp_from_name: str = Field(default="Survey Reports", alias="SMTP_FROM_NAME")

    reports_dir: str = Field(default="var/reports", alias="REPORTS_DIR")
    site_url: str | None = Field(default=None, alias="SITE_URL")
    chromium_executable_path: str | None = Field(default=None, alias="CHROMIUM_EXECUTABLE_PATH")

    scoring_treat_missing_as_zero: bool = Field(default=True, alias="SCORING_TREAT_MISSING_AS_ZERO")
    scoring_use_question_weights: bool = Field(default=False, alias="SCORING_USE_QUESTION_WEIGHTS")
    scoring_use_category_weights: bool = Field(default=False, alias="SCORING_USE_CATEGORY_WEIGHTS")

    class Config:
        env_file = ".env"
        case_sensitive = False

    def scoring_options(self) -> ScoringOptions:
        return ScoringOptions(
            treat_missing_as_zero=self.scoring_treat_missing_as_zero,
            use_question_weights=self.scoring_use_question_weights,
            use_category_weights=self.scoring_use_category_weights,
        )


settings = Settings()
