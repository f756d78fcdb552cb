from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings
from typing import ClassVar


class Settings(BaseSettings):
    """
    Class for environment-based configuration
    Configures on runtime based on environment variables(dev, staging, prod)
    """

    # Basic Settings
    project_name: str = "ClassInsight"
    version: str = "1.0.0"
    environment: str = Field(default="development")
    debug: bool = Field(default=True)

    # Database Settings
    # database_url이 있으면 db_* 값보다 우선합니다.
    database_url: str | None = Field(default=None)
    db_user: str = Field(default="postgres")
    db_password: str = Field(default="")
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="postgres")

    # Gemini
    google_api_key: str | None = Field(default=None)
    gemini_model_analysis: str = Field(default="gemini-2.5-flash")
    analysis_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    analysis_max_output_tokens: int = Field(default=10000, gt=0)

    # Analysis pipeline
    students_per_group: int = Field(default=5, ge=1)  # 학생 그룹 하나에 들어가는 학생 수
    summary_preview_length: int = Field(default=200, ge=0)

    # 데모 학급 쓰기 허용 (관리자/개발 환경용)
    allow_demo_writes: bool = Field(default=False)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


class OtherSettings(BaseSettings):
    """
    Class for other settings
    """

    ALLOWED_ORIGINS: ClassVar[list[str]] = [
        "http://localhost:3000",
    ]


# Global settings instance
settings = Settings()
other_settings = OtherSettings()
