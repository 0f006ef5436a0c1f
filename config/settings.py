"""
Settings Configuration
Pydantic-validated settings, one group per concern
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class YouTubeSettings(BaseSettings):
    """YouTube Data API (catalog search + captions)"""
    api_key: Optional[str] = Field(default=None, description="YouTube Data API key")
    max_results: int = Field(default=25, description="Search page size")
    daily_quota_units: int = Field(default=10000, description="Daily quota budget")
    search_cost: int = Field(default=100, description="Units per search.list call")
    detail_cost: int = Field(default=1, description="Units per videos.list call")
    caption_lang: str = Field(default="en", description="Preferred transcript language")
    request_timeout: float = Field(default=12.0, description="HTTP timeout (seconds)")

    class Config:
        env_prefix = "YOUTUBE_"


class CurationSettings(BaseSettings):
    """Ingestion + scoring thresholds"""
    min_quality: float = Field(default=70.0, description="Minimum final score to accept (0-100)")
    min_duration_seconds: int = Field(default=120, description="Shorter candidates are rejected unscored")
    description_excerpt_chars: int = Field(default=500, description="Description excerpt sent to the classifier")
    transcript_min_chars: int = Field(default=200, description="Shorter transcripts count as a penalty")
    transcript_excerpt_chars: int = Field(default=4000, description="Transcript excerpt sent to the classifier")

    class Config:
        env_prefix = "CURATION_"


class LifecycleSettings(BaseSettings):
    """Feedback-driven lifecycle review"""
    min_evidence: int = Field(default=50, description="Votes required before any transition")
    promote_min_votes: int = Field(default=100, description="Votes required for top tier")
    promote_helpful_ratio: float = Field(default=0.85)
    remove_quality_issue_ratio: float = Field(default=0.25)
    remove_helpful_ratio: float = Field(default=0.40)
    flag_helpful_ratio: float = Field(default=0.50)
    too_advanced_ratio: float = Field(default=0.40)
    review_at: str = Field(default="03:00", description="Daily review time (HH:MM, local)")
    review_tz: str = Field(default="UTC", description="Timezone for review_at")

    class Config:
        env_prefix = "LIFECYCLE_"


class ProgressSettings(BaseSettings):
    """Run progress retention"""
    retention_hours: float = Field(default=24.0, description="Finished runs are swept after this window")

    class Config:
        env_prefix = "PROGRESS_"


class LLMSettings(BaseSettings):
    """LLM classifier configuration"""
    provider: str = Field(default="anthropic", description="LLM provider: anthropic, openai")
    model_name: Optional[str] = Field(default=None, description="Model name (provider default when empty)")
    temperature: float = Field(default=0.3, description="Sampling temperature")
    max_tokens: int = Field(default=1024, description="Max output tokens")
    timeout: float = Field(default=60.0, description="Request timeout (seconds)")

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API Key")

    class Config:
        env_prefix = "LLM_"


class GeneralSettings(BaseSettings):
    """General"""
    log_level: str = Field(default="INFO", description="Log level")
    log_file: Optional[str] = Field(default=None, description="Optional log file under logs/")

    class Config:
        env_prefix = "CURATOR_"


class Settings(BaseSettings):
    """Top-level settings aggregating every group"""

    youtube: YouTubeSettings = Field(default_factory=YouTubeSettings)
    curation: CurationSettings = Field(default_factory=CurationSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    progress: ProgressSettings = Field(default_factory=ProgressSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    general: GeneralSettings = Field(default_factory=GeneralSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings after applying the given .env file (default: config/.env)."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            youtube=YouTubeSettings(),
            curation=CurationSettings(),
            lifecycle=LifecycleSettings(),
            progress=ProgressSettings(),
            llm=LLMSettings(),
            general=GeneralSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_youtube_settings() -> YouTubeSettings:
    return get_settings().youtube


def get_curation_settings() -> CurationSettings:
    return get_settings().curation


def get_lifecycle_settings() -> LifecycleSettings:
    return get_settings().lifecycle


def get_progress_settings() -> ProgressSettings:
    return get_settings().progress


def get_llm_settings() -> LLMSettings:
    return get_settings().llm
