import os
import pathlib
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from dateutil import tz

from dotenv import load_dotenv

# .env lives at the repository root, two levels above backend/app
ENV_PATH = pathlib.Path(__file__).parent.parent.parent / '.env'

DEFAULT_TIMEZONE = "America/Santiago"
DEFAULT_EXTRACTOR_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_COACH_MODEL = "claude-3-5-sonnet-20241022"


@dataclass(frozen=True)
class Settings:
    supabase_url: str = ""
    supabase_key: str = ""
    anthropic_api_key: Optional[str] = None
    extractor_model: str = DEFAULT_EXTRACTOR_MODEL
    coach_model: str = DEFAULT_COACH_MODEL
    voice_secret: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE
    environment: str = "production"
    log_level: str = "INFO"
    sentry_dsn: Optional[str] = None
    langfuse_public_key: Optional[str] = None
    langfuse_secret_key: Optional[str] = None
    langfuse_host: str = "https://cloud.langfuse.com"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment, loading .env first"""
        load_dotenv(dotenv_path=ENV_PATH)
        env = os.environ
        return cls(
            supabase_url=env.get("SUPABASE_URL", ""),
            # service-role key bypasses RLS for the voice webhook
            supabase_key=env.get("SUPABASE_SERVICE_ROLE_KEY") or env.get("SUPABASE_KEY", ""),
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            extractor_model=env.get("EXTRACTOR_MODEL", DEFAULT_EXTRACTOR_MODEL),
            coach_model=env.get("COACH_MODEL", DEFAULT_COACH_MODEL),
            voice_secret=env.get("VOICE_SECRET") or None,
            timezone=env.get("APP_TIMEZONE", DEFAULT_TIMEZONE),
            environment=env.get("ENVIRONMENT", "production"),
            log_level=env.get("LOG_LEVEL", "INFO"),
            sentry_dsn=env.get("SENTRY_DSN") or None,
            langfuse_public_key=env.get("LANGFUSE_PUBLIC_KEY") or None,
            langfuse_secret_key=env.get("LANGFUSE_SECRET_KEY") or None,
            langfuse_host=env.get("LANGFUSE_HOST", "https://cloud.langfuse.com"),
        )


def local_today(settings: Settings) -> date:
    """Calendar date in the app's timezone; summaries are keyed by this day"""
    return datetime.now(tz.gettz(settings.timezone)).date()
