"""
Supabase-backed store for daily summaries, log events, profiles and routines.

The client is created once by the application lifespan and passed in; nothing
here keeps module-level state.
"""
import time
import random
from datetime import date
from typing import Any, Callable, List, Optional
import logging

from supabase import create_client, Client

from .config import Settings
from .logging_config import DatabaseError, AuthenticationError
from .schemas import DailySummary, LogEvent, UserProfile, Routine

logger = logging.getLogger(__name__)

SUMMARIES = "daily_summaries"
EVENTS = "log_events"
PROFILES = "profiles"
ROUTINES = "workout_routines"

def retry(f, tries=3, base=0.15):
    """Retry with exponential backoff + jitter"""
    for i in range(tries):
        try:
            return f()
        except Exception:
            if i == tries-1:
                raise
            time.sleep(base*(2**i)+random.random()*0.05)

def build_supabase_client(settings: Settings) -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise DatabaseError("connect", "SUPABASE_URL and SUPABASE_KEY must be set")
    client = create_client(settings.supabase_url, settings.supabase_key)
    logger.info("Supabase client initialized")
    return client

class SupabaseStore:
    """Row access for one Supabase project.

    Every method either returns plain models or raises DatabaseError; callers
    never see raw PostgREST exceptions. Writes are never retried here.
    """

    def __init__(self, client: Client):
        self.client = client

    def _run(self, operation: str, query: Callable[[], Any]):
        try:
            return query()
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(operation, str(e)) from e

    # Daily summaries

    def get_summary(self, user_id: str, day: date) -> Optional[DailySummary]:
        result = self._run("get_summary", lambda: self.client.table(SUMMARIES).select("*")
                           .eq("user_id", user_id).eq("date", day.isoformat())
                           .limit(1).execute())
        rows = result.data or []
        return DailySummary.model_validate(rows[0]) if rows else None

    def latest_weight_before(self, user_id: str, day: date) -> Optional[float]:
        """Most recent recorded weight strictly before the given day"""
        result = self._run("latest_weight", lambda: self.client.table(SUMMARIES).select("date, weight")
                           .eq("user_id", user_id).lt("date", day.isoformat())
                           .not_.is_("weight", "null")
                           .order("date", desc=True).limit(1).execute())
        rows = result.data or []
        return rows[0]["weight"] if rows else None

    def list_summaries(self, user_id: str, start: date, end: date) -> List[DailySummary]:
        result = self._run("list_summaries", lambda: self.client.table(SUMMARIES).select("*")
                           .eq("user_id", user_id)
                           .gte("date", start.isoformat()).lte("date", end.isoformat())
                           .order("date").execute())
        return [DailySummary.model_validate(row) for row in result.data or []]

    def upsert_summary(self, summary: DailySummary) -> DailySummary:
        result = self._run("upsert_summary", lambda: self.client.table(SUMMARIES)
                           .upsert(summary.to_row(), on_conflict="user_id,date").execute())
        if result.data is None:
            raise DatabaseError("upsert_summary", "No row returned")
        return summary

    # Log events

    def insert_event(self, event: LogEvent) -> LogEvent:
        row = event.model_dump(mode="json", exclude_none=True)
        result = self._run("insert_event", lambda: self.client.table(EVENTS).insert(row).execute())
        if not result.data:
            raise DatabaseError("insert_event", "Failed to insert log event")
        return LogEvent.model_validate(result.data[0])

    def get_event(self, user_id: str, event_id: str) -> Optional[LogEvent]:
        result = self._run("get_event", lambda: self.client.table(EVENTS).select("*")
                           .eq("id", event_id).eq("user_id", user_id).limit(1).execute())
        rows = result.data or []
        return LogEvent.model_validate(rows[0]) if rows else None

    def list_events(self, user_id: str, day: date) -> List[LogEvent]:
        result = self._run("list_events", lambda: self.client.table(EVENTS).select("*")
                           .eq("user_id", user_id).eq("date", day.isoformat())
                           .order("created_at", desc=True).execute())
        return [LogEvent.model_validate(row) for row in result.data or []]

    def list_workout_events(self, user_id: str, start: date, end: date) -> List[LogEvent]:
        result = self._run("list_workout_events", lambda: self.client.table(EVENTS).select("*")
                           .eq("user_id", user_id).eq("type", "workout")
                           .gte("date", start.isoformat()).lte("date", end.isoformat())
                           .order("date").execute())
        return [LogEvent.model_validate(row) for row in result.data or []]

    def delete_event(self, user_id: str, event_id: str) -> None:
        self._run("delete_event", lambda: self.client.table(EVENTS).delete()
                  .eq("id", event_id).eq("user_id", user_id).execute())

    # Profiles

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        result = self._run("get_profile", lambda: self.client.table(PROFILES).select("*")
                           .eq("id", user_id).limit(1).execute())
        rows = result.data or []
        return UserProfile.model_validate(rows[0]) if rows else None

    def upsert_profile(self, profile: UserProfile) -> UserProfile:
        row = profile.model_dump(mode="json")
        self._run("upsert_profile", lambda: self.client.table(PROFILES).upsert(row).execute())
        return profile

    # Workout routines

    def list_routines(self, user_id: str) -> List[Routine]:
        result = self._run("list_routines", lambda: self.client.table(ROUTINES).select("*")
                           .eq("user_id", user_id).order("created_at", desc=True).execute())
        return [Routine.model_validate(row) for row in result.data or []]

    def save_routine(self, routine: Routine) -> Routine:
        row = routine.model_dump(mode="json", exclude_none=True)
        result = self._run("save_routine", lambda: self.client.table(ROUTINES).insert(row).execute())
        if not result.data:
            raise DatabaseError("save_routine", "Failed to insert routine")
        return Routine.model_validate(result.data[0])

    def delete_routine(self, user_id: str, routine_id: str) -> None:
        self._run("delete_routine", lambda: self.client.table(ROUTINES).delete()
                  .eq("id", routine_id).eq("user_id", user_id).execute())

    # Auth and health

    def authenticate(self, token: str) -> str:
        """Resolve a Supabase access token to its user id"""
        try:
            user_response = self.client.auth.get_user(token)
        except Exception as e:
            raise AuthenticationError("Invalid token") from e
        if not user_response or not user_response.user:
            raise AuthenticationError("Invalid token")
        return user_response.user.id

    def ping(self) -> bool:
        """Lightweight health probe"""
        try:
            r = retry(lambda: self.client.table(PROFILES).select("id").limit(1).execute())
            return r.data is not None
        except Exception as e:
            logger.error(f"Health probe failed: {e}")
            return False
