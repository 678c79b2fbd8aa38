import math
from enum import Enum
from typing import List, Optional, Literal, Any, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, date

class Mode(str, Enum):
    """How a logged value combines with what is already stored for the day"""
    ADD = "add"
    SET = "set"

class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"

EventType = Literal["voice", "text", "manual", "workout"]

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

_SEX_ALIASES = {
    "male": Sex.MALE, "m": Sex.MALE, "masculino": Sex.MALE, "hombre": Sex.MALE,
    "female": Sex.FEMALE, "f": Sex.FEMALE, "femenino": Sex.FEMALE, "mujer": Sex.FEMALE,
    "other": Sex.OTHER, "otro": Sex.OTHER,
}

class StructuredGuess(BaseModel):
    """Best-effort reading of one free-text log entry.

    Absent keys stay None so an additive merge never zeroes a metric.
    """
    model_config = ConfigDict(extra="ignore")

    weight: Optional[float] = Field(None, ge=0)
    waist: Optional[float] = Field(None, ge=0)
    body_fat: Optional[float] = Field(None, ge=0, le=100)
    calories: Optional[float] = Field(None, ge=0)
    protein: Optional[float] = Field(None, ge=0)
    carbs: Optional[float] = Field(None, ge=0)
    fat: Optional[float] = Field(None, ge=0)
    nutrition_mode: Mode = Mode.ADD
    steps: Optional[float] = Field(None, ge=0)
    steps_mode: Mode = Mode.ADD
    burned_calories: Optional[float] = Field(None, ge=0)
    training_mode: Mode = Mode.ADD
    sleep: Optional[float] = Field(None, ge=0, le=24)
    training: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("nutrition_mode", "steps_mode", "training_mode", mode="before")
    @classmethod
    def default_mode(cls, value):
        if value is None:
            return Mode.ADD
        if isinstance(value, str):
            value = value.strip().lower()
            return value or Mode.ADD
        return value

    @field_validator("training", "notes", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_correction(self) -> bool:
        return Mode.SET in (self.nutrition_mode, self.steps_mode, self.training_mode)

class DailySummary(BaseModel):
    """One row of daily_summaries, unique on (user_id, date)"""
    model_config = ConfigDict(extra="ignore")

    user_id: str
    date: date
    weight: Optional[float] = None
    waist: Optional[float] = None
    body_fat: Optional[float] = None
    calories: int = Field(0, ge=0)
    protein: int = Field(0, ge=0)
    carbs: int = Field(0, ge=0)
    fat: int = Field(0, ge=0)
    steps: int = Field(0, ge=0)
    sleep: Optional[float] = None
    training: Optional[str] = None
    tdee: Optional[int] = None
    notes: str = ""

    @field_validator("calories", "protein", "carbs", "fat", "steps", mode="before")
    @classmethod
    def null_counter_is_zero(cls, value):
        if value is None:
            return 0
        if isinstance(value, float):
            return round_half_up(value)
        return value

    @field_validator("notes", mode="before")
    @classmethod
    def null_notes(cls, value):
        return value or ""

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

class LogEvent(BaseModel):
    """Immutable record of one parsed input"""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    user_id: str
    date: date
    created_at: Optional[datetime] = None
    raw_text: str
    parsed_data: Dict[str, Any] = Field(default_factory=dict)
    type: EventType = "voice"

    @field_validator("parsed_data", mode="before")
    @classmethod
    def null_parsed(cls, value):
        return value or {}

    def guess(self) -> StructuredGuess:
        """Re-read the stored guess; unknown keys (session details) are ignored"""
        return StructuredGuess.model_validate(self.parsed_data)

class UserProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    full_name: Optional[str] = None
    birth_date: date = date(1990, 1, 1)
    height: float = Field(170, gt=0)
    sex: Sex = Sex.MALE
    activity_level: Optional[str] = None
    target_weight: Optional[float] = None
    target_waist: Optional[float] = None
    target_body_fat: Optional[float] = None
    target_steps: Optional[int] = None

    @field_validator("sex", mode="before")
    @classmethod
    def normalize_sex(cls, value):
        if value is None:
            return Sex.MALE
        if isinstance(value, str):
            return _SEX_ALIASES.get(value.strip().lower(), value)
        return value

    @field_validator("birth_date", "height", mode="before")
    @classmethod
    def null_uses_default(cls, value, info):
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

class EnergyBreakdown(BaseModel):
    bmr: int
    active_kcal: int
    tdee: int

# Requests

class VoiceLogReq(BaseModel):
    """Webhook body; fields are optional so a missing one yields a readable 400"""
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    text: Optional[str] = None
    secret: Optional[str] = None

class LogTextReq(BaseModel):
    text: str
    log_date: Optional[date] = None

class WorkoutSetReq(BaseModel):
    exercise_name: str
    met_value: float = Field(..., gt=0)
    duration_min: Optional[float] = Field(None, ge=0)
    sets: Optional[int] = Field(None, ge=1)
    reps: Optional[int] = Field(None, ge=0)
    reps_per_set: Optional[List[int]] = None
    actual_reps: Optional[List[int]] = None
    weight_kg: Optional[float] = Field(None, ge=0)
    rpe: Optional[float] = Field(None, ge=1, le=10)
    rest_seconds: Optional[int] = Field(None, ge=0)

class LogWorkoutReq(BaseModel):
    sets: List[WorkoutSetReq] = Field(..., min_length=1)
    actual_calories: Optional[int] = Field(None, ge=0)
    log_date: Optional[date] = None

class UpdateProfileReq(BaseModel):
    full_name: Optional[str] = None
    birth_date: Optional[date] = None
    height: Optional[float] = None
    sex: Optional[str] = None
    activity_level: Optional[str] = None
    target_weight: Optional[float] = None
    target_waist: Optional[float] = None
    target_body_fat: Optional[float] = None
    target_steps: Optional[int] = None

class RoutineReq(BaseModel):
    name: str
    exercises: List[Dict[str, Any]] = Field(..., min_length=1)

# Responses

class VoiceLogResp(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    new_tdee: Optional[int] = None
    burned_calories: Optional[int] = None
    calories: Optional[int] = None
    steps: Optional[int] = None
    parsed: Optional[Dict[str, Any]] = None
    event_id: Optional[str] = None
    energy: Optional[EnergyBreakdown] = None

class TodayResp(BaseModel):
    date: date
    summary: Optional[DailySummary] = None
    energy: EnergyBreakdown
    exercise_kcal: int = 0
    events_count: int = 0

class SummariesResp(BaseModel):
    range: str
    summaries: List[DailySummary]

class EventsResp(BaseModel):
    date: date
    events: List[LogEvent]

class ExerciseProgressPoint(BaseModel):
    """One exercise on one day, summed over that day's workouts"""
    date: date
    exercise_name: str
    max_weight: float = 0
    estimated_1rm: int = 0
    total_volume: float = 0
    total_reps: int = 0

class ExerciseProgressResp(BaseModel):
    range: str
    exercise: Optional[str] = None
    exercises: List[str] = []
    points: List[ExerciseProgressPoint] = []

class DeleteEventResp(BaseModel):
    ok: bool = True
    summary: Optional[DailySummary] = None

class SuggestedTargets(BaseModel):
    weight: float
    waist: float
    body_fat: float
    steps: int

class ProfileResp(BaseModel):
    profile: UserProfile
    targets: SuggestedTargets
    age: int

class Routine(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    user_id: str
    name: str
    exercises: List[Dict[str, Any]]
    created_at: Optional[datetime] = None

class StreakInfo(BaseModel):
    type: Literal["logging", "nutrition", "steps", "training"]
    current_streak: int
    longest_streak: int
    last_activity: Optional[date] = None

class Achievement(BaseModel):
    id: str
    title: str
    description: str
    earned_on: Optional[date] = None
    progress: float = Field(..., ge=0, le=1)

class TrendsResp(BaseModel):
    range: str
    current_streaks: List[StreakInfo]
    achievements: List[Achievement]
    insights: List[str]

class CoachInsight(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["positive", "warning", "info", "critical"] = "info"
    category: str
    priority: str = "Media"
    title: str
    message: str
    action: Optional[str] = None

class CoachInsightsResp(BaseModel):
    insights: List[CoachInsight]
    source: Literal["llm", "rules"]
