"""
Folds parsed log entries into the one-row-per-day summary and reverses them.

`merge_entry` and `reverse_entry` are pure; `apply_entry` and `remove_entry`
add the storage round-trips around them. The store is any object with the
SupabaseStore methods used below.

Additive entries are not idempotent: delivering the same entry twice counts it
twice, so callers must submit each user action at most once. Two concurrent
submissions for the same user and day race (last write wins on the whole row).
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Tuple

from backend.app.logging_config import DatabaseError, NotFoundError, log_error
from backend.app.schemas import (
    DailySummary, EnergyBreakdown, LogEvent, Mode, StructuredGuess, UserProfile
)
from . import ledger
from .energy import round_half_up, tdee_for_profile

logger = logging.getLogger(__name__)

@dataclass
class ReconcileResult:
    summary: DailySummary
    energy: EnergyBreakdown
    exercise_kcal: int
    guess: StructuredGuess
    event: Optional[LogEvent] = None

    @property
    def event_saved(self) -> bool:
        return self.event is not None

def _combine(existing: Optional[float], incoming: Optional[float], mode: Mode) -> int:
    if mode == Mode.SET:
        value = incoming if incoming is not None else existing
    else:
        value = (existing or 0) + (incoming or 0)
    return max(0, round_half_up(value or 0))

def _first_present(*values):
    for value in values:
        if value is not None:
            return value
    return None

def note_tag(guess: StructuredGuess, source: str) -> Optional[str]:
    if guess.is_correction:
        return ledger.TAG_CORRECTION
    if source == "voice":
        return ledger.TAG_VOICE
    return None

def merge_entry(existing: Optional[DailySummary],
                guess: StructuredGuess,
                profile: UserProfile,
                user_id: str,
                raw_text: str,
                day: date,
                source: str = "voice",
                fallback_weight: Optional[float] = None) -> Tuple[DailySummary, EnergyBreakdown]:
    """Compute the next summary row for `day` from the stored one and a new guess"""
    base = existing or DailySummary(user_id=user_id, date=day)
    mode = guess.nutrition_mode

    steps = _combine(base.steps, guess.steps, guess.steps_mode)

    prior_kcal = ledger.parse_exercise_kcal(base.notes)
    if guess.training_mode == Mode.SET:
        exercise_kcal = max(0, round_half_up(guess.burned_calories or 0))
    else:
        exercise_kcal = max(0, prior_kcal + round_half_up(guess.burned_calories or 0))

    # weight is never accumulated; the formula falls back to 80 kg on its own
    weight = _first_present(guess.weight, base.weight, fallback_weight)

    energy = tdee_for_profile(weight, steps, exercise_kcal, profile, day)

    summary = DailySummary(
        user_id=user_id,
        date=day,
        weight=weight,
        waist=_first_present(guess.waist, base.waist),
        body_fat=_first_present(guess.body_fat, base.body_fat),
        calories=_combine(base.calories, guess.calories, mode),
        protein=_combine(base.protein, guess.protein, mode),
        carbs=_combine(base.carbs, guess.carbs, mode),
        fat=_combine(base.fat, guess.fat, mode),
        steps=steps,
        sleep=_first_present(guess.sleep, base.sleep),
        training=guess.training or base.training,
        tdee=energy.tdee,
        notes=ledger.append_entry(base.notes, raw_text, note_tag(guess, source), exercise_kcal),
    )
    return summary, energy

def _latest_training_label(events: Iterable[LogEvent]) -> Optional[str]:
    ordered = sorted(events, key=lambda e: (e.created_at is not None, e.created_at), reverse=True)
    for event in ordered:
        label = event.parsed_data.get("training")
        if label:
            return label
    return None

def reverse_entry(summary: DailySummary,
                  event: LogEvent,
                  profile: UserProfile,
                  remaining_events: Iterable[LogEvent] = ()) -> Tuple[DailySummary, EnergyBreakdown]:
    """Take one event's contribution back out of its day's summary.

    Counters are decremented (floored at zero) whatever mode the event was
    logged with; absolute fields (weight, waist, body fat, sleep) are left alone.
    """
    guess = event.guess()

    def minus(current: int, amount: Optional[float]) -> int:
        return max(0, current - round_half_up(amount or 0))

    steps = minus(summary.steps, guess.steps)
    exercise_kcal = minus(ledger.parse_exercise_kcal(summary.notes), guess.burned_calories)

    energy = tdee_for_profile(summary.weight, steps, exercise_kcal, profile, summary.date)

    training = summary.training
    if guess.training or (guess.burned_calories or 0) > 0:
        training = _latest_training_label(e for e in remaining_events if e.id != event.id)

    updated = summary.model_copy(update={
        "calories": minus(summary.calories, guess.calories),
        "protein": minus(summary.protein, guess.protein),
        "carbs": minus(summary.carbs, guess.carbs),
        "fat": minus(summary.fat, guess.fat),
        "steps": steps,
        "training": training,
        "tdee": energy.tdee,
        "notes": ledger.remove_entry_line(summary.notes, event.raw_text, exercise_kcal),
    })
    return updated, energy

def _profile_for(store, user_id: str) -> UserProfile:
    return store.get_profile(user_id) or UserProfile(id=user_id)

def apply_entry(store,
                user_id: str,
                raw_text: str,
                guess: StructuredGuess,
                day: date,
                source: str = "voice",
                event_extra: Optional[dict] = None) -> ReconcileResult:
    """Merge a parsed entry into the stored day and record the event.

    Any read failure aborts before anything is written. A failed summary write
    aborts before the event is appended. A failed event append after a good
    summary write is logged and reported through `ReconcileResult.event`.
    """
    existing = store.get_summary(user_id, day)
    profile = _profile_for(store, user_id)

    fallback_weight = None
    if guess.weight is None and (existing is None or existing.weight is None):
        fallback_weight = store.latest_weight_before(user_id, day)

    summary, energy = merge_entry(existing, guess, profile, user_id, raw_text, day,
                                  source=source, fallback_weight=fallback_weight)

    store.upsert_summary(summary)
    logger.info(
        f"Daily summary updated: tdee={energy.tdee} calories={summary.calories} steps={summary.steps}",
        extra={"user_id": user_id, "day": day.isoformat(), "source": source}
    )

    parsed = guess.model_dump(mode="json", exclude_none=True)
    parsed.update(event_extra or {})
    event = LogEvent(user_id=user_id, date=day, raw_text=raw_text, parsed_data=parsed, type=source)

    saved_event = None
    try:
        saved_event = store.insert_event(event)
    except DatabaseError as e:
        # summary stands; the history just misses this entry
        log_error(logger, e, {"user_id": user_id, "day": day.isoformat(), "orphaned_event": True})

    return ReconcileResult(
        summary=summary,
        energy=energy,
        exercise_kcal=ledger.parse_exercise_kcal(summary.notes),
        guess=guess,
        event=saved_event,
    )

def process_text_log(store, extractor, user_id: str, text: str, day: date, source: str = "voice") -> ReconcileResult:
    """Extract then apply. Extraction errors propagate before any storage call."""
    guess = extractor.extract(text)
    return apply_entry(store, user_id, text, guess, day, source=source)

def remove_entry(store, user_id: str, event: LogEvent) -> Optional[DailySummary]:
    """Reverse an event's contribution, then delete the event.

    The event row is only deleted after the summary write succeeded, so a
    failed deletion can be retried. Returns None when the day had no summary.
    """
    if event.user_id != user_id or not event.id:
        raise NotFoundError("log event", event.id or "")

    summary = store.get_summary(user_id, event.date)
    updated = None
    if summary is not None:
        profile = _profile_for(store, user_id)
        remaining = store.list_events(user_id, event.date)
        updated, energy = reverse_entry(summary, event, profile, remaining)
        store.upsert_summary(updated)
        logger.info(
            f"Reversed event {event.id}: tdee={energy.tdee}",
            extra={"user_id": user_id, "day": event.date.isoformat(), "event_id": event.id}
        )

    store.delete_event(user_id, event.id)
    return updated
