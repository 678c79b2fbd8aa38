import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as SchemaError

from backend.app.schemas import ExerciseProgressPoint, LogEvent, Mode, StructuredGuess, WorkoutSetReq
from .energy import round_half_up

REST_MET = 2.0
DEFAULT_SECONDS_PER_REP = 4

logger = logging.getLogger(__name__)

def rpe_modifier(rpe: Optional[float]) -> float:
    """RPE 5 is normal effort; harder sets burn more"""
    if not rpe:
        return 1.0
    if rpe >= 8:
        return 1.2
    if rpe >= 6:
        return 1.1
    if rpe <= 4:
        return 0.9
    return 1.0

def exercise_calories(met_value: float, duration_min: float, weight_kg: float, intensity: float = 1.0) -> int:
    """MET formula: (METs * 3.5 * kg) / 200 * minutes"""
    return round_half_up((met_value * 3.5 * weight_kg) / 200 * duration_min * intensity)

def estimate_active_duration(reps: int, sets: int, seconds_per_rep: int = DEFAULT_SECONDS_PER_REP) -> float:
    return reps * sets * seconds_per_rep / 60

def estimate_active_duration_from_list(reps_per_set: List[int], seconds_per_rep: int = DEFAULT_SECONDS_PER_REP) -> float:
    return sum(reps_per_set) * seconds_per_rep / 60

def _reps(workout_set: WorkoutSetReq) -> Optional[List[int]]:
    return workout_set.actual_reps or workout_set.reps_per_set

def _set_count(workout_set: WorkoutSetReq) -> int:
    reps = _reps(workout_set)
    if reps:
        return len(reps)
    return workout_set.sets or 1

def active_minutes(workout_set: WorkoutSetReq) -> float:
    if workout_set.duration_min:
        return workout_set.duration_min
    reps = _reps(workout_set)
    if reps:
        return estimate_active_duration_from_list(reps)
    if workout_set.reps:
        return estimate_active_duration(workout_set.reps, _set_count(workout_set))
    return 0.0

def workout_calories(sets: List[WorkoutSetReq], weight_kg: float) -> int:
    total = 0.0
    for workout_set in sets:
        total += exercise_calories(
            workout_set.met_value,
            active_minutes(workout_set),
            weight_kg,
            rpe_modifier(workout_set.rpe),
        )
        set_count = _set_count(workout_set)
        if workout_set.rest_seconds and set_count > 1:
            rest_minutes = workout_set.rest_seconds * (set_count - 1) / 60
            total += (REST_MET * 3.5 * weight_kg) / 200 * rest_minutes
    return round_half_up(total)

def describe_set(workout_set: WorkoutSetReq) -> str:
    reps = _reps(workout_set)
    if not reps and not workout_set.reps and workout_set.duration_min:
        return f"{workout_set.exercise_name} ({workout_set.duration_min:g} min)"
    reps_text = f"[{','.join(str(r) for r in reps)}]" if reps else f"{workout_set.reps or 0}"
    weight_suffix = f" @ {workout_set.weight_kg:g}kg" if workout_set.weight_kg else ""
    return f"{workout_set.exercise_name} ({_set_count(workout_set)}x{reps_text}{weight_suffix})"

def summarize_workout(sets: List[WorkoutSetReq]) -> str:
    return ", ".join(describe_set(s) for s in sets)

def workout_entry(sets: List[WorkoutSetReq], weight_kg: float, actual_calories: Optional[int] = None):
    """Build the raw text, guess and extra event data for a finished session"""
    planned = workout_calories(sets, weight_kg)
    burned = actual_calories if actual_calories is not None else planned
    summary = summarize_workout(sets)

    guess = StructuredGuess(burned_calories=burned, training=summary, training_mode=Mode.ADD)
    extra: Dict[str, Any] = {
        "planned_calories": planned,
        "session_details": [s.model_dump(exclude_none=True) for s in sets],
    }
    return f"Entrenamiento: {summary}", guess, extra

# Progress

def set_reps(workout_set: WorkoutSetReq) -> List[int]:
    """Reps of each set; a flat `reps` count repeats over `sets`"""
    reps = _reps(workout_set)
    if reps:
        return reps
    if workout_set.reps:
        return [workout_set.reps] * _set_count(workout_set)
    return []

def epley_1rm(weight_kg: float, reps: int) -> float:
    return weight_kg * (1 + reps / 30)

def _name_key(name: str) -> str:
    return " ".join(name.split()).lower()

def session_sets(event: LogEvent) -> List[WorkoutSetReq]:
    sets = []
    for raw in event.parsed_data.get("session_details") or []:
        try:
            sets.append(WorkoutSetReq.model_validate(raw))
        except SchemaError:
            logger.warning("Skipping unreadable session detail", extra={"event_id": event.id})
    return sets

def exercise_names(events: Iterable[LogEvent]) -> List[str]:
    names = {}
    for event in events:
        for workout_set in session_sets(event):
            names.setdefault(_name_key(workout_set.exercise_name), workout_set.exercise_name.strip())
    return sorted(names.values(), key=str.lower)

def exercise_progress(events: Iterable[LogEvent], exercise_name: Optional[str] = None) -> List[ExerciseProgressPoint]:
    """Max weight, Epley 1RM, volume and reps per exercise and day.

    Sets without reps are left out; a day with no reps for an exercise gives
    no point for it.
    """
    wanted = _name_key(exercise_name) if exercise_name else None
    points: Dict[tuple, Dict[str, Any]] = {}
    for event in events:
        for workout_set in session_sets(event):
            key = _name_key(workout_set.exercise_name)
            if wanted and key != wanted:
                continue
            reps = [r for r in set_reps(workout_set) if r > 0]
            if not reps:
                continue
            weight = workout_set.weight_kg or 0
            point = points.setdefault((event.date, key), {
                "date": event.date,
                "exercise_name": workout_set.exercise_name.strip(),
                "max_weight": 0.0,
                "best_1rm": 0.0,
                "total_volume": 0.0,
                "total_reps": 0,
            })
            point["max_weight"] = max(point["max_weight"], weight)
            point["total_volume"] += sum(reps) * weight
            point["total_reps"] += sum(reps)
            if weight > 0:
                point["best_1rm"] = max(point["best_1rm"], epley_1rm(weight, max(reps)))

    return [
        ExerciseProgressPoint(
            date=p["date"],
            exercise_name=p["exercise_name"],
            max_weight=p["max_weight"],
            estimated_1rm=round_half_up(p["best_1rm"]),
            total_volume=round(p["total_volume"], 1),
            total_reps=p["total_reps"],
        )
        for _, p in sorted(points.items(), key=lambda item: item[0])
    ]
