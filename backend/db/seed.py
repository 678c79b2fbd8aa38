"""Seed a demo profile and a week of logged days.

Run from the repository root: python -m backend.db.seed
Entries go through the same reconciler the API uses, so summaries, notes and
log events stay consistent with each other.
"""
from datetime import date, timedelta

from backend.app.config import Settings, local_today
from backend.app.database import SupabaseStore, build_supabase_client
from backend.app.schemas import Mode, StructuredGuess, UserProfile, WorkoutSetReq
from backend.fitness.reconciler import apply_entry
from backend.fitness.workout import workout_entry

DEMO_USER_ID = "00000000-0000-0000-0000-000000000001"

DEMO_PROFILE = UserProfile(
    id=DEMO_USER_ID,
    full_name="Demo",
    birth_date=date(1990, 5, 20),
    height=178,
    sex="male",
    activity_level="moderate",
    target_weight=78,
    target_steps=10000,
)

# (days ago, raw text, parsed guess)
DEMO_ENTRIES = [
    (6, "Peso 85.5, desayuno 450 kcal 30 de proteína",
     StructuredGuess(weight=85.5, calories=450, protein=30, carbs=40, fat=15)),
    (6, "Almuerzo pollo con arroz 700 kcal, caminé 8000 pasos",
     StructuredGuess(calories=700, protein=45, carbs=80, fat=18, steps=8000)),
    (5, "Dormí 6.5 horas, corrí 30 minutos 320 kcal",
     StructuredGuess(sleep=6.5, burned_calories=320, training="Running 30 min")),
    (5, "Cena 600 kcal", StructuredGuess(calories=600, protein=35)),
    (4, "En total hoy llevo 12000 pasos",
     StructuredGuess(steps=12000, steps_mode=Mode.SET)),
    (3, "Peso 85.1, cintura 92", StructuredGuess(weight=85.1, waist=92)),
    (2, "Comí 1800 kcal en total hoy",
     StructuredGuess(calories=1800, protein=110, nutrition_mode=Mode.SET)),
    (1, "Dormí 7.5 horas, 10500 pasos", StructuredGuess(sleep=7.5, steps=10500)),
    (0, "Peso 84.8, desayuno 400 kcal", StructuredGuess(weight=84.8, calories=400, protein=28)),
]

DEMO_WORKOUT = [
    WorkoutSetReq(exercise_name="Sentadilla", met_value=5.0, actual_reps=[10, 8, 8],
                  weight_kg=60, rpe=8, rest_seconds=90),
    WorkoutSetReq(exercise_name="Press banca", met_value=5.0, reps=10, sets=3,
                  weight_kg=50, rest_seconds=90),
]

def seed_database(store: SupabaseStore, today: date) -> str:
    """Seed the database with demo data."""
    print("Creating demo profile...")
    store.upsert_profile(DEMO_PROFILE)

    print("Logging demo entries...")
    for days_ago, raw_text, guess in DEMO_ENTRIES:
        day = today - timedelta(days=days_ago)
        result = apply_entry(store, DEMO_USER_ID, raw_text, guess, day, source="text")
        print(f"  {day}: tdee={result.energy.tdee} calories={result.summary.calories}")

    print("Logging demo workout...")
    workout_day = today - timedelta(days=2)
    raw_text, guess, extra = workout_entry(DEMO_WORKOUT, 85.1)
    apply_entry(store, DEMO_USER_ID, raw_text, guess, workout_day, source="workout", event_extra=extra)

    print("\nDatabase seeded successfully!")
    print(f"Demo user ID: {DEMO_USER_ID}")
    print(f"- {len(DEMO_ENTRIES)} log entries over 7 days")
    print("- 1 workout session")

    return DEMO_USER_ID

if __name__ == "__main__":
    settings = Settings.from_env()
    seed_database(SupabaseStore(build_supabase_client(settings)), local_today(settings))
