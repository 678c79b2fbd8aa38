"""
Daily energy expenditure.

BMR uses Mifflin-St Jeor. On top of a sedentary baseline (BMR x 1.1) the day
earns a step bonus scaled by body mass and the calories burned in logged
exercise. All three parts are returned so the dashboard can show the split.
"""
from datetime import date
from typing import Optional

from dateutil.relativedelta import relativedelta

from backend.app.schemas import EnergyBreakdown, Sex, UserProfile, round_half_up

# Used only inside the formula when no weight was ever recorded
FALLBACK_WEIGHT_KG = 80.0

BASELINE_MULTIPLIER = 1.1
KCAL_PER_STEP_PER_KG = 0.0005

def age_on(birth_date: date, on_date: date) -> int:
    """Whole years lived on `on_date`; the birthday itself counts"""
    return relativedelta(on_date, birth_date).years

def basal_metabolic_rate(weight_kg: float, height_cm: float, age_years: int, sex: Sex) -> float:
    sex_offset = 5 if sex == Sex.MALE else -161
    return 10 * weight_kg + 6.25 * height_cm - 5 * age_years + sex_offset

def compute_tdee(weight_kg: float,
                 steps_today: int,
                 exercise_kcal_today: int,
                 height_cm: float,
                 age_years: int,
                 sex: Sex) -> EnergyBreakdown:
    bmr = basal_metabolic_rate(weight_kg, height_cm, age_years, sex)
    step_bonus = steps_today * (weight_kg * KCAL_PER_STEP_PER_KG)
    base_tdee = bmr * BASELINE_MULTIPLIER
    total_active = (base_tdee - bmr) + step_bonus + exercise_kcal_today

    return EnergyBreakdown(
        bmr=round_half_up(bmr),
        active_kcal=round_half_up(total_active),
        tdee=round_half_up(bmr + total_active),
    )

def tdee_for_profile(weight_kg: Optional[float],
                     steps_today: int,
                     exercise_kcal_today: int,
                     profile: UserProfile,
                     on_date: date) -> EnergyBreakdown:
    return compute_tdee(
        weight_kg if weight_kg is not None else FALLBACK_WEIGHT_KG,
        steps_today,
        exercise_kcal_today,
        profile.height,
        age_on(profile.birth_date, on_date),
        profile.sex,
    )
