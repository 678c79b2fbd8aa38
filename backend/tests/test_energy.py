from datetime import date

import pytest

from backend.app.schemas import Sex, UserProfile
from backend.fitness.energy import (
    FALLBACK_WEIGHT_KG, age_on, basal_metabolic_rate, compute_tdee, round_half_up, tdee_for_profile
)

class TestEnergy:
    def test_trotting_day(self):
        """82 kg, 179 cm, 40 y male, 5000 steps, 150 kcal of exercise"""
        energy = compute_tdee(82, 5000, 150, 179, 40, Sex.MALE)

        assert energy.bmr == 1744
        assert energy.tdee == 2273
        assert energy.active_kcal == 529

    def test_rest_day_is_baseline(self):
        energy = compute_tdee(82, 0, 0, 179, 40, Sex.MALE)
        assert energy.tdee == round_half_up(1743.75 * 1.1)

    def test_female_offset(self):
        male = basal_metabolic_rate(60, 165, 30, Sex.MALE)
        female = basal_metabolic_rate(60, 165, 30, Sex.FEMALE)
        assert male - female == 166

    def test_other_uses_female_offset(self):
        assert basal_metabolic_rate(60, 165, 30, Sex.OTHER) == basal_metabolic_rate(60, 165, 30, Sex.FEMALE)

    def test_steps_scale_with_weight(self):
        light = compute_tdee(60, 10000, 0, 170, 30, Sex.MALE)
        light_rest = compute_tdee(60, 0, 0, 170, 30, Sex.MALE)
        heavy = compute_tdee(100, 10000, 0, 170, 30, Sex.MALE)
        heavy_rest = compute_tdee(100, 0, 0, 170, 30, Sex.MALE)

        assert light.tdee - light_rest.tdee == 300
        assert heavy.tdee - heavy_rest.tdee == 500

    def test_exercise_adds_one_to_one(self):
        base = compute_tdee(75, 4000, 0, 175, 35, Sex.MALE)
        trained = compute_tdee(75, 4000, 400, 175, 35, Sex.MALE)
        assert trained.tdee - base.tdee == 400
        assert trained.bmr == base.bmr

    def test_same_inputs_same_result(self):
        first = compute_tdee(82, 5000, 150, 179, 40, Sex.MALE)
        second = compute_tdee(82, 5000, 150, 179, 40, Sex.MALE)
        assert first == second

    @pytest.mark.parametrize("value,expected", [(0.5, 1), (1.5, 2), (2.4999, 2), (1743.75, 1744), (0, 0)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

class TestAge:
    def test_day_before_birthday(self):
        assert age_on(date(1984, 6, 15), date(2024, 6, 14)) == 39

    def test_on_birthday(self):
        assert age_on(date(1984, 6, 15), date(2024, 6, 15)) == 40

    def test_day_after_birthday(self):
        assert age_on(date(1984, 6, 15), date(2024, 6, 16)) == 40

    def test_leap_day_birthday(self):
        assert age_on(date(2000, 2, 29), date(2024, 2, 28)) == 23
        assert age_on(date(2000, 2, 29), date(2024, 2, 29)) == 24

class TestProfileEnergy:
    def test_missing_weight_uses_fallback(self):
        profile = UserProfile(id="u", birth_date=date(1984, 6, 15), height=179, sex="male")
        energy = tdee_for_profile(None, 0, 0, profile, date(2024, 6, 15))
        assert energy == compute_tdee(FALLBACK_WEIGHT_KG, 0, 0, 179, 40, Sex.MALE)

    def test_profile_age_counts_from_day(self):
        profile = UserProfile(id="u", birth_date=date(1984, 6, 15), height=179, sex="male")
        before = tdee_for_profile(82, 0, 0, profile, date(2024, 6, 14))
        after = tdee_for_profile(82, 0, 0, profile, date(2024, 6, 15))
        # one more year is 5 kcal less BMR
        assert before.bmr - after.bmr == 5

    def test_spanish_sex_alias(self):
        profile = UserProfile(id="u", sex="Femenino")
        assert profile.sex == Sex.FEMALE

    def test_null_profile_fields_use_defaults(self):
        profile = UserProfile.model_validate({"id": "u", "birth_date": None, "height": None, "sex": None})
        assert profile.birth_date == date(1990, 1, 1)
        assert profile.height == 170
        assert profile.sex == Sex.MALE
