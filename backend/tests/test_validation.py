import pytest
from datetime import date
from backend.app.validation import (
    sanitize_text, require_field, validate_user_id, validate_weight, validate_height,
    validate_birth_date, validate_body_fat, validate_waist, validate_steps_goal,
    validate_routine_name, ValidationError
)
from backend.app.schemas import DailySummary, LogEvent, Mode, StructuredGuess
from pydantic import ValidationError as SchemaError

class TestValidation:
    """Test input validation functions"""

    def test_sanitize_text(self):
        """Test text sanitization"""
        # Basic sanitization
        assert sanitize_text("  hola mundo  ") == "hola mundo"

        # Stored verbatim so notes lines can be matched later
        assert sanitize_text("pan & queso <3") == "pan & queso <3"

        # Control character removal
        assert sanitize_text("hola\x00\x01mundo") == "holamundo"
        assert sanitize_text("línea 1\nlínea 2") == "línea 1\nlínea 2"

        # Length validation
        with pytest.raises(ValidationError):
            sanitize_text("a" * 3000)  # Too long

        # Type validation
        with pytest.raises(ValidationError):
            sanitize_text(123)  # Not a string

    def test_require_field(self):
        assert require_field("x", "text") == "x"

        with pytest.raises(ValidationError) as exc:
            require_field("   ", "text")
        assert exc.value.message == "Missing required field: text"
        assert exc.value.field == "text"

        with pytest.raises(ValidationError):
            require_field(None, "userId")

    def test_validate_user_id(self):
        assert validate_user_id(" 3f6c2a1e-9b7d-4c1a-8e2f-0a1b2c3d4e5f ") == "3f6c2a1e-9b7d-4c1a-8e2f-0a1b2c3d4e5f"

        with pytest.raises(ValidationError):
            validate_user_id("user; drop table")

        with pytest.raises(ValidationError):
            validate_user_id("a" * 65)

    def test_validate_weight(self):
        """Test weight validation"""
        # Valid weights
        assert validate_weight(70.5) == 70.5
        assert validate_weight(80) == 80.0
        assert validate_weight(50.123) == 50.1  # Rounded to 1 decimal

        # Invalid weights
        with pytest.raises(ValidationError):
            validate_weight(10)  # Too low

        with pytest.raises(ValidationError):
            validate_weight(600)  # Too high

        with pytest.raises(ValidationError):
            validate_weight("70")  # Wrong type

    def test_validate_height(self):
        assert validate_height(179) == 179.0

        with pytest.raises(ValidationError):
            validate_height(20)

        with pytest.raises(ValidationError):
            validate_height(True)

    def test_validate_birth_date(self):
        today = date(2024, 6, 15)
        assert validate_birth_date(date(1984, 6, 15), today) == date(1984, 6, 15)

        with pytest.raises(ValidationError):
            validate_birth_date(today, today)

        with pytest.raises(ValidationError):
            validate_birth_date(date(1880, 1, 1), today)

    def test_body_targets(self):
        assert validate_body_fat(15.25) == 15.2
        assert validate_waist(82) == 82.0
        assert validate_steps_goal(10000) == 10000

        with pytest.raises(ValidationError):
            validate_body_fat(0)
        with pytest.raises(ValidationError):
            validate_waist(300)
        with pytest.raises(ValidationError):
            validate_steps_goal(0)

    def test_validate_routine_name(self):
        assert validate_routine_name("  Pierna  ") == "Pierna"

        with pytest.raises(ValidationError):
            validate_routine_name("   ")

class TestSchemas:
    def test_guess_modes_normalised(self):
        guess = StructuredGuess.model_validate({"nutrition_mode": " Set ", "steps_mode": None})

        assert guess.nutrition_mode == Mode.SET
        assert guess.steps_mode == Mode.ADD
        assert guess.is_correction

    def test_guess_unknown_mode_rejected(self):
        with pytest.raises(SchemaError):
            StructuredGuess.model_validate({"nutrition_mode": "replace"})

    def test_guess_blank_training_is_none(self):
        assert StructuredGuess(training="  ").training is None

    def test_summary_null_counters(self):
        row = {"user_id": "u", "date": "2024-06-15", "calories": None, "steps": 1234.6, "notes": None}
        summary = DailySummary.model_validate(row)

        assert summary.calories == 0
        assert summary.steps == 1235
        assert summary.notes == ""

    def test_summary_float_counters_round_half_up(self):
        row = {"user_id": "u", "date": "2024-06-15", "steps": 1234.5, "calories": 2.5}
        summary = DailySummary.model_validate(row)

        assert summary.steps == 1235
        assert summary.calories == 3

    def test_summary_row_is_json(self):
        row = DailySummary(user_id="u", date=date(2024, 6, 15), calories=100).to_row()
        assert row["date"] == "2024-06-15"
        assert row["calories"] == 100

    def test_event_guess_ignores_extra_keys(self):
        event = LogEvent(user_id="u", date=date(2024, 6, 15), raw_text="x",
                         parsed_data={"burned_calories": 200, "session_details": [{"exercise_name": "a"}]})
        assert event.guess().burned_calories == 200
