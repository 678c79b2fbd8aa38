import re
from datetime import date
from typing import Optional
from .logging_config import ValidationError

# Input size limits
MAX_TEXT_LENGTH = 2000
MAX_NAME_LENGTH = 200
MAX_USER_ID_LENGTH = 64
MAX_WEIGHT_KG = 500  # Reasonable upper limit
MIN_WEIGHT_KG = 20   # Reasonable lower limit
MIN_HEIGHT_CM = 50
MAX_HEIGHT_CM = 260
MAX_DAILY_STEPS = 200000

USER_ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-]+$')

def sanitize_text(text: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Strip control characters and surrounding whitespace, enforce a length limit"""
    if not isinstance(text, str):
        raise ValidationError("Input must be a string")

    # Remove control characters except newlines and tabs
    clean_text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text.strip())

    # Limit length
    if len(clean_text) > max_length:
        raise ValidationError(f"Text exceeds maximum length of {max_length} characters", "text")

    return clean_text

def require_field(value: Optional[str], field: str) -> str:
    """Reject missing or blank request fields, naming the field"""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field: {field}", field)
    return value

def validate_user_id(user_id: str) -> str:
    """User ids are Supabase UUIDs; anything id-shaped is accepted"""
    user_id = require_field(user_id, "userId").strip()

    if len(user_id) > MAX_USER_ID_LENGTH or not USER_ID_PATTERN.match(user_id):
        raise ValidationError("Invalid userId format", "userId")

    return user_id

def validate_weight(weight_kg: float) -> float:
    """Validate weight measurement"""
    if not isinstance(weight_kg, (int, float)) or isinstance(weight_kg, bool):
        raise ValidationError("Weight must be a number", "weight")

    weight_kg = float(weight_kg)

    if weight_kg < MIN_WEIGHT_KG:
        raise ValidationError(f"Weight too low (minimum {MIN_WEIGHT_KG} kg)", "weight")

    if weight_kg > MAX_WEIGHT_KG:
        raise ValidationError(f"Weight too high (maximum {MAX_WEIGHT_KG} kg)", "weight")

    # Round to 1 decimal place
    return round(weight_kg, 1)

def validate_height(height_cm: float) -> float:
    if not isinstance(height_cm, (int, float)) or isinstance(height_cm, bool):
        raise ValidationError("Height must be a number", "height")

    height_cm = float(height_cm)

    if height_cm < MIN_HEIGHT_CM or height_cm > MAX_HEIGHT_CM:
        raise ValidationError(f"Height must be between {MIN_HEIGHT_CM} and {MAX_HEIGHT_CM} cm", "height")

    return round(height_cm, 1)

def validate_birth_date(birth_date: date, today: date) -> date:
    if birth_date >= today:
        raise ValidationError("Birth date must be in the past", "birth_date")

    if today.year - birth_date.year > 120:
        raise ValidationError("Birth date too far in the past", "birth_date")

    return birth_date

def validate_body_fat(body_fat: float) -> float:
    if body_fat <= 0 or body_fat >= 70:
        raise ValidationError("Body fat must be between 0 and 70 %", "target_body_fat")
    return round(float(body_fat), 1)

def validate_waist(waist_cm: float) -> float:
    if waist_cm < 40 or waist_cm > 250:
        raise ValidationError("Waist must be between 40 and 250 cm", "target_waist")
    return round(float(waist_cm), 1)

def validate_steps_goal(steps: int) -> int:
    if steps <= 0 or steps > MAX_DAILY_STEPS:
        raise ValidationError(f"Step goal must be between 1 and {MAX_DAILY_STEPS}", "target_steps")
    return int(steps)

def validate_routine_name(name: str) -> str:
    name = sanitize_text(name, MAX_NAME_LENGTH)

    if len(name) == 0:
        raise ValidationError("Routine name cannot be empty", "name")

    return name
