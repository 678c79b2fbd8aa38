from typing import Dict, List, Optional, Tuple
from datetime import date, timedelta
import json
import logging

from pydantic import ValidationError as SchemaError

from backend.app.llm import claude_call, response_text
from backend.app.logging_config import ExternalServiceError
from backend.app.schemas import Achievement, CoachInsight, DailySummary, StreakInfo
from .extractor import parse_json_reply
from .ledger import parse_exercise_kcal

logger = logging.getLogger(__name__)

def consecutive_days(dates: List[date], today: date) -> Dict[str, int]:
    """Current and longest run of consecutive days.

    The current streak only counts if the newest day is today or yesterday.
    """
    sorted_dates = sorted(set(dates), reverse=True)
    if not sorted_dates:
        return {"current": 0, "longest": 0}

    current_streak = 0
    yesterday = today - timedelta(days=1)

    if sorted_dates[0] in (today, yesterday):
        expected_date = sorted_dates[0]
        for activity_date in sorted_dates:
            if activity_date != expected_date:
                break
            current_streak += 1
            expected_date -= timedelta(days=1)

    longest_streak = 0
    temp_streak = 1
    for i in range(1, len(sorted_dates)):
        if sorted_dates[i-1] - sorted_dates[i] == timedelta(days=1):
            temp_streak += 1
        else:
            longest_streak = max(longest_streak, temp_streak)
            temp_streak = 1
    longest_streak = max(longest_streak, temp_streak)

    return {"current": current_streak, "longest": longest_streak}

def _trained(summary: DailySummary) -> bool:
    return bool(summary.training) or parse_exercise_kcal(summary.notes) > 0

def calculate_streaks(summaries: List[DailySummary], today: date, step_goal: int) -> List[StreakInfo]:
    selectors = {
        "logging": lambda s: True,
        "nutrition": lambda s: s.calories > 0,
        "steps": lambda s: s.steps >= step_goal,
        "training": _trained,
    }

    streaks = []
    for streak_type, selected in selectors.items():
        dates = [s.date for s in summaries if selected(s)]
        run = consecutive_days(dates, today)
        streaks.append(StreakInfo(
            type=streak_type,
            current_streak=run["current"],
            longest_streak=run["longest"],
            last_activity=max(dates) if dates else None
        ))
    return streaks

STREAK_LABELS = {
    "logging": "registro",
    "nutrition": "nutrición",
    "steps": "pasos",
    "training": "entrenamiento",
}

def generate_achievements(summaries: List[DailySummary], streaks: List[StreakInfo],
                          today: date, step_goal: int) -> List[Achievement]:
    achievements = []

    if summaries:
        achievements.append(Achievement(
            id="first_log",
            title="Primer registro",
            description="Registraste tu primer día",
            earned_on=min(s.date for s in summaries),
            progress=1.0
        ))

    goal_days = [s.date for s in summaries if s.steps >= step_goal]
    if goal_days:
        achievements.append(Achievement(
            id="step_goal",
            title="Meta de pasos",
            description=f"Superaste {step_goal} pasos en un día",
            earned_on=min(goal_days),
            progress=1.0
        ))

    for streak in streaks:
        label = STREAK_LABELS[streak.type]
        for days, name in ((7, "week"), (30, "month")):
            best = max(streak.current_streak, streak.longest_streak)
            achievements.append(Achievement(
                id=f"{streak.type}_{name}_streak",
                title=f"Racha de {days} días: {label}",
                description=f"{days} días consecutivos de {label}",
                earned_on=today if streak.current_streak >= days else None,
                progress=min(best / days, 1.0)
            ))

    return achievements

def generate_insights(summaries: List[DailySummary]) -> List[str]:
    """Rule-based observations over the given days (oldest first)"""
    insights = []

    weights = [s.weight for s in summaries[-7:] if s.weight is not None]
    if len(weights) >= 2:
        weight_change = weights[-1] - weights[0]
        if weight_change < -0.5:
            insights.append(f"Bajaste {abs(weight_change):.1f} kg en la última semana")
        elif weight_change > 0.5:
            insights.append(f"Subiste {weight_change:.1f} kg en la última semana, revisa tus porciones")
        else:
            insights.append("Peso estable esta semana")

    balanced = [s for s in summaries[-3:] if s.calories > 0 and s.tdee]
    if balanced:
        avg_balance = sum(s.calories - s.tdee for s in balanced) / len(balanced)
        if avg_balance < -200:
            insights.append(f"Déficit promedio de {abs(avg_balance):.0f} kcal en los últimos días")
        elif avg_balance > 200:
            insights.append(f"Superávit promedio de {avg_balance:.0f} kcal en los últimos días")

    with_protein = [s for s in summaries[-7:] if s.protein > 0 and s.weight]
    if with_protein:
        per_kg = sum(s.protein / s.weight for s in with_protein) / len(with_protein)
        if per_kg < 1.6:
            insights.append(f"Proteína promedio de {per_kg:.1f} g/kg, apunta a 1.6 g/kg o más")

    sleeps = [s.sleep for s in summaries[-7:] if s.sleep]
    if sleeps:
        avg_sleep = sum(sleeps) / len(sleeps)
        if avg_sleep < 7:
            insights.append(f"Duermes {avg_sleep:.1f} h en promedio, intenta llegar a 7 h")

    logged_days = len([s for s in summaries[-7:] if s.calories > 0])
    if logged_days >= 5:
        insights.append("Excelente constancia registrando esta semana")

    return insights

COACH_PROMPT = """Eres un Coach de Fitness experto, científico de datos y nutricionista.
Analiza los siguientes datos diarios de un usuario y proporciona exactamente 4 insights clave.

Retorna UNICAMENTE un array JSON de objetos con este formato:
[
  {{
    "type": "positive" | "warning" | "info" | "critical",
    "category": "Nutrición" | "Entrenamiento" | "Recuperación" | "Hábitos",
    "priority": "Alta" | "Media" | "Baja",
    "title": "título corto y directo",
    "message": "explicación del patrón detectado",
    "action": "misión concreta para el usuario"
  }}
]

DATOS DEL USUARIO:
{data}

Mira tendencias más allá del día a día, prioriza con "Alta" los temas críticos
(poca proteína, poco sueño, rebote de peso) y responde totalmente en español.
"""

def _prompt_rows(summaries: List[DailySummary]) -> str:
    rows = [
        {
            "date": s.date.isoformat(),
            "weight": s.weight,
            "waist": s.waist,
            "body_fat": s.body_fat,
            "calories": s.calories,
            "protein": s.protein,
            "carbs": s.carbs,
            "fat": s.fat,
            "steps": s.steps,
            "sleep": s.sleep,
            "tdee": s.tdee,
            "training": s.training,
            "exercise_kcal": parse_exercise_kcal(s.notes),
        }
        for s in summaries
    ]
    return json.dumps(rows, ensure_ascii=False)

class CoachInsights:
    """LLM coaching over recent days, falling back to the rule-based insights"""

    MAX_DAYS = 30

    def __init__(self, llm_client, model: str = "claude-3-5-sonnet-20241022", tracer=None):
        self.llm_client = llm_client
        self.model = model
        self.tracer = tracer

    def generate(self, summaries: List[DailySummary]) -> Tuple[List[CoachInsight], str]:
        recent = summaries[-self.MAX_DAYS:]
        try:
            resp = claude_call(
                self.llm_client,
                messages=[{"role": "user", "content": COACH_PROMPT.format(data=_prompt_rows(recent))}],
                model=self.model,
                max_tokens=1500,
                tracer=self.tracer,
                metadata={"tool": "coach_insights", "days": len(recent)}
            )
            data = parse_json_reply(response_text(resp))
            if isinstance(data, dict):
                data = [data]
            insights = [CoachInsight.model_validate(item) for item in data]
            if insights:
                return insights, "llm"
        except (ExternalServiceError, SchemaError, TypeError) as e:
            logger.warning(f"Coach insights fell back to rules: {e}")

        return self.fallback(recent), "rules"

    def fallback(self, summaries: List[DailySummary]) -> List[CoachInsight]:
        return [
            CoachInsight(type="info", category="Hábitos", priority="Media", title=text, message=text)
            for text in generate_insights(summaries)
        ]
