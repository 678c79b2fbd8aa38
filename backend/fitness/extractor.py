from typing import Any, List, Optional
import json
import logging

from pydantic import ValidationError as SchemaError

from backend.app.llm import claude_call, response_text
from backend.app.logging_config import ExtractionError, ExternalServiceError
from backend.app.schemas import StructuredGuess

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """Extract fitness data from this note: "{text}"

Return ONLY valid JSON in this exact format with no additional text:
{{
  "weight": kg as number or null,
  "waist": cm as number or null,
  "body_fat": percent as number or null,
  "calories": kcal eaten as integer or null,
  "protein": grams as integer or null,
  "carbs": grams as integer or null,
  "fat": grams as integer or null,
  "nutrition_mode": "add" or "set",
  "steps": integer or null,
  "steps_mode": "add" or "set",
  "burned_calories": kcal burned in exercise as integer or null,
  "training_mode": "add" or "set",
  "sleep": hours slept as number or null,
  "training": short description of the workout or null,
  "notes": anything else worth keeping or null
}}

Rules:
- Use null for anything the note does not mention. Never use 0 for "not mentioned".
- Modes are "add" when the note reports something new ("comí", "caminé", "I ate").
- Modes are "set" only when the note corrects the day's total ("en total hoy llevo", "corrige", "actually my total is").
- Estimate calories and macros for foods described without numbers.
- Estimate burned_calories for described exercise when no number is given.
"""

def json_spans(text: str) -> List[str]:
    """Candidate {...} and [...] spans, in the order they open"""
    if not text:
        return []
    spans = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            spans.append((start, text[start:end + 1]))
    return [span for _, span in sorted(spans)]

def find_json_span(text: str) -> Optional[str]:
    spans = json_spans(text)
    return spans[0] if spans else None

def parse_json_reply(text: str) -> Any:
    spans = json_spans(text)
    if not spans:
        raise ExtractionError("No JSON found in model reply", raw_reply=text)
    error = None
    for span in spans:
        # prose may hold brackets of its own, e.g. "[Voz]" ahead of the object
        try:
            return json.loads(span)
        except json.JSONDecodeError as e:
            error = e
    raise ExtractionError(f"Model reply is not valid JSON: {error.msg}", raw_reply=text) from error

class FitnessExtractor:
    """Free text -> StructuredGuess through one LLM completion"""

    def __init__(self, llm_client, model: str = "claude-3-5-haiku-20241022", tracer=None):
        self.llm_client = llm_client
        self.model = model
        self.tracer = tracer

    def complete(self, text: str) -> str:
        try:
            resp = claude_call(
                self.llm_client,
                messages=[{"role": "user", "content": EXTRACTION_PROMPT.format(text=text)}],
                model=self.model,
                max_tokens=600,
                tracer=self.tracer,
                metadata={"tool": "fitness_extractor", "text": text[:100]}
            )
        except ExternalServiceError as e:
            raise ExtractionError(e.message) from e
        return response_text(resp)

    def extract(self, text: str) -> StructuredGuess:
        reply = self.complete(text)
        return self.parse_reply(reply)

    def parse_reply(self, reply: str) -> StructuredGuess:
        data = parse_json_reply(reply)

        if isinstance(data, list):
            data = next((item for item in data if isinstance(item, dict)), None)
        if not isinstance(data, dict):
            raise ExtractionError("Model reply is not a JSON object", raw_reply=reply)

        try:
            guess = StructuredGuess.model_validate(data)
        except SchemaError as e:
            raise ExtractionError(f"Model reply has invalid values: {e.error_count()} errors", raw_reply=reply) from e

        logger.info(
            "Extracted structured guess",
            extra={"fields": sorted(k for k, v in guess.model_dump().items() if v is not None)}
        )
        return guess
