import json
from unittest.mock import MagicMock

import pytest

from backend.app.logging_config import ExtractionError
from backend.app.schemas import Mode
from backend.fitness.extractor import FitnessExtractor, find_json_span, parse_json_reply
from backend.fitness.reconciler import process_text_log
from backend.tests.fakes import TODAY, USER_ID, FakeStore

def claude_client(reply: str):
    client = MagicMock()
    client.messages.create.return_value = MagicMock(content=[MagicMock(text=reply)])
    return client

class TestJsonSpan:
    def test_object_inside_prose(self):
        assert find_json_span('Claro! {"steps": 10} listo') == '{"steps": 10}'

    def test_array_opening_first(self):
        assert find_json_span('[{"calories": 1}]') == '[{"calories": 1}]'

    def test_no_braces(self):
        assert find_json_span("No entendí la nota") is None

    def test_bracket_in_prose_before_object(self):
        assert parse_json_reply('Nota [Voz] procesada: {"calories": 300}') == {"calories": 300}

    def test_extractor_skips_bracketed_prose(self):
        guess = FitnessExtractor(claude_client('Nota [Voz] procesada: {"calories": 300}')).extract("cena")
        assert guess.calories == 300

    def test_invalid_json_raises(self):
        with pytest.raises(ExtractionError):
            parse_json_reply("{calories: muchas}")

class TestFitnessExtractor:
    def test_extracts_fields(self):
        reply = json.dumps({"calories": 450, "protein": 30, "nutrition_mode": "add", "steps": None})
        extractor = FitnessExtractor(claude_client(reply))

        guess = extractor.extract("desayuno 450 kcal")

        assert guess.calories == 450
        assert guess.protein == 30
        assert guess.steps is None
        assert guess.weight is None

    def test_prompt_contains_text(self):
        client = claude_client("{}")
        FitnessExtractor(client, model="some-model").extract("dormí 7 horas")

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "some-model"
        assert "dormí 7 horas" in kwargs["messages"][0]["content"]

    def test_reply_wrapped_in_code_fence(self):
        reply = '```json\n{"steps": 8000, "steps_mode": "SET"}\n```'
        guess = FitnessExtractor(claude_client(reply)).extract("llevo 8000 pasos")

        assert guess.steps == 8000
        assert guess.steps_mode == Mode.SET

    def test_array_reply_uses_first_object(self):
        reply = '[{"weight": 81.5}, {"weight": 99}]'
        guess = FitnessExtractor(claude_client(reply)).extract("peso 81.5")
        assert guess.weight == 81.5

    def test_blank_modes_default_to_add(self):
        reply = json.dumps({"calories": 100, "nutrition_mode": "", "training_mode": None})
        guess = FitnessExtractor(claude_client(reply)).extract("pan")

        assert guess.nutrition_mode == Mode.ADD
        assert guess.training_mode == Mode.ADD
        assert not guess.is_correction

    def test_unknown_keys_ignored(self):
        guess = FitnessExtractor(claude_client('{"mood": "feliz", "sleep": 8}')).extract("dormí 8")
        assert guess.sleep == 8

    def test_negative_value_rejected(self):
        with pytest.raises(ExtractionError):
            FitnessExtractor(claude_client('{"calories": -300}')).extract("x")

    def test_bare_number_rejected(self):
        with pytest.raises(ExtractionError):
            FitnessExtractor(claude_client("[42]")).extract("x")

    def test_api_failure_is_extraction_error(self):
        client = MagicMock()
        client.messages.create.side_effect = RuntimeError("overloaded")

        with pytest.raises(ExtractionError):
            FitnessExtractor(client).extract("x")

    def test_missing_client_is_extraction_error(self):
        with pytest.raises(ExtractionError):
            FitnessExtractor(None).extract("x")

    def test_prose_reply_stores_nothing(self):
        store = FakeStore()
        extractor = FitnessExtractor(claude_client("Lo siento, no puedo ayudar con eso."))

        with pytest.raises(ExtractionError) as exc:
            process_text_log(store, extractor, USER_ID, "hola", TODAY)

        assert exc.value.error_code == "EXTRACTION_ERROR"
        assert store.calls == []
        assert store.summaries == {}
        assert store.events == {}
