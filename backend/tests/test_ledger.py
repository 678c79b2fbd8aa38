from backend.fitness import ledger

class TestLedger:
    def test_parse_missing_marker_is_zero(self):
        assert ledger.parse_exercise_kcal("") == 0
        assert ledger.parse_exercise_kcal(None) == 0
        assert ledger.parse_exercise_kcal("corrí un rato") == 0

    def test_parse_tolerates_spacing(self):
        assert ledger.parse_exercise_kcal("[ExKcal:200]") == 200
        assert ledger.parse_exercise_kcal("algo\n[ExKcal:   45]") == 45

    def test_encoded_marker_parses_back(self):
        assert ledger.encode_marker(350) == "[ExKcal: 350]"
        assert ledger.parse_exercise_kcal(ledger.encode_marker(350)) == 350

    def test_append_keeps_exactly_one_marker(self):
        notes = "Desayuno\n[ExKcal: 100]"
        updated = ledger.append_entry(notes, "Corrí 30 min", ledger.TAG_VOICE, 250)

        assert updated.count("[ExKcal:") == 1
        assert ledger.parse_exercise_kcal(updated) == 250
        assert updated.splitlines() == ["Desayuno", "[Voz] Corrí 30 min", "[ExKcal: 250]"]

    def test_append_to_empty_notes(self):
        assert ledger.append_entry("", "Peso 80", None, 0) == "Peso 80\n[ExKcal: 0]"

    def test_multiline_raw_text_becomes_one_line(self):
        updated = ledger.append_entry("", "comí\n  pan   y queso", ledger.TAG_CORRECTION, 0)
        assert updated.splitlines()[0] == "[CORRECCIÓN] comí pan y queso"

    def test_remove_drops_newest_exact_line(self):
        notes = "[Voz] 500 pasos\n[Voz] 500 pasos\n[ExKcal: 0]"
        updated = ledger.remove_entry_line(notes, "500 pasos", 0)
        assert updated == "[Voz] 500 pasos"

    def test_remove_ignores_lines_that_only_contain_text(self):
        notes = "[Voz] pan con palta\n[Voz] pan\n[ExKcal: 0]"
        assert ledger.remove_entry_line(notes, "pan", 0) == "[Voz] pan con palta"

    def test_remove_matches_correction_and_untagged_lines(self):
        notes = "[CORRECCIÓN] en total 2000 kcal\nCena"
        assert ledger.remove_entry_line(notes, "en total 2000 kcal", 0) == "Cena"
        assert ledger.remove_entry_line(notes, "Cena", 0) == "[CORRECCIÓN] en total 2000 kcal"

    def test_remove_rewrites_positive_marker(self):
        notes = "[Voz] trote 150 kcal\nCena\n[ExKcal: 350]"
        updated = ledger.remove_entry_line(notes, "trote 150 kcal", 200)
        assert updated == "Cena\n[ExKcal: 200]"

    def test_remove_without_match_keeps_lines(self):
        notes = "Cena\n[ExKcal: 50]"
        assert ledger.remove_entry_line(notes, "nada", 50) == "Cena\n[ExKcal: 50]"
