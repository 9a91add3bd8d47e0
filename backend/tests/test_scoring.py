from anamnesportalen.schemas import FormTemplate
from anamnesportalen.scoring import answer_score, calculate_score

CISS = {
    "title": "CISS",
    "scoring_config": {"enabled": True, "total_threshold": 5},
    "sections": [{
        "section_title": "Symtom vid läsning",
        "questions": [
            {"id": "tired_eyes", "label": "Trötta ögon", "type": "radio",
             "options": ["Aldrig (0)", "Ibland (2)", "Alltid (4)"],
             "scoring": {"enabled": True, "max_value": 4, "flag_threshold": 4,
                         "warning_message": "Kontrollera ackommodation"}},
            {"id": "headache", "label": "Huvudvärk", "type": "radio",
             "options": ["Aldrig (0)", "Ibland (2)", "Alltid (4)"],
             "scoring": {"enabled": True, "max_value": 4}},
            {"id": "comment", "label": "Kommentar", "type": "text"},
        ],
    }],
}


def test_answer_score():
    assert answer_score("Ofta (3)") == 3
    assert answer_score(2) == 2
    assert answer_score({"value": "Alltid (4)"}) == 4
    assert answer_score("Aldrig") == 0
    assert answer_score(True) == 0


def test_disabled_scoring_returns_none(template):
    assert calculate_score(template, {"has_license": "Ja"}) is None


def test_totals_flags_and_threshold():
    template = FormTemplate.model_validate(CISS)
    result = calculate_score(template, {"tired_eyes": "Alltid (4)", "headache": "Ibland (2)", "comment": "(9)"})

    assert result.total_score == 6
    assert result.max_possible_score == 8
    assert result.percentage == 75
    assert result.threshold_exceeded is True
    assert [f.question_id for f in result.flagged_questions] == ["tired_eyes"]
    assert result.flagged_questions[0].warning_message == "Kontrollera ackommodation"


def test_unanswered_questions_count_towards_max_only():
    template = FormTemplate.model_validate(CISS)
    result = calculate_score(template, {"headache": ""})

    assert result.total_score == 0
    assert result.max_possible_score == 8
    assert result.percentage == 0
    assert result.threshold_exceeded is False
    assert result.flagged_questions == []
