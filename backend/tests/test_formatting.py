from datetime import datetime, timezone

from anamnesportalen.formatting import (
    build_summary_input,
    extract_form_data,
    extract_formatted_answers,
    format_answer_value,
    format_answers,
    prepare_submission,
)
from anamnesportalen.visibility import visible_question_ids


def _responses(formatted):
    return {
        section.section_title: [(r.id, r.answer) for r in section.responses]
        for section in formatted.answeredSections
    }


def test_keeps_false_and_zero_drops_empty(template_dict):
    template_dict["sections"][0]["questions"].append({"id": "pupil_mm", "type": "number"})
    template_dict["sections"][0]["questions"].append({"id": "consent", "type": "text"})
    from anamnesportalen.schemas import FormTemplate
    template = FormTemplate.model_validate(template_dict)

    answers = {"contact_preference": "", "has_license": None, "pupil_mm": 0, "consent": False}
    formatted = format_answers(template, answers)

    assert _responses(formatted) == {"Kontakt": [("pupil_mm", 0), ("consent", False)]}


def test_hidden_stale_answers_do_not_leak(template):
    answers = {
        "contact_preference": "Email",
        "contact_preference_other": "old@value.se",
        "has_license": "Nej",
        "license_glasses": "Ja",
        "optician_notes": "should not appear",
    }
    formatted = format_answers(template, answers)
    ids = {r.id for s in formatted.answeredSections for r in s.responses}

    assert ids == {"contact_preference", "has_license"}
    assert ids <= visible_question_ids(template, answers)


def test_other_companion_added_once(template):
    answers = {"contact_preference": "Other", "contact_preference_other": "x@y.se"}
    formatted = format_answers(template, answers)
    assert _responses(formatted)["Kontakt"] == [
        ("contact_preference", "Other"),
        ("contact_preference_other", "x@y.se"),
    ]


def test_localized_other_suffix(template_dict):
    template_dict["sections"][0]["questions"][0]["options"] = ["Email", "Övrigt"]
    from anamnesportalen.schemas import FormTemplate
    template = FormTemplate.model_validate(template_dict)

    formatted = format_answers(template, {"contact_preference": "Övrigt", "contact_preference_övrigt": "Brev"})
    assert _responses(formatted)["Kontakt"] == [
        ("contact_preference", "Övrigt"),
        ("contact_preference_övrigt", "Brev"),
    ]


def test_invalid_option_value_is_dropped(template):
    formatted = format_answers(template, {"contact_preference": "Fax", "has_license": "Ja"})
    assert _responses(formatted)["Kontakt"] == [("has_license", "Ja")]


def test_followups_placed_after_parent(template):
    answers = {
        "smoking": ["Cigarettes", "Vape"],
        "duration_for_Vape": "2 år",
        "duration_for_Cigarettes": "10 år",
        "duration_for_Snus": "stale",
    }
    formatted = format_answers(template, answers)
    assert _responses(formatted)["Livsstil"] == [
        ("smoking", ["Cigarettes", "Vape"]),
        ("duration_for_Cigarettes", "10 år"),
        ("duration_for_Vape", "2 år"),
    ]


def test_empty_sections_omitted_and_order_kept(template):
    formatted = format_answers(template, {"has_license": "Ja", "license_glasses": "Nej"})
    assert [s.section_title for s in formatted.answeredSections] == ["Kontakt", "Körkort"]


def test_timestamp_and_title(template):
    when = datetime(2025, 3, 1, 8, 30, tzinfo=timezone.utc)
    formatted = format_answers(template, {}, submitted_at=when)
    assert formatted.formTitle == "Synundersökning"
    assert formatted.submissionTimestamp == "2025-03-01T08:30:00.000Z"
    assert formatted.answeredSections == []


def test_prepare_submission(template):
    answers = {"has_license": "Ja", "optician_notes": "Bra syn"}
    submission = prepare_submission(template, answers, template_id="form-1", submitted_by="optician")

    assert submission.rawAnswers == answers
    assert submission.metadata.formTemplateId == "form-1"
    assert submission.metadata.version == "1.0"
    assert submission.metadata.submittedAt == submission.formattedAnswers.submissionTimestamp
    assert submission.formattedAnswers.isOpticianSubmission is True
    assert "Optikerns anteckningar" in [s.section_title for s in submission.formattedAnswers.answeredSections]


def test_extract_formatted_answers_shapes():
    inner = {"formTitle": "t", "answeredSections": [{"section_title": "s", "responses": []}]}

    assert extract_formatted_answers(inner) is inner
    assert extract_formatted_answers({"formattedAnswers": inner}) is inner
    assert extract_formatted_answers({"formattedAnswers": {"formattedAnswers": inner}}) is inner
    assert extract_formatted_answers({"rawAnswers": {"formattedAnswers": inner}}) is inner
    assert extract_formatted_answers(None) is None

    fallback = extract_formatted_answers({"q1": "Ja", "_metadata": {"submittedBy": "patient"}})
    assert fallback == {"answeredSections": [{"section_title": "Patientens svar", "responses": [{"id": "q1", "answer": "Ja"}]}]}


def test_extract_form_data():
    assert extract_form_data({"rawAnswers": {"a": 1}, "formattedAnswers": {}}) == {"a": 1}
    assert extract_form_data({"answers": {"b": 2}}) == {"b": 2}
    assert extract_form_data({"c": 3, "_isOptician": True, "metadata": {}}) == {"c": 3}


def test_format_answer_value():
    assert format_answer_value(["A", {"value": "B"}, ""]) == "A, B"
    assert format_answer_value({"value": 3}) == "3"
    assert format_answer_value(None) == "Inget svar"
    assert format_answer_value(False) == "Nej"


def test_summary_input(template):
    answers = {
        "contact_preference": "Email",
        "smoking": ["Vape"],
        "duration_for_Vape": "2 år",
        "optician_notes": "intern",
    }
    formatted = format_answers(template, answers, mode="optician")
    text = build_summary_input(template, formatted)

    assert text.startswith("Patientens anamnesinformation:\n")
    assert "-- Kontakt --\nHur vill du bli kontaktad?: Email\n" in text
    assert "  └─ Hur länge har du använt Vape?: 2 år\n" in text
    assert "intern" not in text


def test_summary_input_without_answers(template):
    text = build_summary_input(template, format_answers(template, {}))
    assert text.endswith("Ingen information tillgänglig")


def test_hidden_other_companion_question_is_left_out():
    from anamnesportalen.schemas import FormTemplate
    template = FormTemplate.model_validate({
        "title": "Kontakt",
        "sections": [{
            "section_title": "Kontakt",
            "questions": [
                {"id": "gate", "type": "radio", "options": ["Ja", "Nej"]},
                {"id": "contact", "type": "radio", "options": ["Email", "Other"]},
                {"id": "contact_other", "type": "text", "show_if": {"question": "gate", "equals": "Ja"}},
            ],
        }],
    })
    answers = {"gate": "Nej", "contact": "Other", "contact_other": "stale"}

    formatted = format_answers(template, answers)
    ids = {r.id for s in formatted.answeredSections for r in s.responses}

    assert ids == {"gate", "contact"}
    assert ids <= visible_question_ids(template, answers)

    answers["gate"] = "Ja"
    assert _responses(format_answers(template, answers))["Kontakt"] == [
        ("gate", "Ja"),
        ("contact", "Other"),
        ("contact_other", "stale"),
    ]


def test_wrapped_other_answer_keeps_its_companion(template):
    answers = {"contact_preference": {"value": "Other"}, "contact_preference_other": "Brev"}
    assert _responses(format_answers(template, answers))["Kontakt"] == [
        ("contact_preference", {"value": "Other"}),
        ("contact_preference_other", "Brev"),
    ]


def test_summary_input_static_id_containing_for():
    from anamnesportalen.schemas import FormTemplate
    template = FormTemplate.model_validate({
        "title": "Besök",
        "sections": [{
            "section_title": "Besök",
            "questions": [
                {"id": "reason", "label": "Reason", "type": "text"},
                {"id": "reason_for_visit", "label": "Why visit", "type": "text"},
            ],
        }],
    })
    formatted = format_answers(template, {"reason": "a", "reason_for_visit": "b"})
    text = build_summary_input(template, formatted)

    assert "Reason: a\nWhy visit: b\n" in text
    assert "└─" not in text
