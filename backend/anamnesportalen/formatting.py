"""
Turns the flat answer map of a finished form into the structured,
section-grouped payload stored with the entry, and back.

Only questions that are visible for the final answers end up in the
payload: a stale answer to a question that was later hidden (or a value
that is no longer a valid option) is dropped.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from anamnesportalen.config import settings
from anamnesportalen.conditions import unwrap_answer
from anamnesportalen.followups import OPTION_PLACEHOLDER, parse_runtime_id
from anamnesportalen.schemas import (
    AnsweredSection,
    DynamicFollowupQuestion,
    FormattedAnswer,
    FormattedResponse,
    FormQuestion,
    FormTemplate,
    Mode,
    SubmissionData,
    SubmissionMetadata,
)
from anamnesportalen.validation import CHOICE_TYPES, is_empty, validate_field_value
from anamnesportalen.visibility import resolve_section

logger = logging.getLogger(__name__)

OTHER_SENTINELS = ("Other", "Övrigt", "Annat")
OTHER_SUFFIXES = ("_other", "_övrigt", "_annat")

RAW_FALLBACK_SECTION = "Patientens svar"
NON_ANSWER_KEYS = ("formMetadata", "metadata", "_metadata", "_isOptician")
ENVELOPE_KEYS = ("metadata", "formattedAnswers", "rawAnswers", "_isOptician", "_metadata", "kiosk_customer_data")


def utc_timestamp(when: Optional[datetime] = None) -> str:
    when = when or datetime.now(timezone.utc)
    return when.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _other_companion(
    question: FormQuestion,
    answer: Any,
    answers: Mapping[str, Any],
    template: FormTemplate,
    visible_ids: Set[str],
) -> Optional[FormattedResponse]:
    """Free-text answer that goes with an "Other" choice, if it may be shown."""
    answer = unwrap_answer(answer)
    if question.type not in CHOICE_TYPES or answer not in OTHER_SENTINELS:
        return None
    if answer not in question.option_values():
        return None
    for suffix in OTHER_SUFFIXES:
        companion_id = f"{question.id}{suffix}"
        # A companion that is a question of its own follows its own visibility
        if template.find_question(companion_id) is not None and companion_id not in visible_ids:
            continue
        if not is_empty(answers.get(companion_id)):
            return FormattedResponse(id=companion_id, answer=answers[companion_id])
    return None


def _usable_answer(question: FormQuestion, answers: Mapping[str, Any]) -> bool:
    answer = answers.get(question.key)
    if is_empty(answer):
        return False
    if not validate_field_value(answer, question):
        logger.warning("Dropping answer for '%s': %r is not valid for this question", question.key, answer)
        return False
    return True


def format_answers(
    template: FormTemplate,
    answers: Mapping[str, Any],
    mode: Mode = "patient",
    submitted_at: Optional[datetime] = None,
) -> FormattedAnswer:
    """
    Build the FormattedAnswer for `answers`. Visibility is re-derived here,
    never taken from an earlier render.
    """
    formatted = FormattedAnswer(
        formTitle=template.title,
        submissionTimestamp=utc_timestamp(submitted_at),
        isOpticianSubmission=True if mode == "optician" else None,
    )

    for section in template.sections:
        resolved = resolve_section(section, answers, mode, template)
        if resolved is None:
            continue

        static = [q for q in resolved.questions if not isinstance(q, DynamicFollowupQuestion)]
        followups = [q for q in resolved.questions if isinstance(q, DynamicFollowupQuestion)]
        visible_ids = {q.key for q in resolved.questions}

        responses: List[FormattedResponse] = []
        emitted = set()

        def add(response: FormattedResponse):
            if response.id not in emitted:
                emitted.add(response.id)
                responses.append(response)

        for question in static:
            if _usable_answer(question, answers):
                answer = answers[question.id]
                add(FormattedResponse(id=question.id, answer=answer))
                companion = _other_companion(question, answer, answers, template, visible_ids)
                if companion is not None:
                    add(companion)

            for followup in followups:
                if followup.parentId == question.id and _usable_answer(followup, answers):
                    add(FormattedResponse(id=followup.runtimeId, answer=answers[followup.runtimeId]))

        if responses:
            formatted.answeredSections.append(
                AnsweredSection(section_title=section.section_title, responses=responses)
            )

    logger.debug(
        "Formatted %d sections, %d answers for '%s'",
        len(formatted.answeredSections),
        sum(len(s.responses) for s in formatted.answeredSections),
        template.title,
    )
    return formatted


def prepare_submission(
    template: FormTemplate,
    answers: Mapping[str, Any],
    template_id: Optional[str] = None,
    submitted_by: Mode = "patient",
) -> SubmissionData:
    formatted = format_answers(template, answers, mode=submitted_by)
    return SubmissionData(
        formattedAnswers=formatted,
        rawAnswers=dict(answers),
        metadata=SubmissionMetadata(
            formTemplateId=template_id or template.title,
            submittedAt=formatted.submissionTimestamp,
            version=settings.SUBMISSION_FORMAT_VERSION,
            submittedBy=submitted_by,
        ),
    )


# -- Reading stored payloads ------------------------------------------------

def extract_formatted_answers(payload: Any) -> Optional[Dict[str, Any]]:
    """
    Find the {answeredSections: [...]} structure in a stored payload. Older
    clients wrapped it once or twice in `formattedAnswers`, or sent raw answers
    only; raw answers become a single fallback section.
    """
    if not isinstance(payload, dict) or not payload:
        logger.warning("No answers provided or invalid format")
        return None

    if isinstance(payload.get("answeredSections"), list):
        return payload

    nested = payload.get("formattedAnswers")
    if isinstance(nested, dict):
        if "answeredSections" in nested:
            return nested
        if isinstance(nested.get("formattedAnswers"), dict):
            logger.debug("Found double-nested formattedAnswers structure")
            return nested["formattedAnswers"]

    if isinstance(payload.get("rawAnswers"), dict):
        inner = extract_formatted_answers(payload["rawAnswers"])
        if inner:
            return inner

    responses = [
        {"id": key, "answer": value}
        for key, value in payload.items()
        if key not in NON_ANSWER_KEYS
    ]
    return {"answeredSections": [{"section_title": RAW_FALLBACK_SECTION, "responses": responses}]}


def extract_form_data(payload: Dict[str, Any]) -> Dict[str, Any]:
    """The flat answer map inside a submission payload (new or legacy shape)."""
    if not isinstance(payload, dict):
        raise ValueError("Invalid answer structure in submission")
    if isinstance(payload.get("rawAnswers"), dict):
        return payload["rawAnswers"]
    if isinstance(payload.get("answers"), dict):
        return payload["answers"]
    return {key: value for key, value in payload.items() if key not in ENVELOPE_KEYS}


def is_optician_payload(payload: Mapping[str, Any]) -> bool:
    if payload.get("_isOptician") is True:
        return True
    for key in ("metadata", "_metadata"):
        meta = payload.get(key)
        if isinstance(meta, dict) and meta.get("submittedBy") == "optician":
            return True
    return False


# -- Summary input ----------------------------------------------------------

def format_answer_value(answer: Any) -> str:
    if answer is None:
        return "Inget svar"

    if isinstance(answer, list):
        parts = []
        for item in answer:
            if isinstance(item, dict):
                item = item["value"] if "value" in item else json.dumps(item, ensure_ascii=False)
            if item is None or item == "":
                continue
            parts.append(str(item))
        return ", ".join(parts)

    if isinstance(answer, dict):
        if "value" in answer:
            return str(answer["value"])
        return json.dumps(answer, ensure_ascii=False)

    if isinstance(answer, bool):
        return "Ja" if answer else "Nej"

    return str(answer)


def build_summary_input(template: FormTemplate, formatted: Union[FormattedAnswer, Dict[str, Any]]) -> str:
    """
    Plain-text rendering of the answers (in template order, optician-only
    questions left out) used as input for the AI summary.
    """
    if isinstance(formatted, FormattedAnswer):
        formatted = formatted.model_dump()

    output = "Patientens anamnesinformation:\n"

    answered: Dict[str, Any] = {}
    for section in (formatted or {}).get("answeredSections") or []:
        for response in section.get("responses") or []:
            if response and response.get("id") and not is_empty(response.get("answer")):
                answered[response["id"]] = response["answer"]

    if not answered:
        return output + "\nIngen information tillgänglig"

    followups_by_base: Dict[str, List[tuple]] = {}
    for key in answered:
        parsed = parse_runtime_id(key, template)
        if parsed:
            followups_by_base.setdefault(parsed[0], []).append((key, parsed[1]))

    for section in template.sections:
        section_added = False
        for question in section.questions:
            if question.show_in_mode == "optician":
                continue
            answer = answered.get(question.id)
            followups = followups_by_base.get(question.id, [])
            if answer is None and not followups:
                continue

            if not section_added:
                output += f"\n-- {section.section_title} --\n"
                section_added = True

            label = question.label or question.id
            if answer is not None:
                output += f"{label}: {format_answer_value(answer)}\n"

            for key, parent_value in followups:
                if OPTION_PLACEHOLDER in label:
                    followup_label = label.replace(OPTION_PLACEHOLDER, parent_value)
                else:
                    followup_label = f"{label} ({parent_value})"
                output += f"  └─ {followup_label}: {format_answer_value(answered[key])}\n"

    return output
