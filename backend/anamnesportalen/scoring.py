"""
Score calculation for scoring-enabled forms (symptom questionnaires such
as CISS). Option labels carry their score as a trailing "(N)", e.g.
"Ofta (3)"; numeric answers score as themselves.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from anamnesportalen.schemas import (
    FlaggedQuestion,
    FormQuestion,
    FormSection,
    FormTemplate,
    ScoringResult,
)

_SCORE_RE = re.compile(r"\((\d+)\)")


def answer_score(answer: Any) -> int:
    if isinstance(answer, dict) and "value" in answer:
        answer = answer["value"]
    if isinstance(answer, bool):
        return 0
    if isinstance(answer, (int, float)):
        return int(answer)
    if isinstance(answer, str):
        match = _SCORE_RE.search(answer)
        if match:
            return int(match.group(1))
    return 0


def _is_empty(answer: Any) -> bool:
    return answer is None or answer == ""


def _scored(question: FormQuestion) -> bool:
    return question.scoring is not None and question.scoring.enabled


def section_score(section: FormSection, answers: Mapping[str, Any]) -> int:
    return sum(
        answer_score(answers.get(q.id))
        for q in section.questions
        if _scored(q) and not _is_empty(answers.get(q.id))
    )


def calculate_score(template: FormTemplate, answers: Mapping[str, Any]) -> Optional[ScoringResult]:
    """Return the scoring summary, or None when the form has scoring disabled."""
    config = template.scoring_config
    if config is None or not config.enabled:
        return None

    total = 0
    max_possible = 0
    flagged = []

    for section in template.sections:
        for question in section.questions:
            if not _scored(question):
                continue
            max_possible += question.scoring.max_value

            answer = answers.get(question.id)
            if _is_empty(answer):
                continue

            score = answer_score(answer)
            total += score

            threshold = question.scoring.flag_threshold
            if threshold is not None and score >= threshold:
                flagged.append(FlaggedQuestion(
                    question_id=question.id,
                    label=question.label,
                    score=score,
                    warning_message=question.scoring.warning_message,
                ))

    percentage = round(total / max_possible * 100) if max_possible > 0 else 0
    exceeded = config.total_threshold is not None and total >= config.total_threshold

    return ScoringResult(
        total_score=total,
        max_possible_score=max_possible,
        percentage=percentage,
        threshold_exceeded=exceeded,
        flagged_questions=flagged,
    )
