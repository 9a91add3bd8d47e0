from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Set

from anamnesportalen.conditions import evaluate_condition, evaluate_section_condition
from anamnesportalen.followups import generate_followups
from anamnesportalen.schemas import FormQuestion, FormSection, FormTemplate, Mode, ResolvedSection

logger = logging.getLogger(__name__)

Step = List[ResolvedSection]


def visible_in_mode(question: FormQuestion, mode: Mode) -> bool:
    if question.show_in_mode in (None, "all"):
        return True
    return question.show_in_mode == mode


def resolve_section(
    section: FormSection,
    answers: Mapping[str, Any],
    mode: Mode,
    template: FormTemplate,
) -> Optional[ResolvedSection]:
    """Questions of one section that render right now, or None when the section is hidden."""
    if not evaluate_section_condition(section.show_if, answers, template):
        return None

    static = [
        q for q in section.questions
        if not q.is_followup_template
        and visible_in_mode(q, mode)
        and evaluate_condition(q.show_if, answers)
    ]
    # A parent that is hidden keeps its stale answer, but must not spawn follow-ups
    visible_parents = {q.id for q in static}
    dynamic = [
        d for d in generate_followups(section, answers)
        if d.parentId in visible_parents and visible_in_mode(d, mode)
    ]

    return ResolvedSection(section_title=section.section_title, questions=static + dynamic)


def _resolve(template: FormTemplate, answers: Mapping[str, Any], mode: Mode) -> List[Step]:
    steps: List[Step] = []
    for section in template.sections:
        resolved = resolve_section(section, answers, mode, template)
        if resolved is None or not resolved.questions:
            continue
        # one visible section per wizard step
        steps.append([resolved])
    return steps


def resolve_steps(
    template: Optional[FormTemplate],
    answers: Optional[Mapping[str, Any]],
    mode: Mode = "patient",
) -> List[Step]:
    """
    Visible steps for the current answers. Pure: the same inputs always give
    the same steps. An unexpected error yields an empty list (nothing to show)
    instead of propagating to the form.
    """
    if template is None:
        return []
    try:
        return _resolve(template, answers or {}, mode)
    except Exception:
        logger.exception("Visibility resolution failed for form '%s'", template.title)
        return []


def visible_question_ids(
    template: FormTemplate,
    answers: Mapping[str, Any],
    mode: Mode = "patient",
) -> Set[str]:
    return {
        question.key
        for step in resolve_steps(template, answers, mode)
        for section in step
        for question in section.questions
    }


def total_steps(template: Optional[FormTemplate], answers: Optional[Mapping[str, Any]], mode: Mode = "patient") -> int:
    return len(resolve_steps(template, answers, mode))
