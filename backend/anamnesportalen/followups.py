from __future__ import annotations

import logging
import re
from typing import Any, List, Mapping, Optional, Set, Tuple

from anamnesportalen.schemas import DynamicFollowupQuestion, FormQuestion, FormSection, FormTemplate, QuestionOption

logger = logging.getLogger(__name__)

RUNTIME_SEPARATOR = "_for_"
OPTION_PLACEHOLDER = "{option}"

_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_RE = re.compile(r"[^\w-]")


def _slug(value: Any) -> str:
    text = _WHITESPACE_RE.sub("_", str(value).strip())
    return _UNSAFE_RE.sub("", text)


def runtime_id(template_id: str, value: Any, parent_id: Optional[str] = None) -> str:
    """
    Key for one materialized follow-up, e.g. runtime_id("duration", "Cigarettes")
    -> "duration_for_Cigarettes". `parent_id` is only mixed in when two parents
    would otherwise produce the same key.
    """
    if parent_id:
        return f"{template_id}{RUNTIME_SEPARATOR}{parent_id}_{_slug(value)}"
    return f"{template_id}{RUNTIME_SEPARATOR}{_slug(value)}"


def parse_runtime_id(key: str, template: Optional[FormTemplate] = None) -> Optional[Tuple[str, str]]:
    """
    Split a stored follow-up answer key into (original id, parent value).

    With a template, the key only counts as a follow-up when it is not a
    question id itself and its prefix names a follow-up template, so static
    ids like "reason_for_visit" are left alone.
    """
    if template is not None and template.find_question(key) is not None:
        return None

    start = key.find(RUNTIME_SEPARATOR)
    while start > 0:
        original_id = key[:start]
        parent_value = key[start + len(RUNTIME_SEPARATOR):].replace("_", " ")
        if template is None:
            return original_id, parent_value
        original = template.find_question(original_id)
        if original is not None and original.is_followup_template:
            return original_id, parent_value
        start = key.find(RUNTIME_SEPARATOR, start + 1)
    return None


def selected_values(answer: Any) -> List[Any]:
    """Normalize a parent answer into the list of selected values."""
    if answer is None:
        return []
    if isinstance(answer, dict) and "value" in answer:
        answer = answer["value"]
    values = answer if isinstance(answer, list) else [answer]
    return [v for v in values if v is not None and v != ""]


def _triggers_followups(parent: FormQuestion, value: Any) -> bool:
    for option in parent.options or []:
        if isinstance(option, QuestionOption) and option.value == value:
            return option.triggers_followups
    return True


def _materialize(template: FormQuestion, parent: FormQuestion, value: Any, key: str) -> DynamicFollowupQuestion:
    data = template.model_dump(exclude={"is_followup_template"})
    data["label"] = (template.label or "").replace(OPTION_PLACEHOLDER, str(value))
    return DynamicFollowupQuestion(
        **data,
        parentId=parent.id,
        parentValue=str(value),
        runtimeId=key,
        originalId=template.id,
    )


def generate_followups(section: FormSection, answers: Mapping[str, Any]) -> List[DynamicFollowupQuestion]:
    """
    Expand follow-up templates into one question per selected parent value.

    Order is parent order, then selected-value order, then follow-up id order,
    so repeated calls with the same answers give the same list.
    """
    templates = {q.id: q for q in section.questions if q.is_followup_template}
    generated: List[DynamicFollowupQuestion] = []
    used_keys: Set[str] = set()
    seen: Set[Tuple[str, str, str]] = set()

    for parent in section.questions:
        if not parent.followup_question_ids:
            continue

        answer = answers.get(parent.id)
        if answer is None:
            continue

        for value in selected_values(answer):
            if not _triggers_followups(parent, value):
                continue

            for followup_id in parent.followup_question_ids:
                template = templates.get(followup_id)
                if template is None:
                    logger.warning(
                        "Follow-up template '%s' referenced by '%s' not found in section '%s'",
                        followup_id, parent.id, section.section_title,
                    )
                    continue

                origin = (parent.id, str(value), template.id)
                if origin in seen:
                    continue
                seen.add(origin)

                key = runtime_id(template.id, value)
                if key in used_keys:
                    key = runtime_id(template.id, value, parent_id=parent.id)
                if key in used_keys:
                    continue
                used_keys.add(key)

                generated.append(_materialize(template, parent, value, key))

    return generated
