from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from anamnesportalen.schemas import AdvancedCondition, Condition, FormTemplate
from anamnesportalen.scoring import section_score

logger = logging.getLogger(__name__)

ConditionLike = Union[Condition, Dict[str, Any], None]


def unwrap_answer(value: Any) -> Any:
    """Answers may be stored as {"value": ...} wrappers; compare the inner value."""
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value


def _as_condition(condition: ConditionLike) -> Optional[Condition]:
    if condition is None or isinstance(condition, Condition):
        return condition
    return Condition.model_validate(condition)


def _to_number(x: Any):
    # allow numeric strings like "12.3"
    if isinstance(x, bool):
        return x
    if isinstance(x, (int, float)):
        return x
    if isinstance(x, str):
        try:
            return float(x)
        except ValueError:
            return x
    return x


def _compare(left: Any, op: str, right: Any) -> bool:
    left = _to_number(left)
    right = _to_number(right)

    try:
        if op == "less_than":
            return left < right
        if op == "greater_than":
            return left > right
    except TypeError:
        return False
    if op == "equals":
        return left == right
    logger.warning("Unknown comparison operator %r", op)
    return False


def _as_list(value: Any) -> list:
    if value is None:
        return []
    return list(value) if isinstance(value, list) else [value]


def evaluate_condition(condition: ConditionLike, answers: Mapping[str, Any]) -> bool:
    """
    Decide whether an item guarded by `condition` is visible.

    - no condition: visible
    - referenced question not answered yet: hidden
    - `contains`: list membership for multi-select answers, equality for scalars
    - `equals`: membership when a list of accepted values is given, else equality
    - neither: visible when the referenced answer is truthy
    """
    if condition is None:
        return True
    try:
        condition = _as_condition(condition)
    except ValidationError as e:
        logger.warning("Malformed condition %r, hiding dependent item: %s", condition, e)
        return False

    question = condition.question
    if question is None:
        # Only advanced conditions, which need the template (sections)
        return True

    if question not in answers:
        logger.debug("Condition question '%s' not answered, hiding dependent item", question)
        return False

    value = unwrap_answer(answers[question])

    if condition.contains is not None:
        if isinstance(value, list):
            return condition.contains in value
        return value == condition.contains

    if condition.equals is not None:
        if isinstance(condition.equals, list):
            return value in condition.equals
        return value == condition.equals

    return bool(value)


def _answer_matches(answer: Any, accepted: list) -> bool:
    answer = unwrap_answer(answer)
    if isinstance(answer, list):
        return any(a in accepted for a in answer)
    return answer in accepted


def evaluate_advanced_condition(
    condition: Union[AdvancedCondition, Dict[str, Any]],
    answers: Mapping[str, Any],
    template: FormTemplate,
) -> bool:
    if not isinstance(condition, AdvancedCondition):
        try:
            condition = AdvancedCondition.model_validate(condition)
        except ValidationError as e:
            logger.warning("Malformed advanced condition %r, treating as false: %s", condition, e)
            return False

    if condition.type == "answer":
        if not condition.question_id or condition.question_id not in answers:
            return False
        return _answer_matches(answers[condition.question_id], _as_list(condition.values))

    if condition.type == "any_answer":
        index = condition.section_index
        if index is None or not 0 <= index < len(template.sections):
            logger.warning("any_answer condition points at missing section %r", index)
            return False
        accepted = _as_list(condition.any_value)
        return any(
            q.id in answers and _answer_matches(answers[q.id], accepted)
            for q in template.sections[index].questions
        )

    if condition.type == "section_score":
        index = condition.target_section_index
        if index is None or not 0 <= index < len(template.sections):
            logger.warning("section_score condition points at missing section %r", index)
            return False
        if condition.operator is None or condition.threshold is None:
            logger.warning("section_score condition without operator/threshold")
            return False
        score = section_score(template.sections[index], answers)
        return _compare(score, condition.operator, condition.threshold)

    logger.warning("Unknown advanced condition type '%s', treating as false", condition.type)
    return False


def evaluate_section_condition(
    condition: ConditionLike,
    answers: Mapping[str, Any],
    template: FormTemplate,
) -> bool:
    """Section visibility: the legacy single-question rule plus optional advanced conditions."""
    if condition is None:
        return True
    try:
        condition = _as_condition(condition)
    except ValidationError as e:
        logger.warning("Malformed section condition %r, hiding section: %s", condition, e)
        return False

    if not condition.conditions:
        return evaluate_condition(condition, answers)

    results = [evaluate_advanced_condition(c, answers, template) for c in condition.conditions]
    advanced = all(results) if condition.logic == "and" else any(results)

    if condition.question is None:
        return advanced
    return advanced and evaluate_condition(condition, answers)
