"""
Checks that a stored answer still fits the question it is keyed under.

Answers survive navigation and template edits, so a value picked for one
question can end up stored under another (or under an option that no
longer exists). Such values must not be displayed or submitted.
"""
from __future__ import annotations

from typing import Any

from anamnesportalen.schemas import FormQuestion

CHOICE_TYPES = ("radio", "dropdown", "select")


def is_empty(value: Any) -> bool:
    """Unanswered: None, blank strings and empty selections. False and 0 are answers."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, list):
        return len(value) == 0
    return False


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True


def validate_field_value(value: Any, question: FormQuestion) -> bool:
    if is_empty(value):
        return True

    if isinstance(value, dict) and "value" in value:
        value = value["value"]

    if question.type in CHOICE_TYPES and question.options:
        return value in question.option_values()

    if question.type == "checkbox" and question.options and isinstance(value, list):
        valid = question.option_values()
        return all(v in valid for v in value)

    if question.type == "number":
        return _is_number(value)

    return True
