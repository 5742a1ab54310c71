from __future__ import annotations

from datetime import date, datetime
from typing import Any

from listings_client.core.entities import EntityKind

CHOICE_QUESTION_TYPES = {"Radio Buttons", "Checkboxes", "Dropdown"}


def _humanize(name: str) -> str:
    return name.replace("_", " ").capitalize()


def validate_listing_payload(kind: EntityKind, payload: dict[str, Any], *, partial: bool = False) -> dict[str, str]:
    """Return ``field -> message`` for every client-side problem in ``payload``.

    With ``partial`` only the keys present are checked, which is what record
    updates send.
    """
    errors: dict[str, str] = {}

    for name in kind.required_fields:
        if partial and name not in payload:
            continue
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors[name] = f"{_humanize(name)} is required"

    for name in kind.numeric_fields:
        value = payload.get(name)
        if value in (None, ""):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            errors[name] = f"{_humanize(name)} must be a number"
            continue
        if number < 0:
            errors[name] = f"{_humanize(name)} must not be negative"

    parsed_dates: dict[str, datetime | date] = {}
    for name in kind.date_fields:
        value = payload.get(name)
        if value in (None, ""):
            continue
        parsed = _parse_date(value)
        if parsed is None:
            errors[name] = f"{_humanize(name)} must be a valid date"
        else:
            parsed_dates[name] = parsed

    start, end = parsed_dates.get("start_date_time"), parsed_dates.get("end_date_time")
    if start is not None and end is not None and type(start) is type(end) and end < start:
        errors["end_date_time"] = "End date must not be before start date"

    if payload.get("has_application_form"):
        for index, question in enumerate(payload.get("questions") or []):
            label = str(question.get("label") or "").strip()
            if not label:
                errors[f"questions.{index}.label"] = "Question label is required"
            if question.get("type") in CHOICE_QUESTION_TYPES and not question.get("options"):
                errors[f"questions.{index}.options"] = f"Options are required for {question.get('type')} questions"

    return errors


def _parse_date(value: Any) -> datetime | date | None:
    if isinstance(value, (datetime, date)):
        return value
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value) if "T" in value else date.fromisoformat(value)
    except ValueError:
        return None
