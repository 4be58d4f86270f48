"""
Biodata form data helpers.

The app submits form data as a list of sections:

    [{"key": "Personal Details",
      "data": [{"key": "Name", "value": "Asha", "fieldType": None}, ...]}]

A flat mapping ({"Name": "Asha"}) is also accepted and treated as a single
section.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import json
import re

PREVIEW_FIELDS = 2
DEFAULT_SECTION = "Details"

VOWELS = re.compile(r"[aeiouAEIOU]")
DEVANAGARI = re.compile(r"[\u0900-\u097F]")


def is_empty(form_data: Any) -> bool:
    if form_data is None:
        return True
    if isinstance(form_data, (dict, list, str)):
        return len(form_data) == 0
    return False


def normalize_sections(form_data: Any) -> List[Dict[str, Any]]:
    """Return form data as a list of {key, data: [field, ...]} sections"""
    if isinstance(form_data, str):
        try:
            form_data = json.loads(form_data)
        except ValueError:
            return []

    if isinstance(form_data, dict):
        fields = [
            {"key": str(key), "value": value}
            for key, value in form_data.items()
        ]
        return [{"key": DEFAULT_SECTION, "data": fields}]

    if not isinstance(form_data, list):
        return []

    sections = []
    for section in form_data:
        if not isinstance(section, dict):
            continue
        fields = [f for f in section.get("data") or [] if isinstance(f, dict)]
        sections.append({"key": str(section.get("key") or ""), "data": fields})
    return sections


def mask_vowels(value: str) -> str:
    return VOWELS.sub("*", value)


def contains_devanagari(value: Optional[str]) -> bool:
    return bool(value) and bool(DEVANAGARI.search(value))


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))


def get_label(field: Dict[str, Any]) -> str:
    return str(field.get("key") or "").strip()


def get_value(field: Dict[str, Any], masked: bool = False) -> str:
    value = field.get("value")
    field_type = field.get("fieldType")

    if field_type == "date":
        try:
            return _parse_datetime(str(value)).strftime("%d/%m/%Y")
        except ValueError:
            return str(value)

    if field_type == "time":
        try:
            return _parse_datetime(str(value)).strftime("%I:%M %p")
        except ValueError:
            return str(value)

    if isinstance(value, (list, tuple)):
        value = ", ".join(str(v) for v in value)
    value = "" if value is None else str(value).strip()
    return mask_vowels(value) if masked else value


def visible_fields(section: Dict[str, Any], preview: bool = False) -> List[Dict[str, Any]]:
    """Fields that will be printed: non-empty, capped in preview mode"""
    fields = [f for f in section.get("data", []) if f.get("value") not in (None, "", [])]
    if preview:
        fields = fields[:PREVIEW_FIELDS]
    return fields


def get_front_details(sections: List[Dict[str, Any]]) -> Dict[str, str]:
    details = {"name": "", "dob": "", "place_of_birth": ""}
    keys = {"Name": "name", "Date Of Birth": "dob", "Place Of Birth": "place_of_birth"}

    for section in sections:
        for field in section.get("data", []):
            target = keys.get(get_label(field))
            if target and not details[target]:
                details[target] = get_value(field)

    return details
