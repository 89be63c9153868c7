"""
Volunteer profile vocabulary: suggestion lists and input normalisation
"""
from typing import Any, Dict, Iterable, List, Optional

from onkur.errors import ValidationError

SKILL = "skill"
INTEREST = "interest"
CITY = "city"
OPTION_TYPES = (SKILL, INTEREST, CITY)

DEFAULT_OPTIONS: Dict[str, List[str]] = {
    SKILL: [
        "tree planting",
        "first aid",
        "event coordination",
        "community outreach",
        "waste management",
        "teaching",
    ],
    INTEREST: [
        "urban forestry",
        "wetland restoration",
        "environmental education",
        "wildlife rescue",
        "climate advocacy",
        "sustainable farming",
    ],
    CITY: ["Bengaluru", "Chennai", "Delhi", "Hyderabad", "Kolkata", "Mumbai", "Pune"],
}

AVAILABILITY_PRESETS = (
    {"value": "weekday-mornings", "label": "Weekday mornings"},
    {"value": "weekday-afternoons", "label": "Weekday afternoons"},
    {"value": "weekday-evenings", "label": "Weekday evenings"},
    {"value": "weekends", "label": "Weekends"},
    {"value": "flexible", "label": "Flexible / on-call"},
    {"value": "remote", "label": "Remote friendly"},
)

# Accept either the slug or the label
_AVAILABILITY_LOOKUP = {}
for _preset in AVAILABILITY_PRESETS:
    _AVAILABILITY_LOOKUP[_preset["value"]] = _preset["value"]
    _AVAILABILITY_LOOKUP[_preset["label"].lower()] = _preset["value"]

STATE_OPTIONS = (
    "Andhra Pradesh", "Arunachal Pradesh", "Assam", "Bihar", "Chhattisgarh", "Goa",
    "Gujarat", "Haryana", "Himachal Pradesh", "Jharkhand", "Karnataka", "Kerala",
    "Madhya Pradesh", "Maharashtra", "Manipur", "Meghalaya", "Mizoram", "Nagaland",
    "Odisha", "Punjab", "Rajasthan", "Sikkim", "Tamil Nadu", "Telangana", "Tripura",
    "Uttar Pradesh", "Uttarakhand", "West Bengal", "Andaman and Nicobar Islands",
    "Chandigarh", "Dadra and Nagar Haveli and Daman and Diu", "Delhi",
    "Jammu and Kashmir", "Ladakh", "Lakshadweep", "Puducherry",
)

_STATE_LOOKUP = {state.lower(): state for state in STATE_OPTIONS}


def _split(value: Any) -> List[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [segment.strip() for segment in str(value).split(",")]


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in value.split())


def normalize_tags(value: Any) -> List[str]:
    """Lower-case, de-duplicated list from a list or comma separated string"""
    result: List[str] = []
    for item in _split(value):
        if item is None:
            continue
        tag = str(item).strip().lower()
        if tag and tag not in result:
            result.append(tag)
    return result


def normalize_availability(value: Any) -> List[str]:
    result: List[str] = []
    for item in _split(value):
        key = str(item).strip() if item is not None else ""
        if not key:
            continue
        canonical = _AVAILABILITY_LOOKUP.get(key.lower())
        if canonical is None:
            raise ValidationError(f"Unsupported availability option: {key}")
        if canonical not in result:
            result.append(canonical)
    return result


def normalize_city(value: Any) -> Optional[str]:
    text = clean_text(value)
    return title_case(text) if text else None


def normalize_state(value: Any) -> Optional[str]:
    text = clean_text(value)
    if not text:
        return None
    state = _STATE_LOOKUP.get(text.lower())
    if state is None:
        raise ValidationError(f"Unsupported state: {text}")
    return state


def to_options(values: Iterable[str]) -> List[Dict[str, str]]:
    """Value/label pairs sorted by label"""
    options = [{"value": value, "label": title_case(value)} for value in set(values) if value]
    return sorted(options, key=lambda option: option["label"])
