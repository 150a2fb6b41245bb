"""
Measurement Values — Shape parsing and per-field value extraction.

A task value arrives as raw JSON in one of three shapes:

  - scalar:  "OK", 12.5, true            -> used as-is for every condition
  - object:  {"id": "kpi-temp", "value": 4} -> a single field
  - array:   [{"id": ..., "name": ..., "value": ...}, ...] -> multi-field KPI

parse_measurement() turns the raw JSON into a tagged union so extract()
can dispatch on the shape instead of poking at dict/list types inline.
"""

from dataclasses import dataclass
from typing import Any, Union


class _Absent:
    """Sentinel for "no comparable value for this field"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class FieldObject:
    fields: dict[str, Any]


@dataclass(frozen=True)
class FieldArray:
    items: tuple[dict[str, Any], ...]


Measurement = Union[Scalar, FieldObject, FieldArray]


def parse_measurement(raw: Any) -> Measurement | None:
    """Classify a raw task value. None stays None (nothing to check)."""
    if raw is None:
        return None
    if isinstance(raw, Scalar | FieldObject | FieldArray):
        return raw
    if isinstance(raw, dict):
        return FieldObject(fields=raw)
    if isinstance(raw, (list, tuple)):
        # Non-object elements can never match a field, drop them up front
        return FieldArray(items=tuple(item for item in raw if isinstance(item, dict)))
    return Scalar(value=raw)


def bare_field_name(field_id: str) -> str:
    """Legacy field ids look like "<kpi>-<field>"; return the lower-cased tail."""
    return field_id.rsplit("-", 1)[-1].lower()


def _find_field(items: tuple[dict[str, Any], ...], field_id: str) -> dict[str, Any] | None:
    for item in items:
        if item.get("id") == field_id:
            return item

    name = bare_field_name(field_id)
    if not name:
        return None
    for item in items:
        item_name = item.get("name")
        item_id = item.get("id")
        if isinstance(item_name, str) and item_name.lower() == name:
            return item
        if isinstance(item_id, str) and item_id.lower().endswith(name):
            return item
    return None


def extract(value: Any, field_id: str) -> Any:
    """
    Resolve the value a condition on ``field_id`` should test.

    Returns ABSENT when nothing usable is found; never raises.
    """
    measurement = parse_measurement(value)
    if measurement is None:
        return ABSENT

    if isinstance(measurement, Scalar):
        extracted = measurement.value
    elif isinstance(measurement, FieldObject):
        fields = measurement.fields
        if "id" in fields and fields["id"] == field_id:
            extracted = fields.get("value")
        elif "value" in fields:
            extracted = fields["value"]
        else:
            extracted = fields
    else:
        field = _find_field(measurement.items, field_id or "")
        extracted = field.get("value") if field is not None else None

    return ABSENT if extracted is None else extracted
