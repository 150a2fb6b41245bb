"""
Alert Conditions — Typed trigger rules and their evaluation.

Condition types:
  - numeric: fires when the value falls outside [min, max] (bounds inclusive)
  - text:    fires when the value contains match_text (case-sensitive)
  - boolean: fires when the value's truth equals boolean_value

Operators record yes/no answers in Italian, so "si" and "sì" count as true.
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from alerts.values import ABSENT

logger = structlog.get_logger()

ConditionType = Literal["numeric", "text", "boolean"]

TRUE_STRINGS = frozenset({"true", "si", "sì"})


class AlertCondition(BaseModel):
    """A stored condition. ``type`` stays a plain string so unknown types load and never match."""

    model_config = ConfigDict(extra="ignore")

    field_id: str = ""
    type: str
    min: float | None = None
    max: float | None = None
    match_text: str | None = None
    boolean_value: bool | None = None

    def describe(self) -> str:
        """Human-readable summary used in notification emails."""
        if self.type == "numeric":
            if self.min is not None and self.max is not None:
                return f"Value outside {_format_number(self.min)} – {_format_number(self.max)}"
            if self.min is not None:
                return f"Value below {_format_number(self.min)}"
            if self.max is not None:
                return f"Value above {_format_number(self.max)}"
            return "Numeric (no bounds)"
        if self.type == "text":
            return f'Text contains "{self.match_text or ""}"'
        if self.type == "boolean":
            if self.boolean_value is None:
                return "Boolean (no expected value)"
            return f"Value is {'true' if self.boolean_value else 'false'}"
        return f"Unsupported condition type '{self.type}'"


def parse_conditions(raw: Any) -> list[AlertCondition]:
    """Load the JSON condition list of an alert, preserving order. Malformed entries are dropped."""
    if not isinstance(raw, list):
        return []
    conditions = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict) or "type" not in item:
            continue
        try:
            conditions.append(AlertCondition.model_validate(item))
        except ValidationError as exc:
            logger.warning("alert.condition_skipped", index=index, error=str(exc))
    return conditions


@dataclass(frozen=True)
class ConditionResult:
    triggered: bool
    normalized_value: Any = None


NOT_TRIGGERED = ConditionResult(triggered=False)


# ──────────────────────────────────────────────────────────────────────────
# Coercion
# ──────────────────────────────────────────────────────────────────────────


def coerce_number(value: Any) -> float | int | None:
    """
    Coerce a measured value to a number, or None when it is not one.

    - bool -> 1 / 0
    - int/float pass through (NaN -> None)
    - str is stripped then parsed: " 12 " -> 12, "1e3" -> 1000.0, "1e999" -> inf;
      "" / whitespace-only / "nan" / "inf" / "12,5" / "abc" -> None
    - anything else (dict, list) -> None
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        if math.isnan(number) or (math.isinf(number) and "inf" in text.lower()):
            return None
        return int(number) if number.is_integer() else number
    return None


def coerce_bool(value: Any) -> bool:
    """
    Truth of a measured value.

    Strings are true only for "true", "si" or "sì" (any case, surrounding
    whitespace ignored); "" and every other string are false. None is false,
    numbers are true when non-zero and not NaN, containers are true.
    """
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    return True


def stringify(value: Any) -> str:
    """String form used for substring matching."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _format_number(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def _format_number(number: float) -> str:
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return str(number)


# ──────────────────────────────────────────────────────────────────────────
# Evaluation
# ──────────────────────────────────────────────────────────────────────────


def _evaluate_numeric(value: Any, condition: AlertCondition) -> ConditionResult:
    number = coerce_number(value)
    if number is None:
        return NOT_TRIGGERED
    below = condition.min is not None and number < condition.min
    above = condition.max is not None and number > condition.max
    # JSON has no infinity; an overflowing reading is logged as null
    return ConditionResult(triggered=below or above, normalized_value=number if math.isfinite(number) else None)


def _evaluate_text(value: Any, condition: AlertCondition) -> ConditionResult:
    if not condition.match_text:
        return NOT_TRIGGERED
    return ConditionResult(triggered=condition.match_text in stringify(value), normalized_value=value)


def _evaluate_boolean(value: Any, condition: AlertCondition) -> ConditionResult:
    if condition.boolean_value is None:
        return NOT_TRIGGERED
    return ConditionResult(triggered=coerce_bool(value) == condition.boolean_value, normalized_value=value)


_EVALUATORS = {
    "numeric": _evaluate_numeric,
    "text": _evaluate_text,
    "boolean": _evaluate_boolean,
}


def evaluate(value: Any, condition: AlertCondition) -> ConditionResult:
    """Decide whether ``condition`` fires for an extracted value."""
    if value is ABSENT or value is None:
        return NOT_TRIGGERED
    evaluator = _EVALUATORS.get(condition.type)
    if evaluator is None:
        return NOT_TRIGGERED
    return evaluator(value, condition)
