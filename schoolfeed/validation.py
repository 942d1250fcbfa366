"""Validation rules for entered marks and attendance values."""

import math
import re
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple

from .const import (
	FIELD_MARKS,
	FIELD_STATUS,
	MARKS_MAX,
	MARKS_MIN,
	REASON_INVALID,
	REASON_MISSING,
)
from .models import AttendanceStatus, RosterEntry

_STATUS_VALUES = {status.value for status in AttendanceStatus}
# plain ASCII decimal notation, e.g. "42", "-0.5", "1e2"
_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


def parse_marks(raw_value: Any) -> Optional[float]:
	"""Return the numeric value of a marks entry, or None if it is not a finite number."""
	if isinstance(raw_value, bool):
		return None
	if isinstance(raw_value, (int, float)):
		value = float(raw_value)
	else:
		text = str(raw_value).strip()
		if not _DECIMAL_RE.fullmatch(text):
			return None
		value = float(text)
	if not math.isfinite(value):
		return None
	return value


def validate_marks(raw_value: Any) -> bool:
	"""Empty means not yet entered and is valid; anything else must be a number in range."""
	if raw_value is None or raw_value == "":
		return True
	value = parse_marks(raw_value)
	return value is not None and MARKS_MIN <= value <= MARKS_MAX


def validate_status(raw_value: Any) -> bool:
	if isinstance(raw_value, AttendanceStatus):
		return True
	return raw_value in _STATUS_VALUES


def validate_field(field_name: str, raw_value: Any) -> bool:
	"""Check a single entered value. Fields without a rule accept anything."""
	if field_name == FIELD_MARKS:
		return validate_marks(raw_value)
	if field_name == FIELD_STATUS:
		return validate_status(raw_value)
	return True


def _is_missing(value: Any) -> bool:
	return value is None or (isinstance(value, str) and not value.strip())


def first_failure(
	page_entities: Sequence[RosterEntry],
	field_values: Mapping[str, Mapping[str, Any]],
	required_fields: Iterable[str],
) -> Optional[Tuple[str, str, str]]:
	"""Return (reason, entity_id, field) for the first problem on the page, or None.

	Missing values are reported ahead of invalid ones so the user fills the
	page in before being asked to correct it.
	"""
	required_fields = tuple(required_fields)
	invalid: Optional[Tuple[str, str, str]] = None

	for entity in page_entities:
		values = field_values.get(entity.entity_id) or {}
		for field_name in required_fields:
			value = values.get(field_name)
			if _is_missing(value):
				return REASON_MISSING, entity.entity_id, field_name
			if invalid is None and not validate_field(field_name, value):
				invalid = (REASON_INVALID, entity.entity_id, field_name)

	return invalid


def page_is_complete(
	page_entities: Sequence[RosterEntry],
	field_values: Mapping[str, Mapping[str, Any]],
	required_fields: Iterable[str],
) -> bool:
	"""True iff every entity on the page has a valid value for every required field."""
	return first_failure(page_entities, field_values, required_fields) is None
