"""Value conversion from the source's JSON-like values to MySQL parameters."""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..models.record import Record

ISO_DATETIME_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")


@dataclass(frozen=True)
class ConversionRule:
    """
    A conversion keyed on the runtime shape of a value.

    The source client returns untyped JSON values, so rules look at what a
    value is, not at any declared column type.
    """
    name: str
    matches: Callable[[Any], bool]
    convert: Callable[[Any], Any]


def to_json_text(value: Any) -> str:
    """Compact JSON, the same text the source client would serialize."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def is_iso_datetime(value: Any) -> bool:
    return isinstance(value, str) and ISO_DATETIME_PREFIX.match(value) is not None


def to_mysql_datetime(value: str) -> str:
    """``2024-03-05T14:30:00.000Z`` -> ``2024-03-05 14:30:00``; zone and fraction are dropped."""
    return value[:19].replace("T", " ", 1)


class FieldTransformer:
    """
    Converts field values into a form MySQL accepts as query parameters.

    Built-in rules, first match wins:

    - ``None`` passes through
    - lists and dicts become compact JSON text
    - booleans become ``1`` / ``0``
    - ISO-8601 date-time strings become ``YYYY-MM-DD HH:MM:SS``
    - anything else is returned unchanged

    Every rule's output falls outside the shapes the rules match, so
    transforming an already transformed value is a no-op.
    """

    def __init__(self):
        """Initialize the transformer."""
        self._custom_rules: List[ConversionRule] = []
        self._builtin_rules = self._register_builtin_rules()

    def _register_builtin_rules(self) -> List[ConversionRule]:
        """Register the built-in conversion rules in priority order."""
        return [
            ConversionRule("array", lambda v: isinstance(v, (list, tuple)), to_json_text),
            ConversionRule("object", lambda v: isinstance(v, dict), to_json_text),
            ConversionRule("boolean", lambda v: isinstance(v, bool), lambda v: 1 if v else 0),
            ConversionRule("timestamp", is_iso_datetime, to_mysql_datetime),
        ]

    def register_rule(self, rule: ConversionRule) -> None:
        """Register a custom rule, tried before the built-ins."""
        self._custom_rules.append(rule)

    @property
    def rules(self) -> List[ConversionRule]:
        return self._custom_rules + self._builtin_rules

    def transform(self, value: Any, field_name: Optional[str] = None) -> Any:
        """
        Convert one value.

        Args:
            value: Value as read from the source
            field_name: Name of the field; the built-in rules ignore it

        Returns:
            The converted value
        """
        if value is None:
            return None

        for rule in self.rules:
            if rule.matches(value):
                return rule.convert(value)

        return value

    def transform_record(self, record: Record) -> Dict[str, Any]:
        """Convert every field of a record, returning a new dict in the same key order."""
        return {name: self.transform(value, name) for name, value in record.items()}
