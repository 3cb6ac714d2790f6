"""Sales rule record type and its projection onto the table's column order."""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, fields
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import SchemaError

logger = logging.getLogger(__name__)


RECORD_FIELDS: Tuple[str, ...] = (
    "schedule_id",
    "rule_id",
    "rule_name",
    "coupon_type",
    "description_en",
    "description_ar",
    "short_terms_and_conditions_en",
    "short_terms_and_conditions_ar",
    "url_key",
    "channel_web",
    "channel_app",
    "start_date",
    "end_date",
    "status",
)

KEY_FIELD = "schedule_id"
STATUS_FIELD = "status"
LOCALISED_FIELDS = frozenset(
    {
        "description_en",
        "description_ar",
        "short_terms_and_conditions_en",
        "short_terms_and_conditions_ar",
    }
)
TRUTHY_STRINGS = frozenset({"true", "1", "on", "yes"})


class _Unset(enum.Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset.UNSET


@dataclass(frozen=True)
class Record:
    """A sales rule schedule with every recognised field explicitly optional.

    A field holding :data:`UNSET` was absent from the inbound event and is
    left out of the column vector; any other value, ``None`` included, was
    supplied by the caller.
    """

    schedule_id: Any = UNSET
    rule_id: Any = UNSET
    rule_name: Any = UNSET
    coupon_type: Any = UNSET
    description_en: Any = UNSET
    description_ar: Any = UNSET
    short_terms_and_conditions_en: Any = UNSET
    short_terms_and_conditions_ar: Any = UNSET
    url_key: Any = UNSET
    channel_web: Any = UNSET
    channel_app: Any = UNSET
    start_date: Any = UNSET
    end_date: Any = UNSET
    status: Any = UNSET

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Record":
        return cls(**{name: data[name] for name in RECORD_FIELDS if name in data})

    def has(self, name: str) -> bool:
        return getattr(self, name, UNSET) is not UNSET

    def get(self, name: str, default: Any = None) -> Any:
        value = getattr(self, name, UNSET)
        return default if value is UNSET else value

    def present_fields(self) -> List[Tuple[str, Any]]:
        """Return ``(name, value)`` pairs for supplied fields in declared order."""

        return [(item.name, getattr(self, item.name)) for item in fields(self) if self.has(item.name)]

    def is_complete(self) -> bool:
        return all(self.has(name) for name in RECORD_FIELDS)


def parse_bool_to_int(value: Any) -> int:
    """Map boolean-like input to ``1``/``0``.

    ``True``, ``1`` and the strings ``"true"``, ``"1"``, ``"on"``, ``"yes"``
    (trimmed, case-insensitive) are truthy; everything else maps to ``0``.
    """

    if isinstance(value, str):
        return 1 if value.strip().lower() in TRUTHY_STRINGS else 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)) and value == 1:
        return 1
    return 0


def extract_locale(value: Any, locale_code: Optional[str], *, log: Optional[logging.Logger] = None) -> Any:
    """Return the ``locale_code`` entry of a JSON locale map, or ``value`` unchanged."""

    if not locale_code:
        return value
    log = log or logger
    candidate = value
    if isinstance(value, (str, bytes)):
        try:
            candidate = json.loads(value)
        except ValueError:
            log.debug("Value is not a JSON locale map, keeping it as is: %r", value)
            return value
    if isinstance(candidate, Mapping):
        if locale_code in candidate:
            return candidate[locale_code]
        log.debug("Locale %s missing from %r", locale_code, candidate)
    return value


def map_record(
    record: Union[Record, Mapping[str, Any]],
    locale_code: Optional[str] = None,
    *,
    log: Optional[logging.Logger] = None,
) -> List[Any]:
    """Project ``record`` onto the table's declared column order."""

    if not isinstance(record, Record):
        record = Record.from_mapping(record)
    vector: List[Any] = []
    for name, value in record.present_fields():
        if name == STATUS_FIELD:
            vector.append(parse_bool_to_int(value))
        elif name in LOCALISED_FIELDS:
            vector.append(extract_locale(value, locale_code, log=log))
        else:
            vector.append(value)
    return vector


def validate_arity(vector: Sequence[Any]) -> None:
    """Reject a column vector that does not cover every recognised field."""

    if len(vector) != len(RECORD_FIELDS):
        raise SchemaError(
            f"Number of columns mismatched in row data: got {len(vector)}, expected {len(RECORD_FIELDS)}"
        )


__all__ = [
    "KEY_FIELD",
    "LOCALISED_FIELDS",
    "RECORD_FIELDS",
    "Record",
    "STATUS_FIELD",
    "UNSET",
    "extract_locale",
    "map_record",
    "parse_bool_to_int",
    "validate_arity",
]
