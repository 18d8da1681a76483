"""Safe coercion and identifier extraction shared by every feed."""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser


_CONDITION_ID_LENGTH = 66  # "0x" + 32 bytes of hex
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_EMBEDDED_CONDITION_ID = re.compile(r"(?<![0-9a-fA-F])(?:0x)?([0-9a-fA-F]{64})(?![0-9a-fA-F])")
_TRAILING_DIGITS = re.compile(r"(\d+)(?!.*\d)")
# Epoch values above this are milliseconds rather than seconds.
_EPOCH_MS_THRESHOLD = 10_000_000_000


def coerce_number(value: Any) -> float | None:
    """Return a finite float, or None for anything that is not one."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return number


def condition_id_from_asset_id(asset_id: Any) -> str | None:
    """Read the condition id encoded as the leading 66 characters of an asset id."""

    if not isinstance(asset_id, str):
        return None
    candidate = asset_id.strip()
    if len(candidate) < _CONDITION_ID_LENGTH or candidate[:2].lower() != "0x":
        return None
    body = candidate[2:]
    if not body or any(char not in _HEX_DIGITS for char in body):
        return None
    return candidate[:_CONDITION_ID_LENGTH].lower()


def condition_id_from_text(value: Any) -> str | None:
    """Find a 64-hex-digit condition id anywhere inside an identifier string."""

    if not isinstance(value, str):
        return None
    match = _EMBEDDED_CONDITION_ID.search(value)
    if match is None:
        return None
    return "0x" + match.group(1).lower()


def normalize_condition_id(value: Any) -> str | None:
    """Canonical lower-case form of a catalog-supplied condition id."""

    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if len(candidate) != _CONDITION_ID_LENGTH:
        return None
    return condition_id_from_asset_id(candidate)


def numeric_id_from_slug(slug: Any) -> int | None:
    """Return the rightmost run of digits in a slug."""

    if not isinstance(slug, str):
        return None
    match = _TRAILING_DIGITS.search(slug)
    if match is None:
        return None
    return int(match.group(1))


def coerce_timestamp(value: Any) -> datetime | None:
    """Parse ISO strings and epoch seconds/milliseconds into aware UTC datetimes."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    number = coerce_number(value)
    if number is not None:
        if number >= _EPOCH_MS_THRESHOLD:
            number /= 1000.0
        try:
            return datetime.fromtimestamp(number, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = date_parser.isoparse(value.strip())
        except (ValueError, TypeError, OverflowError):
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def first_present(record: Mapping[str, Any], candidates: Sequence[str]) -> Any:
    """Return the value of the first candidate key that is present and not None."""

    for key in candidates:
        value = record.get(key)
        if value is not None:
            return value
    return None


def as_list(value: Any) -> list[Any]:
    """Return value as a list when possible, decoding JSON strings."""

    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []
