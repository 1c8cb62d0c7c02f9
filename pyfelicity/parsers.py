"""Parsers for Felicity real-time status payloads."""

import json
import logging
import math
from typing import Any, Iterable, Iterator, List, Optional, Tuple

from .exceptions import ParseError
from .models import DeviceReading, FieldSpec

_LOGGER = logging.getLogger(__name__)


def _cell_voltages(count: int) -> List[FieldSpec]:
    return [
        FieldSpec(f"CellVoltage{i}", "BatcelList", (0, i), 1000)
        for i in range(count)
    ]


REAL_INFO_FIELDS: Tuple[FieldSpec, ...] = (
    # Identification and state
    FieldSpec("CommVer", "CommVer"),
    FieldSpec("wifiSN", "wifiSN"),
    FieldSpec("modID", "modID"),
    FieldSpec("date", "date"),
    FieldSpec("DevSN", "DevSN"),
    FieldSpec("Type", "Type"),
    FieldSpec("SubType", "SubType"),
    FieldSpec("Estate", "Estate"),
    FieldSpec("Bfault", "Bfault"),
    FieldSpec("Bwarn", "Bwarn"),
    FieldSpec("Bstate", "Bstate"),
    FieldSpec("BBfault", "BBfault"),
    FieldSpec("BBwarn", "BBwarn"),
    # Battery
    FieldSpec("BTemp1", "BTemp", (0, 0), 10),
    FieldSpec("BTemp2", "BTemp", (0, 1), 10),
    FieldSpec("Batt", "Batt", (0, 0), 1000),
    FieldSpec("Batsoc", "Batsoc", (0, 0), 100),
    FieldSpec("Templist1", "Templist", (0, 0), 10),
    FieldSpec("Templist2", "Templist", (0, 1), 10),
    FieldSpec("BattListVoltage", "BattList", (0, 0), 1000),
    FieldSpec("BattListAmpere", "BattList", (1, 0), 10),
    FieldSpec("BatsocList", "BatsocList", (0, 0), 100),
    # Cells
    *_cell_voltages(16),
    FieldSpec("EMSpara", "EMSpara", (0, 0)),
    FieldSpec("CellMaxVoltage", "BMaxMin", (0, 0)),
    FieldSpec("CellNumberMaxVoltage", "BMaxMin", (1, 0)),
    FieldSpec("CellMinVoltage", "BMaxMin", (0, 1)),
    FieldSpec("CellNumberMinVoltage", "BMaxMin", (1, 1)),
    # Limits
    FieldSpec("LVolCurMax", "LVolCur", (0, 0), 10),
    FieldSpec("LVolCurMin", "LVolCur", (0, 1), 10),
    FieldSpec("BMSpara", "BMSpara", (0, 0)),
    FieldSpec("BLVolCuMax", "BLVolCu", (0, 0), 10),
    FieldSpec("BLVolCuMin", "BLVolCu", (0, 1), 10),
    FieldSpec("BtemList1", "BtemList", (0, 0), 10),
    FieldSpec("BtemList2", "BtemList", (0, 1), 10),
    FieldSpec("BtemList3", "BtemList", (0, 2), 10),
    FieldSpec("BtemList4", "BtemList", (0, 3), 10),
)


def decode_reading(response: bytes, max_repair: int = 1) -> DeviceReading:
    """Decode a (possibly truncated) status response.

    Delimiter framing drops the closing brace of the object, so the text is
    tried as-is and then with one to ``max_repair`` braces appended.

    Args:
        response: Raw response bytes.
        max_repair: Maximum number of closing braces to append.

    Returns:
        The decoded JSON object.

    Raises:
        ParseError: If no candidate decodes to a JSON object.
    """
    text = response.decode("utf-8", errors="replace")
    last_error: Optional[Exception] = None
    for braces in range(max_repair + 1):
        try:
            data = json.loads(text + "}" * braces)
        except ValueError as err:
            last_error = err
            continue
        if not isinstance(data, dict):
            raise ParseError(f"expected a JSON object, got {type(data).__name__}")
        return data
    raise ParseError(f"invalid JSON after brace repair: {last_error}")


def format_value(value: Any) -> str:
    """Render a value the way the device bridge has always published it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, list):
        # Nested arrays flatten to comma-separated values; nulls become empty.
        return ",".join("" if item is None else format_value(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


_MISSING = object()


def _lookup(reading: DeviceReading, spec: FieldSpec) -> Any:
    value = reading.get(spec.key, _MISSING)
    for index in spec.path:
        if value is _MISSING:
            break
        try:
            value = value[index]
        except (IndexError, KeyError, TypeError):
            return _MISSING
    return value


def extract_value(reading: DeviceReading, spec: FieldSpec) -> Optional[Any]:
    """Return the scaled value of one field, or None if it cannot be read."""
    value = _lookup(reading, spec)
    if value is _MISSING:
        _LOGGER.debug("Field %s missing (%s%s)", spec.name, spec.key, list(spec.path))
        return None
    if spec.scale == 1:
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _LOGGER.debug("Field %s is not numeric: %r", spec.name, value)
        return None
    return value / spec.scale


def extract_fields(
    reading: DeviceReading,
    specs: Iterable[FieldSpec] = REAL_INFO_FIELDS,
) -> Iterator[Tuple[str, str]]:
    """Yield ``(field name, stringified value)`` for every readable field."""
    for spec in specs:
        value = extract_value(reading, spec)
        if value is None:
            continue
        yield spec.name, format_value(value)
