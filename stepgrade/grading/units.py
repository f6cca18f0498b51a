"""Parsing of numeric answers and metric-prefix unit conversion."""

import logging
import math
import re
from typing import Optional, Tuple

LOG = logging.getLogger(__name__)

# Multiplier taking a value in the prefixed unit to the base unit
# (e.g. 1 kN == 1e3 N). Units are lowercased before lookup, so 'm' is mega.
UNIT_PREFIXES = {
    'g': 1e9, 'm': 1e6, 'k': 1e3,
    'd': 1e-1, 'c': 1e-2, 'µ': 1e-6, 'u': 1e-6, 'n': 1e-9,
}

DIMENSIONLESS_UNITS = ('', 'unitless', 'percent')

NUMBER_PATTERN = re.compile(
    r'^([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)\s*(.*)$',
    re.DOTALL,
)


def parse_unit_and_value(text) -> Optional[Tuple[float, str]]:
    """
    Split an answer like ``"12.5 kN"`` into ``(12.5, "kN")``.

    Returns None for empty or non-string input, or when no finite number
    leads the text. The unit is whatever follows the number, trimmed, and
    may be empty.
    """
    if not isinstance(text, str):
        return None
    text = text.strip()
    if not text:
        return None

    match = NUMBER_PATTERN.match(text)
    if not match:
        return None

    try:
        value = float(match.group(1))
    except ValueError:
        return None
    if not math.isfinite(value):
        return None

    return value, match.group(2).strip()


def _normalize_unit(unit: str) -> str:
    unit = (unit or '').strip().lower()
    return 'percent' if unit == '%' else unit


def convert_to_base(value: float, unit: str, base_unit: str) -> float:
    """
    Convert ``value`` expressed in ``unit`` into ``base_unit``.

    Handles identical units, bare numbers where a dimensionless answer is
    expected, and single metric prefixes in either direction (``kN`` -> ``N``,
    ``N`` -> ``kN``). Returns NaN when the units are not convertible.
    """
    from_unit = _normalize_unit(unit)
    to_unit = _normalize_unit(base_unit)

    if from_unit == '' and to_unit in DIMENSIONLESS_UNITS:
        return value

    if from_unit == to_unit:
        return value

    if to_unit not in ('', 'percent') and from_unit.endswith(to_unit):
        prefix = from_unit[:-len(to_unit)]
        if prefix in UNIT_PREFIXES:
            return value * UNIT_PREFIXES[prefix]

    if from_unit != '' and to_unit.endswith(from_unit):
        prefix = to_unit[:-len(from_unit)]
        if prefix in UNIT_PREFIXES:
            return value / UNIT_PREFIXES[prefix]

    LOG.debug("Cannot convert unit %r to %r", unit, base_unit)
    return math.nan
