"""Request parameter validation."""

from __future__ import annotations

import math

from cognicity.errors import CognicityError, ErrorCode

# Report keys are PostgreSQL bigint
MAX_REPORT_ID = 2**63 - 1


def validate_number_parameter(value: float, minimum: float | None = None) -> bool:
    """True if ``value`` is a whole number no smaller than ``minimum``."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    if not math.isfinite(value) or value != int(value):
        return False
    return minimum is None or value >= minimum


def parse_report_id(raw: str) -> int:
    """Parse a report identifier from a path segment, raising INVALID_PARAMETER."""
    value: float
    try:
        value = int(raw)
    except ValueError:
        try:
            value = float(raw)
        except ValueError:
            value = math.nan
    if value > MAX_REPORT_ID or not validate_number_parameter(value, 0):
        raise CognicityError(
            ErrorCode.INVALID_PARAMETER,
            "'id' parameter is not valid, it must be an integer between 0 and "
            f"{MAX_REPORT_ID}",
        )
    return int(value)
