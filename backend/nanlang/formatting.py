"""Numeric pretty-printer used by `print`."""

import math

INTEGER_TOLERANCE = 1e-9


def format_number(value: float) -> str:
    """Render `value` the way nanlang prints numbers.

    Values within 1e-9 of an integer print as that integer ("6", not "6.0");
    everything else uses 12 significant digits. NaN and infinities render as
    "nan", "inf" and "-inf".
    """
    if math.isfinite(value):
        rounded = math.floor(value + 0.5) if value >= 0 else math.ceil(value - 0.5)
        if abs(value - rounded) < INTEGER_TOLERANCE:
            return str(int(rounded))
    return f"{value:.12g}"
