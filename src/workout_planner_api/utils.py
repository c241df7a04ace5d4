"""Utility functions."""
import re
from typing import Optional, Union

_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


def to_int(s: Optional[Union[str, int, float]]) -> Optional[int]:
    """Convert a string or number to int, returning None if conversion fails."""
    try:
        return int(float(s)) if s is not None else None
    except Exception:
        return None


def to_float(s: Optional[Union[str, int, float]]) -> Optional[float]:
    """Convert a string or number to float, returning None if conversion fails."""
    try:
        return float(s) if s is not None else None
    except Exception:
        return None


def leading_int(txt: Optional[str]) -> Optional[int]:
    """Extract the leading integer of a rep target such as '8-12' (-> 8)."""
    if txt is None:
        return None
    m = _LEADING_INT_RE.match(str(txt))
    return int(m.group(1)) if m else None
