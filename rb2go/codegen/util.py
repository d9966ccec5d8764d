"""Helpers for turning Ruby names and literals into Go text."""

from __future__ import annotations

import math
import string

from .. import constants

_SIMPLE_CHARS = frozenset(string.ascii_letters + string.digits + string.punctuation + " ")
_ESCAPES = {"\t": r"\t", "\r": r"\r", "\n": r"\n", '"': r"\"", "\\": r"\\"}

_INT_PREFIXES = {"0x": 16, "0b": 2, "0o": 8, "0d": 10}

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def go_str(value: str) -> str:
    """Return a Go interpreted string literal holding the UTF-8 bytes of *value*."""
    parts = ['"']
    for c in value:
        if c in _ESCAPES:
            parts.append(_ESCAPES[c])
        elif c in _SIMPLE_CHARS:
            parts.append(c)
        else:
            parts.extend(f"\\x{b:02x}" for b in c.encode("utf-8"))
    parts.append('"')
    return "".join(parts)


def go_identifier(name: str) -> str:
    """Return the Go identifier of the local storage slot for a Ruby local."""
    return constants.LOCAL_PREFIX + name


def parse_int_literal(text: str) -> int:
    """Parse Ruby integer literal syntax. Raises ValueError on malformed text."""
    digits = text.replace("_", "")
    sign = 1
    if digits[:1] in ("+", "-"):
        sign = -1 if digits[0] == "-" else 1
        digits = digits[1:]
    base = 10
    prefix = digits[:2].lower()
    if prefix in _INT_PREFIXES:
        base = _INT_PREFIXES[prefix]
        digits = digits[2:]
    elif len(digits) > 1 and digits.startswith("0"):
        base = 8
        digits = digits[1:]
    return sign * int(digits, base)


def format_float_literal(text: str) -> str:
    """Return a Go float literal for Ruby float syntax. Raises ValueError."""
    value = float(text.replace("_", ""))
    if not math.isfinite(value):
        raise ValueError(f"float literal out of range: {text}")
    return repr(value)
