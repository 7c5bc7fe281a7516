"""
Counted quantity parsing.  ZERO I/O.

Operators type counted quantities into free-text fields; the raw string is
what the count batcher buffers.  It is converted to an integer only when it
is written.
"""

import re

_NON_NEGATIVE_INT = re.compile(r"[0-9]+")


def parse_counted_qty(raw: str | None) -> int | None:
    """
    Strict parse of a counted quantity.

    A non-negative base-10 integer, surrounding whitespace allowed, parses
    to ``int``.  Anything else (empty, signs, decimals, exponents, letters)
    means "unset" and returns None.

        >>> parse_counted_qty(" 42 ")
        42
        >>> parse_counted_qty("4.5") is None
        True
    """
    if raw is None:
        return None
    text = raw.strip()
    if not _NON_NEGATIVE_INT.fullmatch(text):
        return None
    return int(text)
