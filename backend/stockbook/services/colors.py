# Overview: Colour key normalization; the single point of truth for colour identity in stock buckets.

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"\s+")


def normalize_color(raw) -> str:
    """
    Canonical stock key for a colour label.

    " Red ", "RED" and "red" all map to "red"; runs of inner whitespace
    collapse so "Dark  Green" == "dark green". Empty or non-string input
    returns "" which callers must reject as an invalid colour.
    """
    if not raw or not isinstance(raw, str):
        return ""
    return _WHITESPACE.sub(" ", raw.strip()).lower()


def colors_match(a, b) -> bool:
    return normalize_color(a) == normalize_color(b)
