"""Parsing of the command-line lists and droplet matching."""

import re
from typing import Any


def _strip_quotes(text: str) -> str:
    return text.replace('"', "")


def parse_metric_state(text: str) -> list[bool]:
    """
    Parse a comma-separated metric toggle list.

    Args:
        text: Toggle list such as ``"1,0"``; ``1`` turns a metric on,
            anything else turns it off

    Returns:
        One boolean per token, in order
    """
    return [token == "1" for token in _strip_quotes(text).split(",")]


def parse_droplet_filter(text: str) -> list[str]:
    """
    Parse a semicolon-separated list of droplet names and IDs.

    An empty string means no filter (every droplet matches).
    """
    text = _strip_quotes(text)
    if not text:
        return []
    return text.split(";")


# Forms accepted as a number: decimals with optional exponent, unsigned
# hex/octal/binary literals and signed Infinity. No underscores, no "inf"/"nan".
NUMERIC_PATTERN = re.compile(
    r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
    r"|0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+"
    r"|[+-]?Infinity"
)


def _is_number(entry: str) -> bool:
    """Check whether a filter entry should be compared against droplet IDs."""
    stripped = entry.strip()
    if not stripped:
        # Blank entries count as numeric (and then never equal an ID)
        return True
    return NUMERIC_PATTERN.fullmatch(stripped) is not None


def match_droplet(droplet: dict[str, Any], filter_list: list[str]) -> bool:
    """
    Check whether a droplet is selected by a filter list.

    Numeric entries must equal the droplet ID exactly; other entries match
    when they are a case-insensitive substring of the droplet name.

    Args:
        droplet: Droplet object from the API
        filter_list: Names and IDs; empty means match everything

    Returns:
        True if any entry matches
    """
    if not filter_list:
        return True

    name = str(droplet.get("name", "")).lower()
    droplet_id = str(droplet.get("id", ""))

    for entry in filter_list:
        if _is_number(entry):
            if entry == droplet_id:
                return True
        elif entry.strip().lower() in name:
            return True

    return False
