"""
Property string parsing.
Handles the flat `name=value;name=value` bags that are handed to steps.
"""

from typing import Any, Dict, Mapping, Optional

from ..exceptions import PropertyParseError

SEPARATOR = ';'
ASSIGNMENT = '='


def _find_key(properties: Mapping[str, str], key: str) -> Optional[str]:
    """Return the existing key matching `key` case-insensitively, if any."""
    lowered = key.lower()
    for existing in properties:
        if existing.lower() == lowered:
            return existing
    return None


def parse_properties(text: Optional[str]) -> Dict[str, str]:
    """
    Parse a `;` separated list of `name=value` pairs.

    Names and values are trimmed. Empty segments are ignored so a trailing
    separator is harmless. A segment without `=` is treated as a continuation
    of the previous value, which keeps values such as `Warnings=1;2;3`
    intact.

    Args:
        text: Property string, may be None or empty

    Returns:
        Ordered mapping of property names to values

    Raises:
        PropertyParseError: If a name is empty or the first segment has no `=`
    """
    result: Dict[str, str] = {}
    if not text:
        return result

    last_key: Optional[str] = None
    for segment in text.split(SEPARATOR):
        if not segment.strip():
            continue

        index = segment.find(ASSIGNMENT)
        if index == -1:
            if last_key is None:
                raise PropertyParseError(
                    f"Invalid property '{segment.strip()}': expected NAME=VALUE",
                    segment
                )
            result[last_key] = f"{result[last_key]}{SEPARATOR}{segment.strip()}"
            continue

        name = segment[:index].strip()
        value = segment[index + 1:].strip()
        if not name:
            raise PropertyParseError(
                f"Invalid property '{segment.strip()}': property name is empty",
                segment
            )

        existing = _find_key(result, name)
        if existing is not None:
            del result[existing]
        result[name] = value
        last_key = name

    return result


def normalize_properties(value: Any) -> Dict[str, str]:
    """
    Turn a property string, a mapping or None into an ordered string mapping.

    Raises:
        PropertyParseError: For unparseable strings
        TypeError: For any other input type
    """
    if value is None:
        return {}
    if isinstance(value, str):
        return parse_properties(value)
    if isinstance(value, Mapping):
        result: Dict[str, str] = {}
        for key, item in value.items():
            name = str(key).strip()
            if not name:
                raise PropertyParseError("Invalid property: property name is empty")
            if isinstance(item, bool):
                item = 'true' if item else 'false'
            existing = _find_key(result, name)
            if existing is not None:
                del result[existing]
            result[name] = '' if item is None else str(item)
        return result
    raise TypeError(f"Properties must be a string or mapping, got {type(value).__name__}")


def merge_properties(base: Mapping[str, str], overrides: Mapping[str, str]) -> Dict[str, str]:
    """
    Merge two property bags, values from `overrides` win.

    Keys are compared case-insensitively. Entries from `base` that are not
    overridden come first, followed by every entry of `overrides`.
    """
    lowered = {key.lower() for key in overrides}
    merged = {key: value for key, value in base.items() if key.lower() not in lowered}
    merged.update(overrides)
    return merged


def format_properties(properties: Mapping[str, str]) -> str:
    """Render a property bag back into `name=value;` form."""
    return ''.join(f"{key}{ASSIGNMENT}{value}{SEPARATOR}" for key, value in properties.items())
