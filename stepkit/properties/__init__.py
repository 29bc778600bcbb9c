"""
Property bag module.
Parses, merges and renders the `name=value;` property strings steps receive.
"""

from .parser import (
    parse_properties,
    normalize_properties,
    merge_properties,
    format_properties,
)

__all__ = [
    'parse_properties',
    'normalize_properties',
    'merge_properties',
    'format_properties',
]
