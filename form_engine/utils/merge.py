"""
State merge utilities.

Pure functions for combining form session state.

Design principles:
- Pure functions (no side effects, inputs never mutated)
- Total: every value is one of three kinds, so no ad hoc type probing
- Recursive over nested records only

Value kinds (leaf-level tagged union):
- SCALAR: str, int, float, bool, None and anything else opaque
- SEQUENCE: list or tuple (ordered answers, e.g. checkbox values)
- RECORD: dict (nested answers, e.g. an address)

Usage:
    from form_engine.utils.merge import merge

    merge({'a': 1, 'items': ['x']}, {'items': ['y', 'z'], 'b': 2})
    # {'a': 1, 'items': ['y', 'z'], 'b': 2}
"""

import copy
from enum import Enum
from typing import Any, Dict


class ValueKind(str, Enum):
    """Kind of a form state value."""
    SCALAR = "scalar"
    SEQUENCE = "sequence"
    RECORD = "record"


def classify(value: Any) -> ValueKind:
    """
    Tag a state value with its kind.

    Examples:
        >>> classify(['a'])
        <ValueKind.SEQUENCE: 'sequence'>
        >>> classify({'line1': '1 High St'})
        <ValueKind.RECORD: 'record'>
        >>> classify('yes')
        <ValueKind.SCALAR: 'scalar'>
    """
    if isinstance(value, dict):
        return ValueKind.RECORD
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    return ValueKind.SCALAR


def merge(state: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """
    Right-biased deep merge of two state records.

    Rules:
    1. Keys only in `state` survive unchanged
    2. Keys only in `update` are added
    3. Update value is a SEQUENCE -> replaces wholesale (never concatenated)
    4. Both values are RECORDs -> merged recursively
    5. Any other conflict -> update's value wins

    Args:
        state: Existing state
        update: Values to apply

    Returns:
        New dict; neither input is modified

    Examples:
        >>> merge({'address': {'town': 'Leeds', 'postcode': 'LS1'}},
        ...       {'address': {'postcode': 'LS2'}})
        {'address': {'town': 'Leeds', 'postcode': 'LS2'}}
    """
    result = copy.deepcopy(state)

    for key, new_value in update.items():
        kind = classify(new_value)

        if kind is ValueKind.RECORD and classify(result.get(key)) is ValueKind.RECORD:
            result[key] = merge(result[key], new_value)
        else:
            result[key] = copy.deepcopy(new_value)

    return result
