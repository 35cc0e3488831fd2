"""
Reference number generation.

Format: XXX-XXX-XXX, or PREFIX-XXX-XXX when a prefix is configured.
Segments are random hex, upper-cased. No uniqueness guarantee beyond
randomness - collisions are possible but rare.
"""

import secrets

SEGMENT_LENGTH = 3


def generate_unique_reference(prefix: str = "") -> str:
    """
    Generate a user-facing reference number for a form instance.

    Args:
        prefix (str): Optional prefix, e.g. 'TAX'

    Returns:
        str: Reference number

    Examples:
        >>> generate_unique_reference()
        'A3F-7E2-B91'

        >>> generate_unique_reference('tax')
        'TAX-C1D-2E3'
    """
    segment_count = 2 if prefix else 3
    segments = [secrets.token_hex(2)[:SEGMENT_LENGTH] for _ in range(segment_count)]
    head = f"{prefix}-" if prefix else ""
    return f"{head}{'-'.join(segments)}".upper()
