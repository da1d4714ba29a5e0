"""
Security module - Protocol constants.
"""

from cryptenvelope.security.constants import (
    DEFAULT_ALGORITHM,
    DEFAULT_MODE,
    ENVELOPE_FIELDS,
    TAG_ITERATIONS,
    TAG_LENGTH_BYTES,
)

__all__ = [
    "DEFAULT_ALGORITHM",
    "DEFAULT_MODE",
    "ENVELOPE_FIELDS",
    "TAG_ITERATIONS",
    "TAG_LENGTH_BYTES",
]
