"""
Envelope Constants
==================

Protocol-level constants shared by the envelope codec and its tag schemes.
Changing any of the tag values breaks compatibility with envelopes
already written.
"""

from typing import Final

# Envelope defaults
DEFAULT_ALGORITHM: Final[str] = "aes"
DEFAULT_MODE: Final[str] = "ctr"
ENVELOPE_FIELDS: Final[frozenset[str]] = frozenset({"algo", "mode", "iv", "cdata", "mac"})

# PBKDF2 integrity tag
TAG_SCHEME: Final[str] = "pbkdf2"
TAG_ITERATIONS: Final[int] = 1000
TAG_LENGTH_BYTES: Final[int] = 32
TAG_HASH: Final[str] = "sha256"

# HMAC integrity tag
HMAC_TAG_INFO: Final[bytes] = b"cryptenvelope/mac"

# Passphrase stretching
PBKDF2_ITERATIONS: Final[int] = 600_000  # OWASP 2023 recommendation
ARGON2_TIME_COST: Final[int] = 3
ARGON2_MEMORY_COST: Final[int] = 65536  # 64 MB
ARGON2_PARALLELISM: Final[int] = 4
