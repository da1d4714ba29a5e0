"""
cryptenvelope - Self-Describing Authenticated Encryption
========================================================

Encrypts structured data into a JSON envelope carrying the cipher name,
IV, ciphertext and an integrity tag, and decrypts it again with the same key.

Security Notice:
- Tags are verified in constant time before anything is decrypted
- Wrong keys and tampered envelopes fail the same way
- No key material is logged
"""

from cryptenvelope.core.config import CryptConfig
from cryptenvelope.core.crypto.envelope import Envelope, EnvelopeCodec, decrypt, encrypt
from cryptenvelope.core.crypto.errors import (
    CryptoError,
    DerivedKeyTooLongError,
    KeySizeError,
    MacMismatchError,
    MalformedEnvelopeError,
    SerializationError,
    UnsupportedAlgorithmError,
)
from cryptenvelope.core.crypto.kdf import pbkdf2
from cryptenvelope.core.logging import configure_logging, get_secure_logger

__version__ = "0.1.0"

__all__ = [
    "CryptConfig",
    "CryptoError",
    "DerivedKeyTooLongError",
    "Envelope",
    "EnvelopeCodec",
    "KeySizeError",
    "MacMismatchError",
    "MalformedEnvelopeError",
    "SerializationError",
    "UnsupportedAlgorithmError",
    "configure_logging",
    "decrypt",
    "encrypt",
    "get_secure_logger",
    "pbkdf2",
    "__version__",
]
