"""
Cryptographic Error Types
=========================

Every failure raised by the envelope and key-derivation code derives from
CryptoError, so callers can catch the whole family in one place.

Security Notes:
    - MacMismatchError is raised for both a wrong key and tampered data;
      the message never says which.
    - Messages never include key material or plaintext.
"""

from __future__ import annotations

from typing import Optional, Union


class CryptoError(Exception):
    """Base exception for envelope and key-derivation failures."""
    pass


class KeySizeError(CryptoError, ValueError):
    """
    Raised when a key length is outside the cipher's constraints.

    Attributes:
        key_size: Length of the rejected key in bytes
        allowed: Enumerated sizes, or a range for bounded ciphers
    """

    def __init__(
        self,
        key_size: int,
        allowed: Union[frozenset[int], range],
        message: Optional[str] = None,
    ) -> None:
        self.key_size = key_size
        self.allowed = allowed
        if message is None:
            if isinstance(allowed, range):
                expected = f"1 - {allowed.stop - 1} bytes"
            else:
                expected = "one of " + ", ".join(str(s) for s in sorted(allowed))
            message = f"Key is out of range ({key_size} bytes). Should be {expected}."
        super().__init__(message)


class MalformedEnvelopeError(CryptoError, ValueError):
    """Raised when an envelope is missing fields or a field fails to decode."""
    pass


class MacMismatchError(CryptoError):
    """Raised when the integrity tag does not verify."""

    def __init__(self) -> None:
        super().__init__("Message authentication code invalid")


class DerivedKeyTooLongError(CryptoError, ValueError):
    """Raised when a PBKDF2 output length exceeds (2**32 - 1) * hLen."""
    pass


class UnsupportedAlgorithmError(CryptoError):
    """Raised when the cipher backend cannot honor an algorithm/mode pair."""
    pass


class SerializationError(CryptoError, TypeError):
    """Raised when the codec cannot serialize the given data."""
    pass
