"""
Integrity Tag Schemes
=====================

Two ways of computing the envelope's `mac` field:

    Pbkdf2TagScheme (default):
        tag = PBKDF2-HMAC-SHA256(password=ciphertext, salt=key,
                                 iterations=1000, length=32)
        Legacy construction kept for compatibility with existing envelopes.

    HmacTagScheme:
        mac_key = HKDF-SHA256(key, info="cryptenvelope/mac")
        tag = HMAC-SHA256(mac_key, algo || 0 || mode || 0 || iv || ciphertext)
        The conventional construction; also binds the cipher name and IV.

Both produce a tag of the same shape, so the envelope format does not
change. Which one is in use is codec configuration.

Security:
    verify() always compares with hmac.compare_digest.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Protocol

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import hmac as crypto_hmac

from cryptenvelope.core.crypto.kdf import expand_key_hkdf, pbkdf2, resolve_hash
from cryptenvelope.security.constants import (
    HMAC_TAG_INFO,
    TAG_HASH,
    TAG_ITERATIONS,
    TAG_LENGTH_BYTES,
)


class TagScheme(Protocol):
    """Computes and checks the integrity tag of an envelope."""

    def compute(self, ciphertext: bytes, key: bytes, *, algo: str, mode: str, iv: bytes) -> bytes:
        ...

    def verify(
        self, tag: bytes, ciphertext: bytes, key: bytes, *, algo: str, mode: str, iv: bytes
    ) -> bool:
        ...


class _ConstantTimeVerify:
    __slots__ = ()

    def verify(
        self, tag: bytes, ciphertext: bytes, key: bytes, *, algo: str, mode: str, iv: bytes
    ) -> bool:
        expected = self.compute(ciphertext, key, algo=algo, mode=mode, iv=iv)
        return hmac.compare_digest(expected, tag)


@dataclass(frozen=True, slots=True)
class Pbkdf2TagScheme(_ConstantTimeVerify):
    """
    PBKDF2 keyed by (ciphertext as password, key as salt).

    The cipher name and IV are not covered by this tag. A tampered IV
    passes verification and yields garbled plaintext; the codec usually
    rejects that as a malformed payload. Use HmacTagScheme where that
    matters.
    """

    iterations: int = TAG_ITERATIONS
    length: int = TAG_LENGTH_BYTES
    hash_name: str = TAG_HASH

    def __post_init__(self) -> None:
        if self.iterations < 1:
            raise ValueError("Tag iterations must be at least 1")
        if self.length < 16:
            raise ValueError("Tag length must be at least 16 bytes")
        resolve_hash(self.hash_name)

    def compute(self, ciphertext: bytes, key: bytes, *, algo: str, mode: str, iv: bytes) -> bytes:
        return pbkdf2(ciphertext, key, self.iterations, self.length, self.hash_name)


@dataclass(frozen=True, slots=True)
class HmacTagScheme(_ConstantTimeVerify):
    """HMAC-SHA256 over the cipher name, IV and ciphertext."""

    length: int = TAG_LENGTH_BYTES

    def __post_init__(self) -> None:
        if not 16 <= self.length <= 32:
            raise ValueError("HMAC-SHA256 tag length must be 16-32 bytes")

    def compute(self, ciphertext: bytes, key: bytes, *, algo: str, mode: str, iv: bytes) -> bytes:
        mac_key = expand_key_hkdf(key, 32, info=HMAC_TAG_INFO)
        h = crypto_hmac.HMAC(mac_key, hashes.SHA256())
        h.update(algo.encode("utf-8") + b"\x00" + mode.encode("utf-8") + b"\x00")
        h.update(iv)
        h.update(ciphertext)
        return h.finalize()[: self.length]
