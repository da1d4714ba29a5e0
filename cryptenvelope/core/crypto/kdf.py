"""
Key Derivation Functions
========================

PBKDF2 (RFC 2898) over any HMAC-capable hash, plus passphrase stretching.

Implements:
    - pbkdf2: the generic derivation engine, also used as the envelope tag
    - Argon2id for memory-hard passphrase stretching
    - HKDF for key expansion
"""

from __future__ import annotations

import struct
from typing import Final, Optional, Union

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from cryptenvelope.core.crypto.errors import (
    DerivedKeyTooLongError,
    UnsupportedAlgorithmError,
)
from cryptenvelope.security.constants import (
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_TIME_COST,
    PBKDF2_ITERATIONS,
)

# Maximum block index representable in the 32-bit big-endian counter
MAX_BLOCK_COUNT: Final[int] = 2**32 - 1

_HASH_ALGORITHMS: Final[dict[str, type[hashes.HashAlgorithm]]] = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

HashLike = Union[str, hashes.HashAlgorithm]


def resolve_hash(algorithm: HashLike) -> hashes.HashAlgorithm:
    """
    Turn a hash name such as "sha256" into a HashAlgorithm instance.

    Instances are passed through unchanged.

    Raises:
        UnsupportedAlgorithmError: If the name is not known
    """
    if isinstance(algorithm, hashes.HashAlgorithm):
        return algorithm
    try:
        return _HASH_ALGORITHMS[algorithm.lower()]()
    except (KeyError, AttributeError):
        raise UnsupportedAlgorithmError(f"Unsupported hash algorithm: {algorithm!r}") from None


def max_derived_length(algorithm: HashLike) -> int:
    """Largest output PBKDF2 can produce for this hash: (2**32 - 1) * hLen."""
    return MAX_BLOCK_COUNT * resolve_hash(algorithm).digest_size


def _prf(keyed: hmac.HMAC, data: bytes) -> bytes:
    h = keyed.copy()
    h.update(data)
    return h.finalize()


def pbkdf2(
    password: bytes,
    salt: bytes,
    iterations: int,
    length: int,
    hash_algorithm: HashLike = "sha256",
) -> bytes:
    """
    Derive key material with PBKDF2-HMAC as described in RFC 2898.

    Args:
        password: Secret input, used as the HMAC key
        salt: Salt bytes
        iterations: Iteration count (at least 1)
        length: Requested output length in bytes
        hash_algorithm: Hash name or cryptography HashAlgorithm

    Returns:
        Exactly ``length`` derived bytes

    Raises:
        ValueError: If iterations < 1 or length < 0
        DerivedKeyTooLongError: If length exceeds (2**32 - 1) * hLen
        UnsupportedAlgorithmError: If the hash is unknown
    """
    if iterations < 1:
        raise ValueError("Iteration count must be at least 1")
    if length < 0:
        raise ValueError("Derived key length cannot be negative")

    algorithm = resolve_hash(hash_algorithm)
    h_len = algorithm.digest_size

    if length > MAX_BLOCK_COUNT * h_len:
        raise DerivedKeyTooLongError(
            f"Derived key too long: {length} bytes requested, "
            f"maximum is {MAX_BLOCK_COUNT * h_len}"
        )

    block_count = -(-length // h_len)
    keyed = hmac.HMAC(password, algorithm)

    blocks = []
    for index in range(1, block_count + 1):
        u = _prf(keyed, salt + struct.pack(">I", index))
        # XOR accumulation done on ints, one conversion per round
        acc = int.from_bytes(u, "big")
        for _ in range(iterations - 1):
            u = _prf(keyed, u)
            acc ^= int.from_bytes(u, "big")
        blocks.append(acc.to_bytes(h_len, "big"))

    return b"".join(blocks)[:length]


def derive_key_pbkdf2(
    password: str,
    salt: bytes,
    length: int = 32,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """
    Derive a key from a passphrase using PBKDF2-HMAC-SHA256.

    Args:
        password: User passphrase
        salt: Random salt
        length: Output key length
        iterations: Iteration count

    Returns:
        Derived key bytes
    """
    return pbkdf2(password.encode("utf-8"), salt, iterations, length, hashes.SHA256())


def derive_key_argon2(
    password: str,
    salt: bytes,
    length: int = 32,
) -> bytes:
    """
    Derive a key from a passphrase using Argon2id.

    Args:
        password: User passphrase
        salt: Random salt (at least 16 bytes)
        length: Output key length

    Returns:
        Derived key bytes
    """
    if len(salt) < 16:
        raise ValueError("Argon2 salt must be at least 16 bytes")

    return hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=length,
        type=Type.ID,
    )


def expand_key_hkdf(
    key_material: bytes,
    length: int,
    info: bytes = b"",
    salt: Optional[bytes] = None,
) -> bytes:
    """
    Expand key material using HKDF-SHA256.

    Args:
        key_material: Input key material
        length: Output length
        info: Context/application info
        salt: Optional salt

    Returns:
        Expanded key bytes
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    )
    return hkdf.derive(key_material)
