"""
Random Sources
==============

The envelope codec never calls the OS RNG directly; it asks a RandomSource
for bytes, so tests can substitute a deterministic source.
"""

from __future__ import annotations

import secrets
from typing import Protocol, runtime_checkable


@runtime_checkable
class RandomSource(Protocol):
    """Anything that returns n cryptographically random bytes."""

    def token_bytes(self, n: int) -> bytes:
        ...


class SystemRandomSource:
    """
    Random source backed by the OS CSPRNG.

    Security:
        Uses the secrets module, which reads from os.urandom.
    """

    __slots__ = ()

    def token_bytes(self, n: int) -> bytes:
        if n < 0:
            raise ValueError("Cannot generate a negative number of bytes")
        return secrets.token_bytes(n)

    def __repr__(self) -> str:
        return "SystemRandomSource()"
