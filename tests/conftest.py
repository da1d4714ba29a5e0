"""
cryptenvelope Test Fixtures
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional

import pytest

from cryptenvelope.core.crypto.envelope import EnvelopeCodec
from cryptenvelope.core.crypto.errors import UnsupportedAlgorithmError
from cryptenvelope.core.logging import ROOT_LOGGER_NAME


class FixedRandomSource:
    """Deterministic random source: always returns the same byte."""

    def __init__(self, value: int = 0x42) -> None:
        self.value = value
        self.requests: list[int] = []

    def token_bytes(self, n: int) -> bytes:
        self.requests.append(n)
        return bytes([self.value]) * n


@dataclass
class XorStreamCipher:
    """
    Toy stream cipher taking any key of 1..max_key_size bytes.

    Keystream is SHA-256(key || iv || counter) blocks. Counts calls so tests
    can check that nothing was decrypted.
    """

    algorithm: str = "xor"
    mode: str = "stream"
    key_sizes: Optional[frozenset] = None
    max_key_size: int = 56
    iv_size: int = 8
    calls: dict = field(default_factory=lambda: {"encrypt": 0, "decrypt": 0})

    def _keystream(self, key: bytes, iv: bytes, length: int) -> bytes:
        out = b""
        counter = 0
        while len(out) < length:
            out += hashlib.sha256(key + iv + counter.to_bytes(4, "big")).digest()
            counter += 1
        return out[:length]

    def encrypt(self, plaintext: bytes, key: bytes, iv: bytes) -> bytes:
        self.calls["encrypt"] += 1
        stream = self._keystream(key, iv, len(plaintext))
        return bytes(a ^ b for a, b in zip(plaintext, stream))

    def decrypt(self, ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
        self.calls["decrypt"] += 1
        stream = self._keystream(key, iv, len(ciphertext))
        return bytes(a ^ b for a, b in zip(ciphertext, stream))


class FakeCipherBackend:
    """Backend knowing only xor/stream."""

    def __init__(self) -> None:
        self.cipher = XorStreamCipher()

    def resolve(self, algorithm: str, mode: str) -> XorStreamCipher:
        if (algorithm, mode) != ("xor", "stream"):
            raise UnsupportedAlgorithmError(f"Unsupported cipher: {algorithm}/{mode}")
        return self.cipher


@pytest.fixture
def key32() -> bytes:
    return bytes(range(32))


@pytest.fixture
def key16() -> bytes:
    return bytes(range(100, 116))


@pytest.fixture
def codec() -> EnvelopeCodec:
    """Codec with the real cryptography backend and OS randomness."""
    return EnvelopeCodec()


@pytest.fixture
def fixed_random() -> FixedRandomSource:
    return FixedRandomSource()


@pytest.fixture
def fake_backend() -> FakeCipherBackend:
    return FakeCipherBackend()


@pytest.fixture
def fake_codec(fake_backend, fixed_random) -> EnvelopeCodec:
    """Codec over the toy range-keyed cipher with a fixed IV."""
    return EnvelopeCodec(
        cipher_backend=fake_backend,
        random_source=fixed_random,
        algorithm="xor",
        mode="stream",
    )


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo configure_logging() between tests so caplog keeps working."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
