"""
Cipher Capability
=================

The envelope codec talks to block ciphers through two small interfaces:

    CipherBackend.resolve(algorithm, mode) -> CipherSpec
    CipherSpec.encrypt(plaintext, key, iv) / decrypt(ciphertext, key, iv)

A CipherSpec also reports the key sizes it accepts (an enumerated set, or
None with a max_key_size for ciphers taking any length 1..max) and the IV
size it needs.

CryptographyCipherBackend implements this with the `cryptography` package:

    Algorithm         Key sizes (bytes)   Modes
    aes/rijndael-128  16, 24, 32          ctr, cbc
    sm4               16                  ctr, cbc
    chacha20          32                  stream

CBC input is PKCS7 padded. CFB, OFB and Camellia are not offered;
`cryptography` has moved them to its decrepit module. Whether a combination
is usable depends on the OpenSSL build; unusable ones raise
UnsupportedAlgorithmError on resolve.

WARNING:
    - Never reuse an IV with the same key (counter modes leak plaintext XOR)
    - These modes are unauthenticated on their own; the envelope tag is what
      provides integrity
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Final, Optional, Protocol, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, CipherAlgorithm, algorithms, modes

from cryptenvelope.core.crypto.errors import KeySizeError, UnsupportedAlgorithmError


class CipherSpec(Protocol):
    """A resolved algorithm/mode pair able to encrypt and decrypt."""

    algorithm: str
    mode: str
    key_sizes: Optional[frozenset[int]]
    max_key_size: int
    iv_size: int

    def encrypt(self, plaintext: bytes, key: bytes, iv: bytes) -> bytes:
        ...

    def decrypt(self, ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
        ...


class CipherBackend(Protocol):
    """Looks up ciphers by algorithm and mode name."""

    def resolve(self, algorithm: str, mode: str) -> CipherSpec:
        ...


def allowed_key_sizes(cipher: CipherSpec) -> Union[frozenset[int], range]:
    """Enumerated key sizes, or range(1, max_key_size + 1) for bounded ciphers."""
    if cipher.key_sizes:
        return cipher.key_sizes
    return range(1, cipher.max_key_size + 1)


def validate_key_size(cipher: CipherSpec, key: bytes) -> None:
    """
    Check a key's length against the cipher's constraint.

    Raises:
        KeySizeError: If the key length is not accepted
    """
    allowed = allowed_key_sizes(cipher)
    if len(key) not in allowed:
        raise KeySizeError(len(key), allowed)


@dataclass(frozen=True, slots=True)
class _AlgorithmInfo:
    factory: Callable[..., CipherAlgorithm]
    key_sizes: frozenset[int]
    iv_size: int
    block_size: int  # 0 for stream ciphers
    modes: frozenset[str]


_BLOCK_MODES: Final[dict[str, Callable[[bytes], modes.Mode]]] = {
    "ctr": modes.CTR,
    "cbc": modes.CBC,
}

STREAM_MODE: Final[str] = "stream"

_AES = _AlgorithmInfo(algorithms.AES, frozenset({16, 24, 32}), 16, 16, frozenset(_BLOCK_MODES))

_ALGORITHMS: Final[dict[str, _AlgorithmInfo]] = {
    "aes": _AES,
    "rijndael-128": _AES,
    "sm4": _AlgorithmInfo(algorithms.SM4, frozenset({16}), 16, 16, frozenset(_BLOCK_MODES)),
    # 16-byte nonce: 4-byte little-endian counter followed by a 12-byte nonce
    "chacha20": _AlgorithmInfo(
        algorithms.ChaCha20, frozenset({32}), 16, 0, frozenset({STREAM_MODE})
    ),
}


@dataclass(frozen=True, slots=True)
class CryptographyCipher:
    """
    A cipher/mode pair backed by `cryptography`.

    Instances hold no key material; key and IV are passed per call.
    """

    algorithm: str
    mode: str
    key_sizes: frozenset[int]
    iv_size: int
    block_size: int
    _info: _AlgorithmInfo

    @property
    def max_key_size(self) -> int:
        return max(self.key_sizes)

    @property
    def padded(self) -> bool:
        return self.mode == "cbc"

    def _cipher(self, key: bytes, iv: bytes) -> Cipher:
        if self.mode == STREAM_MODE:
            return Cipher(self._info.factory(key, iv), mode=None)
        return Cipher(self._info.factory(key), _BLOCK_MODES[self.mode](iv))

    def encrypt(self, plaintext: bytes, key: bytes, iv: bytes) -> bytes:
        if self.padded:
            padder = padding.PKCS7(self.block_size * 8).padder()
            plaintext = padder.update(plaintext) + padder.finalize()

        encryptor = self._cipher(key, iv).encryptor()
        return encryptor.update(plaintext) + encryptor.finalize()

    def decrypt(self, ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
        """
        Raises:
            ValueError: If the key/IV size is wrong, or CBC padding is invalid
        """
        decryptor = self._cipher(key, iv).decryptor()
        plaintext = decryptor.update(ciphertext) + decryptor.finalize()

        if self.padded:
            unpadder = padding.PKCS7(self.block_size * 8).unpadder()
            plaintext = unpadder.update(plaintext) + unpadder.finalize()

        return plaintext

    def __repr__(self) -> str:
        return f"CryptographyCipher({self.algorithm}/{self.mode})"


class CryptographyCipherBackend:
    """
    Cipher backend over `cryptography`'s hazmat cipher primitives.

    Usage:
        backend = CryptographyCipherBackend()
        cipher = backend.resolve("aes", "ctr")
        ciphertext = cipher.encrypt(plaintext, key, iv)
    """

    __slots__ = ()

    @staticmethod
    def known_algorithms() -> tuple[str, ...]:
        """Names of every algorithm this backend knows about."""
        return tuple(sorted(_ALGORITHMS))

    def resolve(self, algorithm: str, mode: str) -> CryptographyCipher:
        """
        Look up an algorithm/mode pair.

        Raises:
            UnsupportedAlgorithmError: If the pair is unknown or unavailable
                in the installed OpenSSL
        """
        info = _ALGORITHMS.get(str(algorithm).lower())
        mode = str(mode).lower()
        if info is None or mode not in info.modes:
            raise UnsupportedAlgorithmError(f"Unsupported cipher: {algorithm}/{mode}")

        cipher = CryptographyCipher(
            algorithm=str(algorithm).lower(),
            mode=mode,
            key_sizes=info.key_sizes,
            iv_size=info.iv_size,
            block_size=info.block_size,
            _info=info,
        )

        # Probe the OpenSSL build with a throwaway zero key
        try:
            cipher._cipher(bytes(cipher.max_key_size), bytes(cipher.iv_size)).encryptor()
        except UnsupportedAlgorithm as e:
            raise UnsupportedAlgorithmError(
                f"Cipher {algorithm}/{mode} is not available: {e}"
            ) from e

        return cipher
