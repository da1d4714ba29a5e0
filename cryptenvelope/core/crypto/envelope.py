"""
Authenticated Envelope
======================

Encrypts structured data into a self-describing envelope and back.

Envelope wire format (JSON object, key order irrelevant):

    {
        "algo":  "aes",                  cipher algorithm name
        "mode":  "ctr",                  cipher mode name
        "iv":    "<base64>",             fresh random IV
        "cdata": "<base64>",             ciphertext
        "mac":   "<base64>"              integrity tag
    }

Encryption Flow:
    data
        ↓ serializer.serialize
    plaintext
        ↓ cipher.encrypt(key, fresh iv)
    ciphertext
        ↓ tag_scheme.compute(ciphertext, key)
    Envelope(algo, mode, iv, cdata, mac)

Decryption Flow:
    Envelope (parsed strictly: exactly five fields, all decodable)
        ↓ tag_scheme.verify (constant time) -- stop here on mismatch
        ↓ cipher.decrypt(key, iv)
    plaintext (not trimmed)
        ↓ serializer.deserialize
    data

Security Properties:
    - A malformed envelope never reaches the cipher
    - The tag is verified before anything is decrypted
    - Wrong key and tampered data raise the same MacMismatchError
    - Nothing about the key is logged

WARNING:
    - An envelope is only as good as its key; this module does not store,
      rotate or distribute keys
"""

from __future__ import annotations

import binascii
import json
import logging
from base64 import b64decode, b64encode
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

from cryptenvelope.core.crypto.ciphers import (
    CipherBackend,
    CipherSpec,
    CryptographyCipherBackend,
    validate_key_size,
)
from cryptenvelope.core.crypto.entropy import RandomSource, SystemRandomSource
from cryptenvelope.core.crypto.errors import (
    KeySizeError,
    MacMismatchError,
    MalformedEnvelopeError,
    UnsupportedAlgorithmError,
)
from cryptenvelope.core.crypto.tags import HmacTagScheme, Pbkdf2TagScheme, TagScheme
from cryptenvelope.core.serialization import JsonSerializer, Serializer
from cryptenvelope.security.constants import DEFAULT_ALGORITHM, DEFAULT_MODE, ENVELOPE_FIELDS

if TYPE_CHECKING:
    from cryptenvelope.core.config import CryptConfig

_BINARY_FIELDS = ("iv", "cdata", "mac")


def _decode_field(name: str, value: Any) -> bytes:
    if not isinstance(value, str):
        raise MalformedEnvelopeError(f"Envelope field {name!r} must be a base64 string")
    try:
        return b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelopeError(f"Envelope field {name!r} is not valid base64") from e


@dataclass(frozen=True, slots=True)
class Envelope:
    """
    Immutable encrypted envelope.

    Binary fields are held decoded; to_dict()/to_json() base64-encode them.

    Attributes:
        algo: Cipher algorithm name
        mode: Cipher mode name
        iv: Initialization vector
        cdata: Ciphertext
        mac: Integrity tag over the ciphertext
    """

    algo: str
    mode: str
    iv: bytes
    cdata: bytes
    mac: bytes

    def to_dict(self) -> dict[str, str]:
        """Wire representation with base64-encoded binary fields."""
        return {
            "algo": self.algo,
            "mode": self.mode,
            "iv": b64encode(self.iv).decode("ascii"),
            "cdata": b64encode(self.cdata).decode("ascii"),
            "mac": b64encode(self.mac).decode("ascii"),
        }

    def to_json(self) -> str:
        """Serialize to a JSON string safe for storage in a database or file."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Envelope":
        """
        Build an envelope from its wire representation.

        Raises:
            MalformedEnvelopeError: If a field is missing, extra, or undecodable
        """
        if not isinstance(data, Mapping):
            raise MalformedEnvelopeError("Envelope must be a JSON object")

        fields = set(data)
        if fields != ENVELOPE_FIELDS:
            missing = sorted(ENVELOPE_FIELDS - fields)
            extra = sorted(str(f) for f in fields - ENVELOPE_FIELDS)
            raise MalformedEnvelopeError(
                f"Envelope must have exactly five fields (missing={missing}, extra={extra})"
            )

        for name in ("algo", "mode"):
            if not isinstance(data[name], str) or not data[name]:
                raise MalformedEnvelopeError(f"Envelope field {name!r} must be a non-empty string")

        iv, cdata, mac = (_decode_field(name, data[name]) for name in _BINARY_FIELDS)

        return cls(algo=data["algo"], mode=data["mode"], iv=iv, cdata=cdata, mac=mac)

    @classmethod
    def from_json(cls, text: Union[str, bytes]) -> "Envelope":
        """
        Parse a JSON envelope.

        Raises:
            MalformedEnvelopeError: If the text is not a well-formed envelope
        """
        try:
            data = json.loads(text)
        except (ValueError, TypeError, RecursionError) as e:
            raise MalformedEnvelopeError("Envelope is not valid JSON") from e
        return cls.from_dict(data)

    @classmethod
    def parse(cls, value: Union["Envelope", str, bytes, Mapping[str, Any]]) -> "Envelope":
        """Accept an Envelope, its JSON text, or its wire mapping."""
        if isinstance(value, Envelope):
            return value
        if isinstance(value, (str, bytes, bytearray)):
            return cls.from_json(value)
        return cls.from_dict(value)

    def __repr__(self) -> str:
        """Safe representation without binary contents."""
        return (
            f"Envelope({self.algo}/{self.mode}, "
            f"iv_len={len(self.iv)}, cdata_len={len(self.cdata)}, mac_len={len(self.mac)})"
        )


def _require_bytes(key: Any) -> bytes:
    if not isinstance(key, (bytes, bytearray, memoryview)):
        raise TypeError(f"Key must be bytes, got {type(key).__name__}")
    return bytes(key)


class EnvelopeCodec:
    """
    Authenticated envelope encryption over injected capabilities.

    The cipher backend, random source, serializer, tag scheme and default
    algorithm/mode are fixed at construction. Instances keep no per-call
    state and can be shared between threads.

    Usage:
        codec = EnvelopeCodec()

        envelope = codec.encrypt({"card": "4111..."}, key)
        stored = envelope.to_json()

        data = codec.decrypt(stored, key)

    Security Notes:
        - A fresh IV is drawn from the random source for every encryption
        - decrypt() verifies the tag before decrypting anything
        - All integrity failures raise MacMismatchError with one message
    """

    __slots__ = ("_ciphers", "_random", "_serializer", "_tags", "_algorithm", "_mode", "_log")

    def __init__(
        self,
        cipher_backend: Optional[CipherBackend] = None,
        random_source: Optional[RandomSource] = None,
        serializer: Optional[Serializer] = None,
        algorithm: str = DEFAULT_ALGORITHM,
        mode: str = DEFAULT_MODE,
        tag_scheme: Optional[TagScheme] = None,
    ) -> None:
        """
        Initialize the codec.

        Args:
            cipher_backend: Cipher capability (default: `cryptography` backend)
            random_source: IV source (default: OS CSPRNG)
            serializer: Data codec (default: JSON)
            algorithm: Default cipher algorithm
            mode: Default cipher mode
            tag_scheme: Integrity tag scheme (default: PBKDF2 tag)
        """
        self._ciphers = cipher_backend or CryptographyCipherBackend()
        self._random = random_source or SystemRandomSource()
        self._serializer = serializer or JsonSerializer()
        self._tags = tag_scheme or Pbkdf2TagScheme()
        self._algorithm = algorithm
        self._mode = mode
        self._log = logging.getLogger("cryptenvelope.envelope")

    @classmethod
    def from_config(
        cls,
        config: "CryptConfig",
        cipher_backend: Optional[CipherBackend] = None,
        random_source: Optional[RandomSource] = None,
        serializer: Optional[Serializer] = None,
    ) -> "EnvelopeCodec":
        """Build a codec from the cipher and tag sections of a CryptConfig."""
        if config.tag.scheme == "hmac":
            tag_scheme: TagScheme = HmacTagScheme(length=config.tag.length)
        else:
            tag_scheme = Pbkdf2TagScheme(
                iterations=config.tag.iterations,
                length=config.tag.length,
                hash_name=config.tag.hash_name,
            )

        return cls(
            cipher_backend=cipher_backend,
            random_source=random_source,
            serializer=serializer,
            algorithm=config.cipher.algorithm,
            mode=config.cipher.mode,
            tag_scheme=tag_scheme,
        )

    @property
    def algorithm(self) -> str:
        """Default cipher algorithm."""
        return self._algorithm

    @property
    def mode(self) -> str:
        """Default cipher mode."""
        return self._mode

    def _resolve(self, algorithm: str, mode: str) -> CipherSpec:
        try:
            return self._ciphers.resolve(algorithm, mode)
        except UnsupportedAlgorithmError:
            self._log.warning("Unsupported cipher requested: %s/%s", algorithm, mode)
            raise

    def encrypt(
        self,
        data: Any,
        key: bytes,
        algorithm: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> Envelope:
        """
        Encrypt data into an envelope.

        Args:
            data: Anything the serializer accepts
            key: Symmetric key; its length must suit the cipher
            algorithm: Per-call algorithm override
            mode: Per-call mode override

        Returns:
            A new Envelope

        Raises:
            UnsupportedAlgorithmError: If the cipher is not available
            KeySizeError: If the key length is not accepted by the cipher
            SerializationError: If the serializer rejects the data
        """
        key = _require_bytes(key)
        cipher = self._resolve(algorithm or self._algorithm, mode or self._mode)

        try:
            validate_key_size(cipher, key)
        except KeySizeError as e:
            self._log.warning("%s (cipher %s/%s)", e, cipher.algorithm, cipher.mode)
            raise

        iv = self._random.token_bytes(cipher.iv_size)
        plaintext = self._serializer.serialize(data)
        ciphertext = cipher.encrypt(plaintext, key, iv)
        mac = self._tags.compute(ciphertext, key, algo=cipher.algorithm, mode=cipher.mode, iv=iv)

        self._log.debug(
            "Encrypted %d bytes with %s/%s", len(plaintext), cipher.algorithm, cipher.mode
        )

        return Envelope(algo=cipher.algorithm, mode=cipher.mode, iv=iv, cdata=ciphertext, mac=mac)

    def decrypt(self, envelope: Union[Envelope, str, bytes, Mapping[str, Any]], key: bytes) -> Any:
        """
        Decrypt an envelope produced by encrypt().

        Args:
            envelope: An Envelope, its JSON text, or its wire mapping
            key: The key the envelope was encrypted with

        Returns:
            The original data

        Raises:
            MalformedEnvelopeError: If the envelope or its payload is malformed
            UnsupportedAlgorithmError: If the envelope names an unknown cipher
            MacMismatchError: If the key is wrong or the data was tampered with
        """
        key = _require_bytes(key)

        try:
            parsed = Envelope.parse(envelope)
        except MalformedEnvelopeError as e:
            self._log.warning("Invalid data passed to decrypt(): %s", e)
            raise

        cipher = self._resolve(parsed.algo, parsed.mode)
        if len(parsed.iv) != cipher.iv_size:
            self._log.warning(
                "Envelope IV is %d bytes, %s/%s needs %d",
                len(parsed.iv), cipher.algorithm, cipher.mode, cipher.iv_size,
            )
            raise MalformedEnvelopeError(
                f"Envelope IV must be {cipher.iv_size} bytes for {parsed.algo}/{parsed.mode}"
            )

        if not self._tags.verify(
            parsed.mac, parsed.cdata, key, algo=parsed.algo, mode=parsed.mode, iv=parsed.iv
        ):
            self._log.warning("Message authentication code invalid")
            raise MacMismatchError()

        try:
            plaintext = cipher.decrypt(parsed.cdata, key, parsed.iv)
        except ValueError as e:
            self._log.warning("Decryption failed after tag verification: %s", type(e).__name__)
            raise MalformedEnvelopeError("Envelope ciphertext could not be decrypted") from e

        try:
            return self._serializer.deserialize(plaintext)
        except (ValueError, RecursionError) as e:
            self._log.warning("Decrypted payload could not be deserialized")
            raise MalformedEnvelopeError("Envelope payload could not be deserialized") from e

    def __repr__(self) -> str:
        return f"EnvelopeCodec({self._algorithm}/{self._mode}, tags={type(self._tags).__name__})"


def encrypt(
    data: Any,
    key: bytes,
    algorithm: str = DEFAULT_ALGORITHM,
    mode: str = DEFAULT_MODE,
) -> str:
    """
    Encrypt data and return the envelope as a JSON string.

    Uses a default EnvelopeCodec (cryptography backend, OS RNG, JSON, PBKDF2 tag).
    """
    return EnvelopeCodec(algorithm=algorithm, mode=mode).encrypt(data, key).to_json()


def decrypt(envelope: Union[Envelope, str, bytes, Mapping[str, Any]], key: bytes) -> Any:
    """Decrypt an envelope produced by encrypt()."""
    return EnvelopeCodec().decrypt(envelope, key)
