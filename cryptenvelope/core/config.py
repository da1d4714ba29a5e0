"""
Envelope Configuration Module
=============================

Provides immutable, environment-aware configuration for envelope codecs.

Security Features:
- Immutable configuration after initialization
- Environment variable override support
- Key material is never read from configuration
- Type-safe configuration access

Configuration is loaded once at startup and bound into an EnvelopeCodec
with EnvelopeCodec.from_config(); nothing reads it behind the caller's back.
"""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Optional

from cryptenvelope.security.constants import (
    DEFAULT_ALGORITHM,
    DEFAULT_MODE,
    TAG_HASH,
    TAG_ITERATIONS,
    TAG_LENGTH_BYTES,
    TAG_SCHEME,
)


# Environment names containing any of these are never honoured
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "token", "api_key",
    "private", "credential", "auth", "salt",
})

_TAG_SCHEMES: Final[frozenset[str]] = frozenset({"pbkdf2", "hmac"})
_TAG_HASHES: Final[frozenset[str]] = frozenset({"sha1", "sha224", "sha256", "sha384", "sha512"})


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class CipherConfig:
    """Default cipher used by codecs built from this configuration."""

    algorithm: str = DEFAULT_ALGORITHM
    mode: str = DEFAULT_MODE

    def __post_init__(self) -> None:
        if not self.algorithm or not self.mode:
            raise ValueError("Cipher algorithm and mode must be non-empty")


@dataclass(frozen=True, slots=True)
class TagConfig:
    """Integrity tag settings. Changing these breaks existing envelopes."""

    scheme: str = TAG_SCHEME
    iterations: int = TAG_ITERATIONS
    length: int = TAG_LENGTH_BYTES
    hash_name: str = TAG_HASH

    def __post_init__(self) -> None:
        """Validate tag settings."""
        if self.scheme not in _TAG_SCHEMES:
            raise ValueError(f"Unknown tag scheme: {self.scheme}")
        if self.iterations < 1:
            raise ValueError("Tag iterations must be at least 1")
        if not 16 <= self.length <= 64:
            raise ValueError("Tag length must be between 16 and 64 bytes")
        if self.scheme == "hmac" and self.length > 32:
            raise ValueError("HMAC-SHA256 tag length must be at most 32 bytes")
        if self.hash_name.lower() not in _TAG_HASHES:
            raise ValueError(f"Unsupported tag hash: {self.hash_name}")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False
    log_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")
        if self.enable_file and self.log_dir is None:
            raise ValueError("File logging needs a log_dir")
        if self.log_dir is not None and not self.log_dir.is_absolute():
            raise ValueError(f"log_dir must be an absolute path: {self.log_dir}")


class CryptConfig:
    """
    Immutable configuration with environment variable overrides.

    Usage:
        config = CryptConfig.load()
        codec = EnvelopeCodec.from_config(config)
        configure_logging(config.logging)
    """

    __slots__ = ("_cipher", "_tag", "_logging", "_frozen", "_config_hash")

    def __init__(
        self,
        cipher: Optional[CipherConfig] = None,
        tag: Optional[TagConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Initialize configuration. Use CryptConfig.load() to honour the environment."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_cipher", cipher or CipherConfig())
        object.__setattr__(self, "_tag", tag or TagConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Short fingerprint of the configuration, handy in logs."""
        config_str = f"{self._cipher}|{self._tag}|{self._logging}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def cipher(self) -> CipherConfig:
        return self._cipher

    @property
    def tag(self) -> TagConfig:
        return self._tag

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def config_hash(self) -> str:
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "CRYPTENVELOPE") -> CryptConfig:
        """
        Load configuration with environment variable overrides.

        Environment variables are prefixed with CRYPTENVELOPE_ and use
        double underscores between section and field.

        Examples:
            CRYPTENVELOPE_CIPHER__ALGORITHM=sm4
            CRYPTENVELOPE_CIPHER__MODE=cbc
            CRYPTENVELOPE_TAG__SCHEME=hmac
            CRYPTENVELOPE_LOGGING__LEVEL=DEBUG

        Raises:
            ValueError: If an override fails validation
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        cipher_kwargs: dict[str, Any] = {}
        for field_name in ("algorithm", "mode"):
            if f"cipher.{field_name}" in env_overrides:
                cipher_kwargs[field_name] = env_overrides[f"cipher.{field_name}"].lower()

        tag_kwargs: dict[str, Any] = {}
        if "tag.scheme" in env_overrides:
            tag_kwargs["scheme"] = env_overrides["tag.scheme"].lower()
        if "tag.iterations" in env_overrides:
            tag_kwargs["iterations"] = int(env_overrides["tag.iterations"])
        if "tag.length" in env_overrides:
            tag_kwargs["length"] = int(env_overrides["tag.length"])
        if "tag.hash_name" in env_overrides:
            tag_kwargs["hash_name"] = env_overrides["tag.hash_name"].lower()

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"].upper()
        for flag in ("enable_console", "enable_file", "enable_json"):
            if f"logging.{flag}" in env_overrides:
                logging_kwargs[flag] = _parse_bool(env_overrides[f"logging.{flag}"])
        if "logging.log_dir" in env_overrides:
            logging_kwargs["log_dir"] = Path(env_overrides["logging.log_dir"])

        return cls(
            cipher=CipherConfig(**cipher_kwargs) if cipher_kwargs else None,
            tag=TagConfig(**tag_kwargs) if tag_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # CRYPTENVELOPE_SECTION__FIELD -> section.field
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: never take key material from the environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    def __repr__(self) -> str:
        """Safe string representation."""
        return (
            f"CryptConfig(hash={self._config_hash}, "
            f"cipher={self._cipher.algorithm}/{self._cipher.mode}, tag={self._tag.scheme})"
        )

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("CryptConfig is immutable after initialization")
        super().__setattr__(name, value)
