"""
cryptenvelope Cryptographic Core
================================

Layers, leaves first:
    1. kdf: PBKDF2 (RFC 2898) over any HMAC hash, plus passphrase stretching
    2. ciphers / entropy / tags: injected capabilities
    3. envelope: the authenticated envelope codec

Security Properties:
    - Integrity tag verified in constant time before decryption
    - Fresh random IV per encryption
    - Strict envelope parsing (exactly five fields)

WARNING: This module handles sensitive cryptographic material.
         Incorrect usage can compromise security.
"""

from cryptenvelope.core.crypto.ciphers import CipherBackend, CryptographyCipherBackend
from cryptenvelope.core.crypto.entropy import RandomSource, SystemRandomSource
from cryptenvelope.core.crypto.envelope import Envelope, EnvelopeCodec
from cryptenvelope.core.crypto.kdf import pbkdf2
from cryptenvelope.core.crypto.tags import HmacTagScheme, Pbkdf2TagScheme

__all__ = [
    "CipherBackend",
    "CryptographyCipherBackend",
    "Envelope",
    "EnvelopeCodec",
    "HmacTagScheme",
    "Pbkdf2TagScheme",
    "RandomSource",
    "SystemRandomSource",
    "pbkdf2",
]
