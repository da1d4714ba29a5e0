"""
Tests for the authenticated envelope codec.

Test coverage:
    - Round-trip over data shapes, algorithms and modes
    - Tamper detection (every bit of cdata and mac)
    - Wrong key rejection
    - Key-size boundaries (enumerated and range)
    - Malformed envelopes never reach the cipher
    - Fresh IVs, fixed-IV determinism, legacy compatibility
"""

import hashlib
import json
import logging
from base64 import b64encode
from concurrent.futures import ThreadPoolExecutor

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from cryptenvelope import decrypt, encrypt
from cryptenvelope.core.config import CipherConfig, CryptConfig, TagConfig
from cryptenvelope.core.crypto.envelope import Envelope, EnvelopeCodec
from cryptenvelope.core.crypto.errors import (
    KeySizeError,
    MacMismatchError,
    MalformedEnvelopeError,
    SerializationError,
    UnsupportedAlgorithmError,
)
from cryptenvelope.core.crypto.kdf import pbkdf2
from cryptenvelope.core.crypto.tags import HmacTagScheme, Pbkdf2TagScheme
from cryptenvelope.core.serialization import RawBytesSerializer


def _flip(data: bytes, bit: int) -> bytes:
    buf = bytearray(data)
    buf[bit // 8] ^= 1 << (bit % 8)
    return bytes(buf)


def _with(envelope: Envelope, **changes) -> Envelope:
    fields = {
        "algo": envelope.algo,
        "mode": envelope.mode,
        "iv": envelope.iv,
        "cdata": envelope.cdata,
        "mac": envelope.mac,
    }
    fields.update(changes)
    return Envelope(**fields)


class TestRoundTrip:

    @pytest.mark.parametrize("data", [
        {"card": "4111111111111111", "exp": [12, 2030]},
        ["a", 1, 2.5, None, True],
        "plain string",
        "ünïcødé ✓",
        42,
        None,
        {},
        {"nested": {"deeper": {"list": [1, {"x": "y"}]}}},
    ])
    def test_roundtrip_json_data(self, codec, key32, data):
        assert codec.decrypt(codec.encrypt(data, key32), key32) == data

    @pytest.mark.parametrize("algorithm,mode", [
        ("aes", "ctr"),
        ("aes", "cbc"),
        ("rijndael-128", "ctr"),
        ("chacha20", "stream"),
    ])
    def test_roundtrip_ciphers(self, codec, key32, algorithm, mode):
        envelope = codec.encrypt({"v": 1}, key32, algorithm=algorithm, mode=mode)
        assert (envelope.algo, envelope.mode) == (algorithm, mode)
        assert codec.decrypt(envelope, key32) == {"v": 1}

    def test_roundtrip_through_json(self, codec, key16):
        stored = codec.encrypt({"user": "alice"}, key16).to_json()
        assert codec.decrypt(stored, key16) == {"user": "alice"}
        assert codec.decrypt(stored.encode("utf-8"), key16) == {"user": "alice"}

    def test_roundtrip_through_dict(self, codec, key16):
        wire = codec.encrypt([1, 2, 3], key16).to_dict()
        assert codec.decrypt(wire, key16) == [1, 2, 3]

    @pytest.mark.parametrize("mode", ["ctr", "cbc"])
    def test_binary_payload_trailing_bytes_survive(self, key32, mode):
        codec = EnvelopeCodec(serializer=RawBytesSerializer(), mode=mode)
        payload = b"\x00binary\x00\x00 \t\r\n\x00"
        assert codec.decrypt(codec.encrypt(payload, key32), key32) == payload

    def test_empty_string_roundtrip(self, codec, key32):
        assert codec.decrypt(codec.encrypt("", key32), key32) == ""

    def test_range_keyed_cipher_all_sizes(self, fake_codec):
        for size in range(1, 57):
            key = bytes([size]) * size
            assert fake_codec.decrypt(fake_codec.encrypt({"n": size}, key), key) == {"n": size}

    def test_module_level_helpers(self, key32):
        blob = encrypt({"a": 1}, key32)
        assert set(json.loads(blob)) == {"algo", "mode", "iv", "cdata", "mac"}
        assert decrypt(blob, key32) == {"a": 1}

    def test_module_level_helper_mode_override(self, key16):
        blob = encrypt("x", key16, mode="cbc")
        assert json.loads(blob)["mode"] == "cbc"
        assert decrypt(blob, key16) == "x"


class TestEnvelopeShape:

    def test_fields(self, codec, key32):
        envelope = codec.encrypt("secret", key32)
        assert envelope.algo == "aes"
        assert envelope.mode == "ctr"
        assert len(envelope.iv) == 16
        assert len(envelope.mac) == 32
        # JSON '"secret"' is 8 bytes; CTR does not expand
        assert len(envelope.cdata) == 8

    def test_wire_fields_are_base64(self, codec, key32):
        envelope = codec.encrypt("secret", key32)
        wire = envelope.to_dict()
        assert wire["iv"] == b64encode(envelope.iv).decode()
        assert wire["cdata"] == b64encode(envelope.cdata).decode()
        assert wire["mac"] == b64encode(envelope.mac).decode()

    def test_envelope_is_immutable(self, codec, key32):
        envelope = codec.encrypt("secret", key32)
        with pytest.raises(AttributeError):
            envelope.mac = b""

    def test_repr_hides_contents(self, codec, key32):
        envelope = codec.encrypt("secret", key32)
        text = repr(envelope)
        assert "aes/ctr" in text
        assert b64encode(envelope.cdata).decode() not in text

    def test_mac_is_pbkdf2_of_ciphertext_salted_with_key(self, codec, key32):
        envelope = codec.encrypt({"k": "v"}, key32)
        assert envelope.mac == pbkdf2(envelope.cdata, key32, 1000, 32, "sha256")
        assert envelope.mac == hashlib.pbkdf2_hmac("sha256", envelope.cdata, key32, 1000, 32)


class TestFreshness:

    def test_two_encryptions_differ(self, codec, key32):
        first = codec.encrypt({"same": "data"}, key32)
        second = codec.encrypt({"same": "data"}, key32)
        assert first.iv != second.iv
        assert first.cdata != second.cdata
        assert codec.decrypt(first, key32) == codec.decrypt(second, key32) == {"same": "data"}

    def test_iv_drawn_from_random_source(self, fixed_random, key32):
        codec = EnvelopeCodec(random_source=fixed_random)
        envelope = codec.encrypt("x", key32)
        assert envelope.iv == b"\x42" * 16
        assert fixed_random.requests == [16]

    def test_fixed_random_source_is_deterministic(self, fixed_random, key32):
        codec = EnvelopeCodec(random_source=fixed_random)
        assert codec.encrypt({"a": 1}, key32) == codec.encrypt({"a": 1}, key32)


class TestTamperDetection:

    @pytest.fixture
    def sealed(self, codec, key32):
        return codec.encrypt("hi", key32)

    def test_every_cdata_bit(self, codec, key32, sealed):
        for bit in range(len(sealed.cdata) * 8):
            with pytest.raises(MacMismatchError):
                codec.decrypt(_with(sealed, cdata=_flip(sealed.cdata, bit)), key32)

    def test_every_mac_bit(self, codec, key32, sealed):
        for bit in range(len(sealed.mac) * 8):
            with pytest.raises(MacMismatchError):
                codec.decrypt(_with(sealed, mac=_flip(sealed.mac, bit)), key32)

    def test_tampered_wire_cdata(self, codec, key32, sealed):
        wire = sealed.to_dict()
        wire["cdata"] = b64encode(_flip(sealed.cdata, 3)).decode()
        with pytest.raises(MacMismatchError):
            codec.decrypt(json.dumps(wire), key32)

    def test_truncated_mac(self, codec, key32, sealed):
        with pytest.raises(MacMismatchError):
            codec.decrypt(_with(sealed, mac=sealed.mac[:16]), key32)

    def test_pbkdf2_tag_does_not_cover_iv(self, key32):
        # Only cdata and mac are authenticated by the default tag; a flipped
        # IV verifies and decrypts to different bytes.
        codec = EnvelopeCodec(serializer=RawBytesSerializer())
        payload = b"thirty-two bytes of binary data!"
        sealed = codec.encrypt(payload, key32)
        garbled = codec.decrypt(_with(sealed, iv=_flip(sealed.iv, 0)), key32)
        assert len(garbled) == len(payload)
        assert garbled != payload

    def test_tamper_stops_before_decryption(self, fake_codec, fake_backend):
        key = b"k" * 10
        sealed = fake_codec.encrypt({"a": 1}, key)
        with pytest.raises(MacMismatchError):
            fake_codec.decrypt(_with(sealed, cdata=_flip(sealed.cdata, 0)), key)
        assert fake_backend.cipher.calls["decrypt"] == 0


class TestWrongKey:

    def test_same_length_wrong_key(self, codec, key32):
        sealed = codec.encrypt({"a": 1}, key32)
        with pytest.raises(MacMismatchError):
            codec.decrypt(sealed, _flip(key32, 0))

    @pytest.mark.parametrize("size", [0, 16, 24, 33])
    def test_different_length_key_is_mac_mismatch(self, codec, key32, size):
        sealed = codec.encrypt({"a": 1}, key32)
        with pytest.raises(MacMismatchError):
            codec.decrypt(sealed, bytes(size))

    def test_wrong_key_and_tamper_look_the_same(self, codec, key32):
        sealed = codec.encrypt({"a": 1}, key32)
        with pytest.raises(MacMismatchError) as wrong_key:
            codec.decrypt(sealed, bytes(32))
        with pytest.raises(MacMismatchError) as tampered:
            codec.decrypt(_with(sealed, cdata=_flip(sealed.cdata, 1)), key32)
        assert str(wrong_key.value) == str(tampered.value)

    def test_key_must_be_bytes(self, codec):
        with pytest.raises(TypeError):
            codec.encrypt("x", "a string key")


class TestKeySize:

    @pytest.mark.parametrize("size", [0, 15, 17, 23, 25, 31, 33])
    def test_rejected_sizes(self, codec, size):
        with pytest.raises(KeySizeError):
            codec.encrypt("x", bytes(size))

    @pytest.mark.parametrize("size", [16, 24, 32])
    def test_accepted_sizes(self, codec, size):
        key = bytes(range(size))
        assert codec.decrypt(codec.encrypt("x", key), key) == "x"

    @pytest.mark.parametrize("size", [0, 57])
    def test_range_cipher_rejects(self, fake_codec, fake_backend, size):
        with pytest.raises(KeySizeError):
            fake_codec.encrypt("x", bytes(size))
        assert fake_backend.cipher.calls["encrypt"] == 0

    def test_key_size_rejection_is_logged(self, codec, caplog):
        with caplog.at_level(logging.WARNING, logger="cryptenvelope.envelope"):
            with pytest.raises(KeySizeError):
                codec.encrypt("x", bytes(5))
        assert "out of range" in caplog.text


class TestMalformed:

    @pytest.fixture
    def wire(self, fake_codec):
        return fake_codec.encrypt({"a": 1}, b"k" * 8).to_dict()

    @pytest.mark.parametrize("missing", ["algo", "mode", "iv", "cdata", "mac"])
    def test_missing_field(self, fake_codec, fake_backend, wire, missing):
        del wire[missing]
        with pytest.raises(MalformedEnvelopeError, match="exactly five"):
            fake_codec.decrypt(wire, b"k" * 8)
        assert fake_backend.cipher.calls["decrypt"] == 0

    def test_extra_field(self, fake_codec, wire):
        wire["hash"] = "x"
        with pytest.raises(MalformedEnvelopeError):
            fake_codec.decrypt(wire, b"k" * 8)

    @pytest.mark.parametrize("name", ["iv", "cdata", "mac"])
    @pytest.mark.parametrize("bad", ["!!!not base64!!!", "abc", 123, None])
    def test_undecodable_field(self, fake_codec, fake_backend, wire, name, bad):
        wire[name] = bad
        with pytest.raises(MalformedEnvelopeError):
            fake_codec.decrypt(wire, b"k" * 8)
        assert fake_backend.cipher.calls["decrypt"] == 0

    @pytest.mark.parametrize("name", ["algo", "mode"])
    def test_non_string_name(self, fake_codec, wire, name):
        wire[name] = 7
        with pytest.raises(MalformedEnvelopeError):
            fake_codec.decrypt(wire, b"k" * 8)

    @pytest.mark.parametrize("blob", ["not json", "[1, 2, 3]", "null", "", b"\xff\xfe"])
    def test_not_an_object(self, codec, key32, blob):
        with pytest.raises(MalformedEnvelopeError):
            codec.decrypt(blob, key32)

    def test_deeply_nested_json_envelope(self, codec, key32):
        with pytest.raises(MalformedEnvelopeError, match="not valid JSON"):
            codec.decrypt("[" * 200000, key32)

    def test_wrong_iv_length(self, fake_codec, fake_backend, wire):
        wire["iv"] = b64encode(b"\x00" * 7).decode()
        with pytest.raises(MalformedEnvelopeError, match="IV"):
            fake_codec.decrypt(wire, b"k" * 8)
        assert fake_backend.cipher.calls["decrypt"] == 0

    def test_payload_not_decodable(self, key32):
        raw = EnvelopeCodec(serializer=RawBytesSerializer())
        sealed = raw.encrypt(b"\xff\xfe not json", key32)
        with pytest.raises(MalformedEnvelopeError, match="deserialized"):
            EnvelopeCodec().decrypt(sealed, key32)

    def test_payload_nests_too_deeply(self, key32):
        raw = EnvelopeCodec(serializer=RawBytesSerializer())
        sealed = raw.encrypt(b"[" * 200000, key32)
        with pytest.raises(MalformedEnvelopeError, match="deserialized"):
            EnvelopeCodec().decrypt(sealed, key32)

    def test_malformed_is_logged(self, codec, key32, caplog):
        with caplog.at_level(logging.WARNING, logger="cryptenvelope.envelope"):
            with pytest.raises(MalformedEnvelopeError):
                codec.decrypt("{}", key32)
        assert "Invalid data passed to decrypt()" in caplog.text


class TestUnsupported:

    def test_encrypt_unknown_cipher(self, codec, key32):
        with pytest.raises(UnsupportedAlgorithmError):
            codec.encrypt("x", key32, algorithm="rijndael-256")

    def test_decrypt_unknown_cipher(self, codec, key32):
        wire = codec.encrypt("x", key32).to_dict()
        wire["algo"] = "blowfish"
        with pytest.raises(UnsupportedAlgorithmError):
            codec.decrypt(wire, key32)

    def test_unserializable_data(self, codec, key32):
        with pytest.raises(SerializationError):
            codec.encrypt({1, 2, 3}, key32)

    def test_data_nests_too_deeply(self, codec, key32):
        data = []
        for _ in range(100000):
            data = [data]
        with pytest.raises(SerializationError, match="too deeply"):
            codec.encrypt(data, key32)

    def test_raw_serializer_needs_bytes(self, key32):
        with pytest.raises(SerializationError):
            EnvelopeCodec(serializer=RawBytesSerializer()).encrypt("text", key32)


class TestCompatibility:

    def test_decrypts_envelope_built_by_hand(self, codec):
        """An envelope assembled from primitives alone must decrypt."""
        key = bytes(range(16))
        iv = bytes(range(16, 32))
        plaintext = json.dumps({"legacy": True}).encode()
        encryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).encryptor()
        cdata = encryptor.update(plaintext) + encryptor.finalize()
        wire = {
            "mac": b64encode(hashlib.pbkdf2_hmac("sha256", cdata, key, 1000, 32)).decode(),
            "cdata": b64encode(cdata).decode(),
            "iv": b64encode(iv).decode(),
            "mode": "ctr",
            "algo": "aes",
        }
        assert codec.decrypt(json.dumps(wire), key) == {"legacy": True}


class TestTagSchemes:

    def test_hmac_scheme_roundtrip(self, key32):
        codec = EnvelopeCodec(tag_scheme=HmacTagScheme())
        sealed = codec.encrypt({"a": 1}, key32)
        assert len(sealed.mac) == 32
        assert codec.decrypt(sealed, key32) == {"a": 1}

    def test_hmac_scheme_covers_iv_and_names(self, key32):
        codec = EnvelopeCodec(tag_scheme=HmacTagScheme())
        sealed = codec.encrypt({"a": 1}, key32)
        with pytest.raises(MacMismatchError):
            codec.decrypt(_with(sealed, iv=_flip(sealed.iv, 0)), key32)
        with pytest.raises(MacMismatchError):
            codec.decrypt(_with(sealed, mode="cbc"), key32)

    def test_schemes_do_not_cross_verify(self, key32):
        sealed = EnvelopeCodec().encrypt("x", key32)
        with pytest.raises(MacMismatchError):
            EnvelopeCodec(tag_scheme=HmacTagScheme()).decrypt(sealed, key32)

    def test_pbkdf2_scheme_parameters(self, key32):
        codec = EnvelopeCodec(tag_scheme=Pbkdf2TagScheme(iterations=10, length=16, hash_name="sha512"))
        sealed = codec.encrypt("x", key32)
        assert sealed.mac == hashlib.pbkdf2_hmac("sha512", sealed.cdata, key32, 10, 16)
        assert codec.decrypt(sealed, key32) == "x"

    @pytest.mark.parametrize("kwargs", [{"iterations": 0}, {"length": 8}, {"hash_name": "md5"}])
    def test_pbkdf2_scheme_validation(self, kwargs):
        with pytest.raises((ValueError, UnsupportedAlgorithmError)):
            Pbkdf2TagScheme(**kwargs)


class TestFromConfig:

    def test_defaults(self):
        codec = EnvelopeCodec.from_config(CryptConfig())
        assert (codec.algorithm, codec.mode) == ("aes", "ctr")

    def test_cipher_and_tag_sections(self, key32):
        config = CryptConfig(
            cipher=CipherConfig(algorithm="aes", mode="cbc"),
            tag=TagConfig(scheme="hmac"),
        )
        codec = EnvelopeCodec.from_config(config)
        sealed = codec.encrypt({"a": 1}, key32)
        assert sealed.mode == "cbc"
        assert sealed.mac != pbkdf2(sealed.cdata, key32, 1000, 32)
        assert codec.decrypt(sealed, key32) == {"a": 1}

    def test_per_call_override(self, key32):
        codec = EnvelopeCodec.from_config(CryptConfig(cipher=CipherConfig(mode="cbc")))
        assert codec.encrypt("x", key32, mode="ctr").mode == "ctr"
        assert codec.encrypt("x", key32).mode == "cbc"


class TestConcurrency:

    def test_shared_codec_across_threads(self, codec):
        def roundtrip(i):
            key = bytes([i]) * 32
            return codec.decrypt(codec.encrypt({"i": i}, key), key)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(roundtrip, range(32)))

        assert results == [{"i": i} for i in range(32)]
