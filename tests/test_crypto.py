"""
Tests for chatpush.crypto.

TestVerifyMac       — reference vectors, tampering, key encoding errors
TestDecryptCipher   — reference vectors, negative control, padding/alignment failures
TestSealPayload     — service-side framing that verify/decrypt accept
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

import pytest

from chatpush.errors import DecryptionFailedError, InvalidKeyEncodingError
from chatpush.payload import parse_payload


def _secret() -> str:
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


def _parse(encoded: str):
    return parse_payload(base64.b64decode(encoded))


class TestVerifyMac:

    def test_reference_payload_verifies(self, vectors):
        from chatpush.crypto import verify_mac

        parsed = _parse(vectors.valid_payload)
        assert verify_mac(parsed.signed_region, vectors.auth_key, parsed.mac)

    def test_reference_invalid_payload_fails(self, vectors):
        from chatpush.crypto import verify_mac

        parsed = _parse(vectors.invalid_payload)
        assert not verify_mac(parsed.signed_region, vectors.auth_key, parsed.mac)

    def test_wrong_auth_key_fails(self, vectors):
        from chatpush.crypto import verify_mac

        parsed = _parse(vectors.valid_payload)
        assert not verify_mac(parsed.signed_region, _secret(), parsed.mac)

    def test_encryption_key_is_not_auth_key(self, vectors):
        from chatpush.crypto import verify_mac

        parsed = _parse(vectors.valid_payload)
        assert not verify_mac(parsed.signed_region, vectors.aes_key, parsed.mac)

    def test_mac_key_is_sha256_of_secret(self, vectors):
        """The decoded secret is hashed before use, not used directly."""
        from chatpush.crypto import compute_mac, derive_mac_key

        decoded = base64.b64decode(vectors.auth_key)
        assert derive_mac_key(vectors.auth_key) == hashlib.sha256(decoded).digest()

        region = b"signed region"
        expected = hmac.new(hashlib.sha256(decoded).digest(), region, hashlib.sha256).digest()
        assert compute_mac(region, vectors.auth_key) == expected
        assert compute_mac(region, vectors.auth_key) != hmac.new(
            decoded, region, hashlib.sha256
        ).digest()

    def test_any_flipped_bit_in_signed_region_fails(self, vectors):
        from chatpush.crypto import verify_mac

        parsed = _parse(vectors.valid_payload)
        region = bytearray(parsed.signed_region)
        for index in (0, 1, 16, 17, len(region) - 1):
            tampered = bytearray(region)
            tampered[index] ^= 0x01
            assert not verify_mac(bytes(tampered), vectors.auth_key, parsed.mac), index

    def test_mac_covers_exactly_signed_region(self, vectors):
        """Including the MAC itself, or dropping the mode byte, must not verify."""
        from chatpush.crypto import verify_mac

        parsed = _parse(vectors.valid_payload)
        assert not verify_mac(parsed.to_bytes(), vectors.auth_key, parsed.mac)
        assert not verify_mac(parsed.iv + parsed.cipher_text, vectors.auth_key, parsed.mac)

    def test_truncated_mac_fails(self, vectors):
        from chatpush.crypto import verify_mac

        parsed = _parse(vectors.valid_payload)
        assert not verify_mac(parsed.signed_region, vectors.auth_key, parsed.mac[:16])
        assert not verify_mac(parsed.signed_region, vectors.auth_key, b"")

    def test_invalid_auth_key_encoding(self):
        from chatpush.crypto import verify_mac

        with pytest.raises(InvalidKeyEncodingError):
            verify_mac(b"data", "not*base64!", b"\x00" * 32)

    def test_uses_constant_time_comparison(self, vectors):
        from unittest.mock import patch

        from chatpush.crypto import verify_mac

        parsed = _parse(vectors.valid_payload)
        with patch("chatpush.crypto.hmac.compare_digest", return_value=True) as compare:
            assert verify_mac(parsed.signed_region, vectors.auth_key, parsed.mac)
        compare.assert_called_once()


class TestDecryptCipher:

    @pytest.fixture(autouse=True)
    def _vectors(self, vectors):
        self.vectors = vectors

    def test_reference_payload_decrypts(self):
        from chatpush.crypto import decrypt_cipher_text

        parsed = _parse(self.vectors.valid_payload)
        plaintext = decrypt_cipher_text(parsed.cipher_text, parsed.iv, self.vectors.aes_key)
        assert plaintext == self.vectors.valid_plaintext
        assert '"messageBody": "this is gloria"' in plaintext

    def test_invalid_payload_does_not_reproduce_plaintext(self):
        """Negative control: bypassing verification must not yield the original body."""
        from chatpush.crypto import decrypt_cipher_text

        parsed = _parse(self.vectors.invalid_payload)
        try:
            plaintext = decrypt_cipher_text(parsed.cipher_text, parsed.iv, self.vectors.aes_key)
        except DecryptionFailedError:
            return
        assert plaintext != self.vectors.valid_plaintext

    def test_wrong_key_fails_or_differs(self):
        from chatpush.crypto import decrypt_cipher_text

        parsed = _parse(self.vectors.valid_payload)
        try:
            plaintext = decrypt_cipher_text(parsed.cipher_text, parsed.iv, _secret())
        except DecryptionFailedError:
            return
        assert plaintext != self.vectors.valid_plaintext

    def test_empty_cipher_text_fails(self):
        from chatpush.crypto import decrypt_cipher_text

        with pytest.raises(DecryptionFailedError):
            decrypt_cipher_text(b"", b"\x00" * 16, self.vectors.aes_key)

    def test_unaligned_cipher_text_fails(self):
        from chatpush.crypto import decrypt_cipher_text

        with pytest.raises(DecryptionFailedError):
            decrypt_cipher_text(b"\x00" * 17, b"\x00" * 16, self.vectors.aes_key)

    def test_bad_padding_fails(self):
        from chatpush.crypto import decrypt_cipher_text, encrypt_plaintext

        iv = b"\x00" * 16
        # 16 plaintext bytes ending in 0x00 carry an invalid final pad once the pad block is dropped
        cipher_text = encrypt_plaintext(b"A" * 15 + b"\x00", iv, self.vectors.aes_key)[:16]
        with pytest.raises(DecryptionFailedError):
            decrypt_cipher_text(cipher_text, iv, self.vectors.aes_key)

    def test_wrong_iv_size_fails(self):
        from chatpush.crypto import decrypt_cipher_text

        parsed = _parse(self.vectors.valid_payload)
        with pytest.raises(DecryptionFailedError):
            decrypt_cipher_text(parsed.cipher_text, parsed.iv[:8], self.vectors.aes_key)

    def test_non_utf8_plaintext_fails(self):
        from chatpush.crypto import decrypt_cipher_text, encrypt_plaintext

        iv = secrets.token_bytes(16)
        cipher_text = encrypt_plaintext(b"\xff\xfe\xfd", iv, self.vectors.aes_key)
        with pytest.raises(DecryptionFailedError, match="UTF-8"):
            decrypt_cipher_text(cipher_text, iv, self.vectors.aes_key)

    def test_invalid_key_encoding(self):
        from chatpush.crypto import decrypt_cipher_text

        with pytest.raises(InvalidKeyEncodingError):
            decrypt_cipher_text(b"\x00" * 16, b"\x00" * 16, "%%%")

    def test_short_key_rejected(self):
        from chatpush.crypto import decrypt_cipher_text

        short = base64.b64encode(b"k" * 16).decode("ascii")
        with pytest.raises(InvalidKeyEncodingError, match="32 bytes"):
            decrypt_cipher_text(b"\x00" * 16, b"\x00" * 16, short)

    def test_cryptography_available(self):
        from chatpush.crypto import _import_cryptography

        _import_cryptography()


class TestSealPayload:

    def test_sealed_payload_verifies_and_decrypts(self):
        from chatpush.crypto import decrypt_cipher_text, seal_payload, verify_mac

        enc, auth = _secret(), _secret()
        sealed = seal_payload('{"messageBody": "hi"}', enc, auth)
        parsed = parse_payload(sealed.to_bytes())

        assert parsed.mode == 0x70
        assert verify_mac(parsed.signed_region, auth, parsed.mac)
        assert decrypt_cipher_text(parsed.cipher_text, parsed.iv, enc) == '{"messageBody": "hi"}'

    def test_reproduces_reference_payload(self, vectors):
        """Sealing the reference body with the reference IV yields the reference bytes."""
        from chatpush.crypto import seal_payload

        reference = _parse(vectors.valid_payload)
        sealed = seal_payload(
            vectors.valid_plaintext, vectors.aes_key, vectors.auth_key, iv=reference.iv
        )
        assert sealed.to_base64() == vectors.valid_payload

    def test_random_iv_per_payload(self):
        from chatpush.crypto import seal_payload

        enc, auth = _secret(), _secret()
        first = seal_payload(b"same body", enc, auth)
        second = seal_payload(b"same body", enc, auth)
        assert first.iv != second.iv
        assert first.cipher_text != second.cipher_text

    def test_custom_cipher_mode(self):
        from chatpush.crypto import seal_payload, verify_mac

        auth = _secret()
        sealed = seal_payload(b"x", _secret(), auth, cipher_mode=0x71)
        assert sealed.mode == 0x71
        assert verify_mac(sealed.signed_region, auth, sealed.mac)

    def test_bad_iv_size(self):
        from chatpush.crypto import seal_payload

        with pytest.raises(ValueError, match="16 bytes"):
            seal_payload(b"x", _secret(), _secret(), iv=b"short")
