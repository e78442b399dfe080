"""
Payload cryptography — HMAC verification and AES-256-CBC decryption.

- Authentication: HMAC-SHA256, keyed with SHA-256 of the decoded auth secret
  (stdlib hmac/hashlib, constant-time comparison)
- Encryption: AES-256-CBC with PKCS#7 padding (requires `cryptography` package)

Secrets are handled in their base64 form, the same form handed to the
registrar. Verification must succeed before decrypt_cipher_text is called for
the same key generation; this module does not enforce the ordering itself,
chatpush.rotation does.

The `cryptography` package is lazily imported — missing dependency produces
a clear error message.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os

from chatpush import IV_SIZE, KEY_SIZE, MAC_SIZE
from chatpush.errors import DecryptionFailedError, InvalidKeyEncodingError
from chatpush.payload import ParsedPayload


def _import_cryptography():
    """Lazily import the AES-CBC primitives from the cryptography package.

    Raises ImportError with a helpful message if not installed.
    """
    try:
        from cryptography.hazmat.primitives import padding
        from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

        return Cipher, algorithms, modes, padding
    except ImportError:
        raise ImportError(
            "cryptography is required for payload decryption. "
            "Install with: pip install chatpush"
        )


def decode_secret(secret: str) -> bytes:
    """Decode a base64 key secret.

    Raises:
        InvalidKeyEncodingError: If the secret is not valid base64.
    """
    try:
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise InvalidKeyEncodingError(
            "Failed to decode base64 key secret"
        ) from e


def _decode_encryption_key(enc_secret: str) -> bytes:
    key = decode_secret(enc_secret)
    if len(key) != KEY_SIZE:
        raise InvalidKeyEncodingError(
            f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}"
        )
    return key


def derive_mac_key(auth_secret: str) -> bytes:
    """Derive the HMAC key: SHA-256 of the decoded authentication secret."""
    return hashlib.sha256(decode_secret(auth_secret)).digest()


def compute_mac(signed_region: bytes, auth_secret: str) -> bytes:
    """Compute the 32-byte HMAC-SHA256 tag for a signed region."""
    return hmac.new(derive_mac_key(auth_secret), signed_region, hashlib.sha256).digest()


def verify_mac(signed_region: bytes, auth_secret: str, expected_mac: bytes) -> bool:
    """Check a payload's authentication tag.

    Uses hmac.compare_digest for constant-time comparison. A tag of the
    wrong length never matches.

    Returns:
        True only if the computed tag equals expected_mac byte-for-byte.

    Raises:
        InvalidKeyEncodingError: If auth_secret is not valid base64.
    """
    candidate = compute_mac(signed_region, auth_secret)
    if len(expected_mac) != MAC_SIZE:
        return False
    return hmac.compare_digest(candidate, bytes(expected_mac))


def decrypt_cipher_text(cipher_text: bytes, iv: bytes, enc_secret: str) -> str:
    """Decrypt an AES-256-CBC cipher text and decode it as UTF-8.

    Args:
        cipher_text: The encrypted body.
        iv: The 16-byte initialization vector from the payload.
        enc_secret: Base64 encryption secret (must decode to 32 bytes).

    Returns:
        The plaintext JSON body.

    Raises:
        InvalidKeyEncodingError: If enc_secret is not a base64 256-bit key.
        DecryptionFailedError: On bad padding, bad block alignment, a wrong
            IV size, or a plaintext that is not valid UTF-8.
    """
    Cipher, algorithms, modes, padding = _import_cryptography()

    key = _decode_encryption_key(enc_secret)
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(bytes(iv))).decryptor()
        padded = decryptor.update(bytes(cipher_text)) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionFailedError(f"Decryption failed: {e}") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionFailedError("Decrypted payload is not valid UTF-8") from e


def encrypt_plaintext(plaintext: bytes, iv: bytes, enc_secret: str) -> bytes:
    """Encrypt with AES-256-CBC and PKCS#7 padding (inverse of decrypt_cipher_text)."""
    Cipher, algorithms, modes, padding = _import_cryptography()

    key = _decode_encryption_key(enc_secret)
    if len(iv) != IV_SIZE:
        raise ValueError(f"IV must be {IV_SIZE} bytes")

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def seal_payload(
    plaintext: str | bytes,
    enc_secret: str,
    auth_secret: str,
    cipher_mode: int = 0x70,
    iv: bytes | None = None,
) -> ParsedPayload:
    """Build a payload the way the service does: encrypt, then MAC.

    Args:
        plaintext: JSON body to encrypt.
        enc_secret: Base64 encryption secret.
        auth_secret: Base64 authentication secret.
        cipher_mode: Mode tag written to byte 0.
        iv: Optional 16-byte IV. Generated if not provided.

    Returns:
        ParsedPayload ready for ``to_base64()``.
    """
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    if iv is None:
        iv = os.urandom(IV_SIZE)

    cipher_text = encrypt_plaintext(plaintext, iv, enc_secret)
    mode_byte = bytes([cipher_mode])
    mac = compute_mac(mode_byte + iv + cipher_text, auth_secret)
    return ParsedPayload(cipher_mode=mode_byte, iv=iv, cipher_text=cipher_text, mac=mac)
