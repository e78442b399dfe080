"""
Error taxonomy for push payload processing.

Every failure is terminal for the notification it concerns. ``kind`` is a
stable identifier callers can log or report without parsing messages.
"""

from __future__ import annotations


class PushPayloadError(Exception):
    """Base class for all push payload failures."""

    kind = "error"


class EmptyPayloadError(PushPayloadError):
    """The notification carried no data section."""

    kind = "empty_payload"


class MalformedPayloadError(PushPayloadError):
    """The payload is not valid base64 or is too short for the wire layout."""

    kind = "malformed_payload"


class UnsupportedCipherModeError(MalformedPayloadError):
    """An authenticated payload declares a cipher mode this client does not implement."""

    kind = "unsupported_cipher_mode"

    def __init__(self, mode: int) -> None:
        super().__init__(f"Unsupported cipher mode: 0x{mode:02x}")
        self.mode = mode


class InvalidKeyEncodingError(PushPayloadError):
    """A stored key secret is not valid base64 or has the wrong length."""

    kind = "invalid_key_encoding"


class InvalidSignatureError(PushPayloadError):
    """No eligible key generation authenticates the payload."""

    kind = "invalid_signature"


class DecryptionFailedError(PushPayloadError):
    """Authentication passed but the cipher text could not be decrypted."""

    kind = "decryption_failed"


class RegistrationError(Exception):
    """Error while starting or stopping push notifications."""
