"""
Payload layout — split a decoded push payload into its four fields.

Layout (all offsets in bytes, n = total length):
    [0]          cipher_mode   1 byte, algorithm/version tag
    [1:17]       iv            16 bytes, AES-CBC initialization vector
    [17:n-32]    cipher_text   n - 49 bytes, encrypted JSON body
    [n-32:n]     mac           32 bytes, HMAC-SHA256 over bytes [0:n-32]

The MAC covers exactly cipher_mode | iv | cipher_text (the "signed region").
Anything shorter than 49 bytes cannot hold the fixed fields and is rejected.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from chatpush import CIPHER_MODE_SIZE, IV_SIZE, MAC_SIZE, MIN_PAYLOAD_SIZE
from chatpush.errors import EmptyPayloadError, MalformedPayloadError

_IV_START = CIPHER_MODE_SIZE
_CIPHER_TEXT_START = CIPHER_MODE_SIZE + IV_SIZE


@dataclass(frozen=True)
class ParsedPayload:
    """The four contiguous fields of a push payload.

    Attributes:
        cipher_mode: The 1-byte mode tag, as bytes.
        iv: The 16-byte initialization vector.
        cipher_text: The encrypted body (may be empty).
        mac: The trailing 32-byte authentication tag.
    """

    cipher_mode: bytes
    iv: bytes
    cipher_text: bytes
    mac: bytes

    @property
    def mode(self) -> int:
        """The cipher mode tag as an integer."""
        return self.cipher_mode[0]

    @property
    def signed_region(self) -> bytes:
        """Bytes covered by the MAC: cipher_mode | iv | cipher_text."""
        return self.cipher_mode + self.iv + self.cipher_text

    def to_bytes(self) -> bytes:
        """Serialize back to the wire layout."""
        return self.signed_region + self.mac

    def to_base64(self) -> str:
        return base64.b64encode(self.to_bytes()).decode("ascii")


def parse_payload(raw: bytes) -> ParsedPayload:
    """Partition a decoded payload into its fields.

    Raises:
        MalformedPayloadError: If the input is shorter than 49 bytes.
    """
    if len(raw) < MIN_PAYLOAD_SIZE:
        raise MalformedPayloadError(
            f"Payload too short: {len(raw)} bytes, need at least {MIN_PAYLOAD_SIZE}"
        )
    raw = bytes(raw)
    mac_start = len(raw) - MAC_SIZE
    return ParsedPayload(
        cipher_mode=raw[:_IV_START],
        iv=raw[_IV_START:_CIPHER_TEXT_START],
        cipher_text=raw[_CIPHER_TEXT_START:mac_start],
        mac=raw[mac_start:],
    )


def decode_payload(encoded: str | bytes | None) -> bytes:
    """Decode the base64 text delivered in a notification's data section.

    Strict decoding: characters outside the base64 alphabet or bad padding
    are rejected rather than skipped.

    Raises:
        EmptyPayloadError: If no payload (None or empty) was supplied.
        MalformedPayloadError: If the text is not valid base64.
    """
    if encoded is None or len(encoded) == 0:
        raise EmptyPayloadError("The message payload is empty")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedPayloadError(f"Payload is not valid base64: {e}") from e
