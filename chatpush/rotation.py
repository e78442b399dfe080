"""
Two-generation key rotation for push payload decryption.

The service may still send notifications under a key the device has just
rotated away from (registration latency, eventual consistency). The
immediately previous generation is therefore accepted for a bounded grace
period after each rotation; older generations are never retained.

Decrypt order for one notification:
    1. parse the payload
    2. verify the MAC with the current generation
    3. if that fails and the grace period is open, verify with the previous one
    4. decrypt with whichever generation authenticated the payload
    5. otherwise raise InvalidSignatureError

State is an immutable KeyRotationState swapped under a lock, so a decrypt
running alongside rotate() sees either the old state or the new one in full.
"""

from __future__ import annotations

import base64
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from chatpush import KEY_ROTATION_GRACE_PERIOD_MS, KEY_SIZE, SUPPORTED_CIPHER_MODES
from chatpush.crypto import decode_secret, decrypt_cipher_text, verify_mac
from chatpush.errors import (
    EmptyPayloadError,
    InvalidKeyEncodingError,
    InvalidSignatureError,
    UnsupportedCipherModeError,
)
from chatpush.payload import ParsedPayload, parse_payload

if TYPE_CHECKING:
    from chatpush.keystore import KeyStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Return current Unix timestamp in milliseconds."""
    return int(round(time.time() * 1000))


def _new_secret() -> str:
    return base64.b64encode(secrets.token_bytes(KEY_SIZE)).decode("ascii")


@dataclass(frozen=True)
class KeyMaterial:
    """One key generation: an encryption secret and an authentication secret.

    Both are base64-encoded 256-bit random values, generated independently.
    They are excluded from repr so a logged state never leaks them.
    """

    encryption_key: str = field(repr=False)
    authentication_key: str = field(repr=False)

    @classmethod
    def generate(cls) -> KeyMaterial:
        return cls(encryption_key=_new_secret(), authentication_key=_new_secret())

    def validate(self) -> None:
        """Check both secrets decode to 32 bytes.

        Raises:
            InvalidKeyEncodingError: If either secret is malformed.
        """
        for name, secret in (
            ("encryption", self.encryption_key),
            ("authentication", self.authentication_key),
        ):
            if len(decode_secret(secret)) != KEY_SIZE:
                raise InvalidKeyEncodingError(
                    f"The {name} key must decode to {KEY_SIZE} bytes"
                )

    def to_dict(self) -> dict[str, str]:
        return {
            "encryption_key": self.encryption_key,
            "authentication_key": self.authentication_key,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> KeyMaterial:
        return cls(
            encryption_key=d["encryption_key"],
            authentication_key=d["authentication_key"],
        )


@dataclass(frozen=True)
class KeyRotationState:
    """Snapshot of the key generations held by a KeyRotationManager.

    Attributes:
        current: The generation registered most recently (None before the first rotation).
        previous: The generation current before the last rotation, if any.
        rotated_at_ms: Unix time in milliseconds of the last rotation.
    """

    current: KeyMaterial | None = None
    previous: KeyMaterial | None = None
    rotated_at_ms: int | None = None

    def rotated(self, keys: KeyMaterial, at_ms: int) -> KeyRotationState:
        """Return the state after installing keys as current at at_ms."""
        return KeyRotationState(current=keys, previous=self.current, rotated_at_ms=at_ms)

    def validate(self) -> None:
        """Check every held generation.

        Raises:
            InvalidKeyEncodingError: If a held secret is malformed.
        """
        for keys in (self.current, self.previous):
            if keys is not None:
                keys.validate()
    def in_grace_period(
        self,
        at_ms: int,
        grace_period_ms: int = KEY_ROTATION_GRACE_PERIOD_MS,
    ) -> bool:
        """Whether the previous generation may still be used at at_ms.

        The boundary is inclusive: exactly grace_period_ms after the rotation
        is still inside the window. A rotation time later than at_ms is
        outside it.
        """
        if self.previous is None or self.rotated_at_ms is None:
            return False
        elapsed = at_ms - self.rotated_at_ms
        return 0 <= elapsed <= grace_period_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current.to_dict() if self.current else None,
            "previous": self.previous.to_dict() if self.previous else None,
            "rotated_at_ms": self.rotated_at_ms,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> KeyRotationState:
        current = d.get("current")
        previous = d.get("previous")
        rotated_at = d.get("rotated_at_ms")
        return cls(
            current=KeyMaterial.from_dict(current) if current else None,
            previous=KeyMaterial.from_dict(previous) if previous else None,
            rotated_at_ms=int(rotated_at) if rotated_at is not None else None,
        )


class KeyRotationManager:
    """Owns the current/previous key generations and decrypts notifications.

    Thread-safe. rotate() swaps in a new immutable state under a lock;
    decrypt_notification() works from one snapshot of that state.

    Usage:
        manager = KeyRotationManager()
        keys = manager.rotate()            # hand keys to the registrar
        body = manager.decrypt_notification(raw_bytes)
    """

    def __init__(
        self,
        keys: KeyMaterial | None = None,
        store: KeyStore | None = None,
        clock: Callable[[], int] = now_ms,
        grace_period_ms: int = KEY_ROTATION_GRACE_PERIOD_MS,
        supported_modes: frozenset[int] = SUPPORTED_CIPHER_MODES,
    ) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._store = store
        self._grace_period_ms = grace_period_ms
        self._supported_modes = frozenset(supported_modes)

        state = store.load() if store is not None else None
        if state is None:
            if keys is not None:
                keys.validate()
            state = KeyRotationState(current=keys)
        self._state = state

    @property
    def state(self) -> KeyRotationState:
        """A consistent snapshot of the key generations."""
        with self._lock:
            return self._state

    @property
    def current_keys(self) -> KeyMaterial | None:
        return self.state.current

    def in_grace_period(self) -> bool:
        return self.state.in_grace_period(self._clock(), self._grace_period_ms)

    def rotate(self, keys: KeyMaterial | None = None) -> KeyMaterial:
        """Install a new current generation, keeping the old one as previous.

        Args:
            keys: Keys already registered with the service. Fresh random
                keys are generated if not provided.

        Returns:
            The new current KeyMaterial.

        Raises:
            InvalidKeyEncodingError: If supplied keys are malformed.
            KeyStoreError: If the new state cannot be saved; the old state is kept.
        """
        if keys is None:
            keys = KeyMaterial.generate()
        else:
            keys.validate()

        with self._lock:
            state = self._state.rotated(keys, self._clock())
            if self._store is not None:
                self._store.save(state)
            self._state = state

        logger.info("Rotated push notification keys (previous generation retained: %s)",
                    state.previous is not None)
        return keys

    def restore(self, state: KeyRotationState) -> None:
        """Reinstate an earlier snapshot, e.g. after a registration is rejected.

        The in-memory state is replaced even if saving it fails.

        Raises:
            KeyStoreError: If the store cannot be written.
        """
        with self._lock:
            self._state = state
            if self._store is not None:
                self._store.save(state)
        logger.info("Restored earlier push notification key state")

    def decrypt_notification(self, raw: bytes | None) -> str:
        """Verify and decrypt one decoded notification payload.

        Args:
            raw: The base64-decoded payload bytes.

        Returns:
            The plaintext JSON event body.

        Raises:
            EmptyPayloadError: If no payload was supplied.
            MalformedPayloadError: If the payload is shorter than 49 bytes.
            InvalidSignatureError: If no eligible key generation authenticates it.
            UnsupportedCipherModeError: If an authenticated payload has an unknown mode.
            DecryptionFailedError: If authentication passed but decryption failed.
            InvalidKeyEncodingError: If a held secret is not valid base64.
        """
        if raw is None or len(raw) == 0:
            raise EmptyPayloadError("The message payload is empty")
        parsed = parse_payload(raw)

        state = self.state
        if state.current is not None and verify_mac(
            parsed.signed_region, state.current.authentication_key, parsed.mac
        ):
            return self._open(parsed, state.current)

        if state.in_grace_period(self._clock(), self._grace_period_ms) and verify_mac(
            parsed.signed_region, state.previous.authentication_key, parsed.mac
        ):
            logger.debug("Payload authenticated with the previous key generation")
            return self._open(parsed, state.previous)

        raise InvalidSignatureError(
            "Invalid encrypted push notification payload. "
            "The computed signature does not match the included signature."
        )

    def _open(self, parsed: ParsedPayload, keys: KeyMaterial) -> str:
        """Decrypt an authenticated payload, rejecting unknown cipher modes."""
        if parsed.mode not in self._supported_modes:
            raise UnsupportedCipherModeError(parsed.mode)
        return decrypt_cipher_text(parsed.cipher_text, parsed.iv, keys.encryption_key)
