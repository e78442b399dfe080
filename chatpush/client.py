"""
Push notification client — the boundary between the platform push payload,
the registrar transport, and key rotation.

Registration (transport supplied by the caller):
    client.start_push_notifications(device_token, register)
        -> generate keys, rotate(), register(...); restore old keys on failure
    client.stop_push_notifications(unregister)

Receiving:
    event = client.handle_push({"aps": {...}, "data": "<base64 payload>"})

The registrar protocol itself is out of scope: ``register`` and
``unregister`` are plain callables owned by the transport layer.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Mapping

from chatpush import CRYPTO_METHOD
from chatpush.config import key_file_path, load_config
from chatpush.errors import (
    DecryptionFailedError,
    EmptyPayloadError,
    MalformedPayloadError,
    PushPayloadError,
    RegistrationError,
)
from chatpush.keystore import KeyStore, KeyStoreError
from chatpush.payload import decode_payload
from chatpush.rotation import KeyMaterial, KeyRotationManager, KeyRotationState

logger = logging.getLogger(__name__)

# register(registration_id, client_description, transports)
RegisterCallback = Callable[[str, dict[str, Any], list[dict[str, Any]]], None]
UnregisterCallback = Callable[[str], None]

# Body fields every chat message notification carries
_REQUIRED_FIELDS = ("senderId", "recipientId", "groupId", "messageId", "messageType")


@dataclass(frozen=True)
class PushNotificationEvent:
    """A decrypted chat message notification.

    Attributes:
        thread_id: The chat thread (``groupId`` on the wire).
        metadata: Parsed ``acsChatMessageMetadata``; empty if absent or not a JSON object.
    """

    sender_id: str
    recipient_id: str
    thread_id: str
    message_id: str
    message_type: str
    message_body: str = ""
    sender_display_name: str = ""
    transaction_id: str = ""
    collapse_id: str = ""
    client_message_id: str = ""
    original_arrival_time: str = ""
    priority: str = ""
    version: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_json(cls, body: str) -> PushNotificationEvent:
        """Build an event from a decrypted JSON body.

        Raises:
            DecryptionFailedError: If the body is not a JSON object with the
                required chat message fields.
        """
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise DecryptionFailedError(f"Decrypted payload is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise DecryptionFailedError("Decrypted payload is not a JSON object")

        missing = [name for name in _REQUIRED_FIELDS if name not in data]
        if missing:
            raise DecryptionFailedError(
                f"Decrypted payload missing fields: {', '.join(missing)}"
            )

        return cls(
            sender_id=_text(data, "senderId"),
            recipient_id=_text(data, "recipientId"),
            thread_id=_text(data, "groupId"),
            message_id=_text(data, "messageId"),
            message_type=_text(data, "messageType"),
            message_body=_text(data, "messageBody"),
            sender_display_name=_text(data, "senderDisplayName"),
            transaction_id=_text(data, "transactionId"),
            collapse_id=_text(data, "collapseId"),
            client_message_id=_text(data, "clientMessageId"),
            original_arrival_time=_text(data, "originalArrivalTime"),
            priority=_text(data, "priority"),
            version=_text(data, "version"),
            metadata=_parse_metadata(data.get("acsChatMessageMetadata")),
        )


def _text(data: Mapping[str, Any], name: str) -> str:
    value = data.get(name)
    return "" if value is None else str(value)


def _parse_metadata(raw: Any) -> dict[str, str]:
    """Metadata arrives as a JSON-encoded string inside the body."""
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {str(k): str(v) for k, v in parsed.items()}


class PushNotificationClient:
    """Register for push notifications and decrypt what arrives.

    Usage:
        client = PushNotificationClient()
        client.start_push_notifications(apns_token, registrar.set_registration)
        event = client.handle_push(notification)
    """

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        key_manager: KeyRotationManager | None = None,
    ) -> None:
        self._config = config if config is not None else load_config()
        if key_manager is None:
            path = key_file_path(self._config)
            key_manager = KeyRotationManager(store=KeyStore(path) if path else None)
        self.key_manager = key_manager
        self.registration_id = str(uuid.uuid4())
        self.device_token = ""
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def build_client_description(self, keys: KeyMaterial) -> dict[str, Any]:
        """Client description sent to the registrar; must match a valid APNS template."""
        registrar = self._config["registrar"]
        return {
            "appId": registrar["app_id"],
            "languageId": registrar["language_id"],
            "platform": registrar["platform"],
            "platformUIVersion": registrar["platform_ui_version"],
            "templateKey": registrar["template_key"],
            "aesKey": keys.encryption_key,
            "authKey": keys.authentication_key,
            "cryptoMethod": CRYPTO_METHOD,
        }

    def build_transports(self, device_token: str) -> list[dict[str, Any]]:
        registrar = self._config["registrar"]
        return [{
            "transport": registrar["transport"],
            "ttl": registrar["ttl"],
            "path": device_token,
            "context": registrar["context"],
        }]

    def start_push_notifications(self, device_token: str, register: RegisterCallback) -> KeyMaterial:
        """Install new keys, then register them with the service.

        The keys are saved and made current before ``register`` runs, so the
        service is never told about keys this device failed to store. If
        registration fails the earlier key state is restored.

        Returns:
            The newly registered KeyMaterial.

        Raises:
            RegistrationError: If already started, the keys cannot be saved,
                or registration fails.
        """
        if self._started:
            raise RegistrationError("Push notifications already started")

        keys = KeyMaterial.generate()
        description = self.build_client_description(keys)
        transports = self.build_transports(device_token)

        before = self.key_manager.state
        try:
            self.key_manager.rotate(keys)
        except KeyStoreError as e:
            logger.error("Failed to save push notification keys: %s", e)
            raise RegistrationError("Failed to start push notifications") from e

        try:
            register(self.registration_id, description, transports)
        except Exception as e:
            logger.error("Failed to set registration: %s", e)
            self._restore_keys(before)
            raise RegistrationError("Failed to start push notifications") from e

        self.device_token = device_token
        self._started = True
        logger.info("Push notifications started (registration %s)", self.registration_id)
        return keys

    def _restore_keys(self, state: KeyRotationState) -> None:
        try:
            self.key_manager.restore(state)
        except KeyStoreError as e:
            logger.error("Failed to save restored push notification keys: %s", e)

    def stop_push_notifications(self, unregister: UnregisterCallback) -> None:
        """Delete the registration and start a fresh registration id.

        Keys are kept so notifications already in flight still decrypt.

        Raises:
            RegistrationError: If not started or unregistration fails.
        """
        if not self._started:
            raise RegistrationError("Push notifications are not enabled")

        try:
            unregister(self.registration_id)
        except Exception as e:
            logger.error("Failed to stop push notifications: %s", e)
            raise RegistrationError("Failed to stop push notifications") from e

        self._started = False
        self.registration_id = str(uuid.uuid4())
        logger.info("Push notifications stopped")

    def decrypt_payload(self, encoded: str | bytes | None) -> str:
        """Decode, verify, and decrypt a base64 payload. Returns the JSON body."""
        try:
            raw = decode_payload(encoded)
            return self.key_manager.decrypt_notification(raw)
        except PushPayloadError as e:
            logger.warning("Rejected push notification payload: %s", e.kind)
            raise

    def handle_push(self, notification: Mapping[str, Any]) -> PushNotificationEvent:
        """Decrypt the data section of a platform push notification.

        Args:
            notification: The full push payload (including "aps" and "data").

        Raises:
            PushPayloadError: For any payload that cannot be trusted or read.
        """
        data = notification.get("data")
        if not data:
            logger.warning("Push notification does not contain data payload")
            raise EmptyPayloadError("Push notification does not contain data payload")
        if not isinstance(data, (str, bytes)):
            logger.warning("Push notification data payload is not a string")
            raise MalformedPayloadError("Push notification data payload is not a string")

        body = self.decrypt_payload(data)
        try:
            return PushNotificationEvent.from_json(body)
        except DecryptionFailedError as e:
            logger.warning("Rejected push notification body: %s", e.kind)
            raise
