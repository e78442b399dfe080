"""
chatpush — verify and decrypt encrypted chat push-notification payloads.

Architecture:
    Wire:     base64( cipher_mode (1) | iv (16) | cipher_text (n) | hmac (32) )
    Auth:     HMAC-SHA256 over cipher_mode|iv|cipher_text, key = SHA-256(auth secret)
    Cipher:   AES-256-CBC, PKCS#7 padding
    Keys:     current + previous generation, previous accepted for 1 hour after rotation
"""

__version__ = "0.1.0"

# Payload layout
CIPHER_MODE_SIZE = 1
IV_SIZE = 16
MAC_SIZE = 32
MIN_PAYLOAD_SIZE = CIPHER_MODE_SIZE + IV_SIZE + MAC_SIZE  # 49, empty cipher text

# Cipher mode tag sent to the registrar, and the byte values accepted on the wire
CRYPTO_METHOD = "0x70"
SUPPORTED_CIPHER_MODES = frozenset({0x70})

# Key material
KEY_SIZE = 32  # AES-256 / 256-bit auth secret
KEY_ROTATION_GRACE_PERIOD_MS = 3_600_000  # 1 hour

# Registrar defaults (max TTL is 180 days)
REGISTRAR_APP_ID = "AcsIos"
REGISTRAR_PLATFORM = "iOS"
REGISTRAR_PLATFORM_UI_VERSION = "3619/0.0.0.0/"
REGISTRAR_TEMPLATE_KEY = "AcsIos.AcsNotify_Chat_4.0"
REGISTRAR_TRANSPORT = "APNS"
REGISTRAR_TTL_SECS = 15_552_000

CONFIG_DIR = ".chatpush"  # under the user's home directory
