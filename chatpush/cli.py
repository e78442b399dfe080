"""
chatpush CLI — inspect, verify, and decrypt encrypted push payloads.

Commands:
  chatpush keygen   - Generate a key pair (encryption + authentication secrets)
  chatpush inspect  - Show the byte layout of a payload
  chatpush verify   - Check a payload's HMAC against an authentication key
  chatpush decrypt  - Verify and decrypt a payload
  chatpush seal     - Encrypt and sign a JSON body into a payload

SECURITY: key secrets are NOT accepted via CLI args (visible in ps/proc).
Use --key-file (JSON from `chatpush keygen`) or set CHATPUSH_AES_KEY and
CHATPUSH_AUTH_KEY.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path


def _add_key_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--key-file",
        help="JSON key file from `chatpush keygen` (or set CHATPUSH_AES_KEY / CHATPUSH_AUTH_KEY)",
    )


def _load_keys(args: argparse.Namespace):
    """Build KeyMaterial from --key-file or env vars.

    Priority: --key-file > env vars
    """
    from chatpush.rotation import KeyMaterial

    key_file = getattr(args, "key_file", None)
    if key_file:
        path = Path(key_file)
        if not path.is_file():
            print(f"Error: Key file not found: {key_file}", file=sys.stderr)
            sys.exit(1)
        try:
            return KeyMaterial.from_dict(json.loads(path.read_text()))
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            print(f"Error: Invalid key file: {e}", file=sys.stderr)
            sys.exit(1)

    aes_key = os.environ.get("CHATPUSH_AES_KEY", "")
    auth_key = os.environ.get("CHATPUSH_AUTH_KEY", "")
    if not aes_key or not auth_key:
        print(
            "Error: No keys. Use --key-file or set CHATPUSH_AES_KEY and CHATPUSH_AUTH_KEY.",
            file=sys.stderr,
        )
        sys.exit(1)
    return KeyMaterial(encryption_key=aes_key, authentication_key=auth_key)


def _read_payload(value: str) -> str:
    """Payload text from the argument, or stdin when it is '-'."""
    if value == "-":
        return sys.stdin.read().strip()
    return value.strip()


def _parse_or_exit(value: str):
    from chatpush.errors import PushPayloadError
    from chatpush.payload import decode_payload, parse_payload

    try:
        return parse_payload(decode_payload(_read_payload(value)))
    except PushPayloadError as e:
        print(f"Error: {e} ({e.kind})", file=sys.stderr)
        sys.exit(1)


def cmd_keygen(args: argparse.Namespace) -> None:
    """Generate a fresh key pair."""
    from chatpush.rotation import KeyMaterial

    keys = KeyMaterial.generate()
    data = json.dumps(keys.to_dict(), indent=2)

    if args.output:
        out_path = Path(args.output)
        out_path.write_text(data)
        os.chmod(out_path, 0o600)
        print(f"Keys written -> {out_path}")
    else:
        print(data)


def cmd_inspect(args: argparse.Namespace) -> None:
    """Show payload fields and offsets. No keys needed."""
    from chatpush import SUPPORTED_CIPHER_MODES

    parsed = _parse_or_exit(args.payload)
    total = len(parsed.to_bytes())
    supported = "supported" if parsed.mode in SUPPORTED_CIPHER_MODES else "UNSUPPORTED"

    print(f"Payload: {total} bytes")
    print(f"  cipher_mode: offset 0, 1 byte, 0x{parsed.mode:02x} ({supported})")
    print(f"  iv:          offset 1, 16 bytes, {parsed.iv.hex()}")
    print(f"  cipher_text: offset 17, {len(parsed.cipher_text)} bytes")
    print(f"  mac:         offset {total - 32}, 32 bytes, {parsed.mac.hex()}")


def cmd_verify(args: argparse.Namespace) -> None:
    """Verify a payload's HMAC with the authentication key."""
    from chatpush.crypto import verify_mac
    from chatpush.errors import InvalidKeyEncodingError

    parsed = _parse_or_exit(args.payload)
    keys = _load_keys(args)

    try:
        valid = verify_mac(parsed.signed_region, keys.authentication_key, parsed.mac)
    except InvalidKeyEncodingError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if valid:
        print("OK: payload signature verified")
    else:
        print("FAIL: computed signature does not match the included signature", file=sys.stderr)
        sys.exit(1)


def cmd_decrypt(args: argparse.Namespace) -> None:
    """Verify and decrypt a payload."""
    from chatpush.errors import PushPayloadError
    from chatpush.payload import decode_payload
    from chatpush.rotation import KeyRotationManager

    keys = _load_keys(args)

    try:
        manager = KeyRotationManager(keys=keys)
        plaintext = manager.decrypt_notification(decode_payload(_read_payload(args.payload)))
    except PushPayloadError as e:
        print(f"Error: {e} ({e.kind})", file=sys.stderr)
        sys.exit(1)

    if args.output:
        Path(args.output).write_text(plaintext, encoding="utf-8")
        print(f"Decrypted -> {args.output} ({len(plaintext)} chars)")
    else:
        print(plaintext)


def cmd_seal(args: argparse.Namespace) -> None:
    """Encrypt and sign a file's contents into a base64 payload."""
    from chatpush.crypto import seal_payload
    from chatpush.errors import InvalidKeyEncodingError

    path = Path(args.path)
    if not path.is_file():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)

    keys = _load_keys(args)
    try:
        payload = seal_payload(path.read_bytes(), keys.encryption_key, keys.authentication_key)
    except InvalidKeyEncodingError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(payload.to_base64())


def _configure_logging(args: argparse.Namespace) -> None:
    from chatpush.config import load_config

    if args.verbose:
        level = logging.DEBUG
    else:
        config = load_config(Path(args.config) if args.config else None)
        level = getattr(logging, str(config.get("log_level", "WARNING")).upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="chatpush",
        description="Verify and decrypt encrypted chat push-notification payloads.",
    )
    from chatpush import __version__
    parser.add_argument("--version", action="version", version=f"chatpush {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--config", help="Config file (default: ~/.chatpush/config.toml)")
    sub = parser.add_subparsers(dest="command")

    # keygen
    p_keygen = sub.add_parser("keygen", help="Generate a key pair")
    p_keygen.add_argument("-o", "--output", help="Output JSON key file")

    # inspect
    p_inspect = sub.add_parser("inspect", help="Show the byte layout of a payload")
    p_inspect.add_argument("payload", help="Base64 payload, or - to read stdin")

    # verify
    p_verify = sub.add_parser("verify", help="Verify a payload's HMAC")
    p_verify.add_argument("payload", help="Base64 payload, or - to read stdin")
    _add_key_args(p_verify)

    # decrypt
    p_decrypt = sub.add_parser("decrypt", help="Verify and decrypt a payload")
    p_decrypt.add_argument("payload", help="Base64 payload, or - to read stdin")
    p_decrypt.add_argument("-o", "--output", help="Output file for the JSON body")
    _add_key_args(p_decrypt)

    # seal
    p_seal = sub.add_parser("seal", help="Encrypt and sign a JSON body")
    p_seal.add_argument("path", help="File containing the JSON body")
    _add_key_args(p_seal)

    args = parser.parse_args(argv)

    if not args.command:
        print("chatpush — encrypted push-notification payloads")
        print()
        print("Usage:")
        print("  chatpush keygen -o keys.json")
        print("  chatpush inspect <payload>")
        print("  chatpush verify <payload> --key-file keys.json")
        print("  chatpush decrypt <payload> --key-file keys.json")
        print("  chatpush seal body.json --key-file keys.json")
        print()
        print("Run 'chatpush <command> --help' for details on any command.")
        sys.exit(0)

    _configure_logging(args)

    commands = {
        "keygen": cmd_keygen,
        "inspect": cmd_inspect,
        "verify": cmd_verify,
        "decrypt": cmd_decrypt,
        "seal": cmd_seal,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
