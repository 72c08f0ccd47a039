#!/usr/bin/env python3
"""
Sealstream CLI - Command-line interface for V3 envelopes.

Usage:
    sealstream encrypt <file> [-o OUTPUT] [-p PASSWORD | -k KEYFILE]
    sealstream decrypt <file> [-o OUTPUT] [-p PASSWORD | -k KEYFILE]
    sealstream keygen [-o KEYFILE]

Examples:
    # Encrypt a file with a password (prompted)
    sealstream encrypt secret.txt -o secret.enc

    # Generate a key pair and encrypt with it
    sealstream keygen -o secret.keys
    sealstream encrypt secret.txt -k secret.keys

    # Decrypt
    sealstream decrypt secret.txt.enc -k secret.keys
"""

import argparse
import getpass
import logging
import os
import sys
from typing import Optional, Tuple

from sealstream import __version__
from sealstream.errors import AuthenticationError, CryptorError
from sealstream.settings import V3, Options
from sealstream.stream import EnvelopeCipher, read_options

logger = logging.getLogger(__name__)


def get_password(prompt: str = "Password: ", confirm: bool = False) -> str:
    """Get password from user with optional confirmation."""
    password = getpass.getpass(prompt)
    if confirm:
        password2 = getpass.getpass("Confirm password: ")
        if password != password2:
            print("Error: Passwords do not match", file=sys.stderr)
            sys.exit(1)
    return password


def load_keys(path: str) -> Tuple[bytes, bytes]:
    """
    Read a key file written by ``keygen``.

    The file holds the encryption key followed by the HMAC key, as hex.

    Raises:
        ValueError: If the file is not 64 hex-encoded bytes
    """
    with open(path, "r", encoding="ascii") as f:
        raw = bytes.fromhex(f.read().strip())
    if len(raw) != 2 * V3.key_size:
        raise ValueError(f"Key file must hold {2 * V3.key_size} bytes, got {len(raw)}")
    return raw[: V3.key_size], raw[V3.key_size :]


def build_cipher(args: argparse.Namespace, confirm: bool) -> EnvelopeCipher:
    if args.key_file:
        encryption_key, hmac_key = load_keys(args.key_file)
        return EnvelopeCipher(encryption_key, hmac_key)
    password = args.password or get_password(confirm=confirm)
    return EnvelopeCipher.from_password(password)


def cmd_encrypt(args: argparse.Namespace) -> int:
    """Encrypt a file."""
    if not os.path.exists(args.file):
        print(f"Error: File not found: {args.file}", file=sys.stderr)
        return 1

    output = args.output or args.file + ".enc"

    try:
        cipher = build_cipher(args, confirm=True)
        cipher.encrypt_file(args.file, output)
        print(f"Encrypted: {args.file} -> {output}")
        return 0
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_decrypt(args: argparse.Namespace) -> int:
    """Decrypt a file."""
    if not os.path.exists(args.file):
        print(f"Error: File not found: {args.file}", file=sys.stderr)
        return 1

    # Determine output filename
    if args.output:
        output = args.output
    elif args.file.endswith(".enc"):
        output = args.file[:-4]
    else:
        output = args.file + ".dec"

    try:
        with open(args.file, "rb") as f:
            options = read_options(f.read(2))
        if options is None:
            print("Error: Invalid envelope - not a V3 envelope", file=sys.stderr)
            return 1
        logger.debug("Envelope mode: %s", options.name.lower())

        if options is Options.KEY and not args.key_file:
            print("Error: Envelope was encrypted with a key pair - pass --key-file", file=sys.stderr)
            return 1
        if options is Options.PASSWORD and args.key_file:
            print("Error: Envelope was encrypted with a password - omit --key-file", file=sys.stderr)
            return 1

        cipher = build_cipher(args, confirm=False)
        cipher.decrypt_file(args.file, output)
        print(f"Decrypted: {args.file} -> {output}")
        return 0
    except AuthenticationError:
        print("Error: Authentication failed - wrong key or corrupted file", file=sys.stderr)
        return 1
    except CryptorError as e:
        print(f"Error: Invalid envelope - {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_keygen(args: argparse.Namespace) -> int:
    """Generate a random encryption/HMAC key pair."""
    key_hex = os.urandom(2 * V3.key_size).hex()
    if not args.output:
        print(key_hex)
        return 0

    try:
        fd = os.open(args.output, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="ascii") as f:
            f.write(key_hex + "\n")
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Wrote key pair: {args.output}")
    return 0


def _add_key_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("-p", "--password", help="Password (insecure, prefer prompt)")
    group.add_argument("-k", "--key-file", help="Key file from 'keygen'")


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="sealstream",
        description="Sealstream - streaming authenticated encryption (V3 envelopes)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"sealstream {__version__}"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # encrypt command
    encrypt_parser = subparsers.add_parser("encrypt", help="Encrypt a file")
    encrypt_parser.add_argument("file", help="File to encrypt")
    encrypt_parser.add_argument("-o", "--output", help="Output file")
    _add_key_arguments(encrypt_parser)

    # decrypt command
    decrypt_parser = subparsers.add_parser("decrypt", help="Decrypt a file")
    decrypt_parser.add_argument("file", help="File to decrypt")
    decrypt_parser.add_argument("-o", "--output", help="Output file")
    _add_key_arguments(decrypt_parser)

    # keygen command
    keygen_parser = subparsers.add_parser("keygen", help="Generate random key pair")
    keygen_parser.add_argument("-o", "--output", help="Key file (prints hex if omitted)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "encrypt": cmd_encrypt,
        "decrypt": cmd_decrypt,
        "keygen": cmd_keygen,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
