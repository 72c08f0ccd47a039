"""
Sealstream - Streaming authenticated encryption envelopes.

Wraps a plaintext stream into ``header || ciphertext || tag`` using
AES-256-CBC and HMAC-SHA256 (V3 format), recoverable from either a raw
key pair or a password.

Usage:
    from sealstream import EnvelopeCipher, Encryptor, Decryptor

    # Password-based encryption
    cipher = EnvelopeCipher.from_password("password")
    encrypted = cipher.encrypt(b"secret data")
    decrypted = cipher.decrypt(encrypted)

    # Key-based, streaming into a sink
    enc_key, hmac_key = os.urandom(32), os.urandom(32)
    out = bytearray()
    encryptor = Encryptor(enc_key, hmac_key)
    encryptor.update(b"chunk", out.extend)
    encryptor.final(out.extend)

Security:
    PBKDF2-SHA1 (10,000 rounds) + AES-256-CBC + HMAC-SHA256 (encrypt-then-MAC).
    Tags are compared in constant time.
"""

__version__ = "0.1.0"
__license__ = "CC0-1.0"

from sealstream.buffer import TrailingBuffer
from sealstream.cryptor import Decryptor, Encryptor, constant_time_equal
from sealstream.engine import CipherEngine, MACAccumulator, Operation
from sealstream.errors import (
    AuthenticationError,
    CryptoEnvironmentError,
    CryptorError,
    DecodeError,
    EnvelopeTooShortError,
    InvalidFormatError,
)
from sealstream.header import KeyHeader, PasswordHeader, decode_header, encode_header
from sealstream.kdf import derive_key
from sealstream.settings import V3, FormatSettings, Options
from sealstream.stream import EnvelopeCipher, read_options

__all__ = [
    # Format
    "V3",
    "FormatSettings",
    "Options",
    "KeyHeader",
    "PasswordHeader",
    "encode_header",
    "decode_header",
    # Primitives
    "derive_key",
    "CipherEngine",
    "MACAccumulator",
    "Operation",
    "TrailingBuffer",
    # Sessions
    "Encryptor",
    "Decryptor",
    "constant_time_equal",
    # Streaming
    "EnvelopeCipher",
    "read_options",
    # Errors
    "CryptorError",
    "InvalidFormatError",
    "EnvelopeTooShortError",
    "AuthenticationError",
    "DecodeError",
    "CryptoEnvironmentError",
]
