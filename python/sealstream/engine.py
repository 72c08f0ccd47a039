"""
Sealstream Engine - Incremental cipher and HMAC wrappers.

CipherEngine drives AES-256-CBC with PKCS#7 padding one chunk at a time,
handing output to a sink. MACAccumulator is a one-shot HMAC-SHA256 over
everything passed to it.
"""

from enum import Enum
from typing import Callable

from cryptography.exceptions import InternalError, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sealstream.errors import CryptoEnvironmentError, DecodeError
from sealstream.settings import V3, FormatSettings

Sink = Callable[[bytes], object]


class Operation(Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


class CipherEngine:
    """
    One-directional AES-256-CBC with PKCS#7 padding.

    Chunks of any size may be fed; partial blocks stay buffered inside
    the engine. When decrypting, the last full block is also held back
    until final() so padding is stripped here and never by the caller.
    """

    def __init__(
        self,
        operation: Operation,
        key: bytes,
        iv: bytes,
        settings: FormatSettings = V3,
    ):
        if len(key) != settings.key_size:
            raise ValueError(f"Key must be {settings.key_size} bytes, got {len(key)}")
        if len(iv) != settings.iv_size:
            raise ValueError(f"IV must be {settings.iv_size} bytes, got {len(iv)}")

        self.operation = operation
        block_bits = settings.block_size * 8

        try:
            cipher = Cipher(algorithms.AES(key), modes.CBC(iv))
            if operation is Operation.ENCRYPT:
                self._context = cipher.encryptor()
                self._padding = padding.PKCS7(block_bits).padder()
            else:
                self._context = cipher.decryptor()
                self._padding = padding.PKCS7(block_bits).unpadder()
        except (InternalError, UnsupportedAlgorithm) as exc:
            raise CryptoEnvironmentError(f"AES-CBC unavailable: {exc}") from exc

        self._finalized = False

    def _check_open(self) -> None:
        if self._finalized:
            raise RuntimeError("CipherEngine already finalized")

    def update(self, data: bytes, sink: Sink) -> None:
        """Process a chunk, passing any complete output to sink."""
        self._check_open()
        if self.operation is Operation.ENCRYPT:
            out = self._context.update(self._padding.update(data))
        else:
            out = self._padding.update(self._context.update(data))
        if out:
            sink(out)

    def final(self, sink: Sink) -> None:
        """
        Flush buffered data, adding or removing padding.

        Raises:
            DecodeError: If decrypted data is not block aligned or the
                padding is invalid
        """
        self._check_open()
        self._finalized = True

        if self.operation is Operation.ENCRYPT:
            out = self._context.update(self._padding.finalize()) + self._context.finalize()
        else:
            try:
                out = self._padding.update(self._context.finalize())
                out += self._padding.finalize()
            except ValueError as exc:
                raise DecodeError("Invalid ciphertext padding") from exc
        if out:
            sink(out)


class MACAccumulator:
    """Streaming HMAC-SHA256; final() may be called once."""

    def __init__(self, key: bytes):
        self._hmac = hmac.HMAC(key, hashes.SHA256())
        self._finalized = False

    def update(self, data: bytes) -> None:
        if self._finalized:
            raise RuntimeError("MACAccumulator already finalized")
        self._hmac.update(data)

    def final(self) -> bytes:
        if self._finalized:
            raise RuntimeError("MACAccumulator already finalized")
        self._finalized = True
        return self._hmac.finalize()
