"""
Sealstream Cryptor - Streaming encrypt/decrypt state machines.

An envelope is ``header || ciphertext || tag`` where the tag is
HMAC-SHA256 over header and ciphertext. Both classes push their output
into a caller-supplied sink (any callable taking bytes), so arbitrarily
large streams are processed with bounded memory.

Example:
    >>> enc_key, hmac_key = os.urandom(32), os.urandom(32)
    >>> out = bytearray()
    >>> encryptor = Encryptor(enc_key, hmac_key)
    >>> encryptor.update(b"part one, ", out.extend)
    >>> encryptor.update(b"part two", out.extend)
    >>> encryptor.final(out.extend)
    >>>
    >>> decryptor = Decryptor(enc_key, hmac_key, bytes(out[:18]))
    >>> plain = decryptor.decrypt(bytes(out[18:]))
"""

import hmac
import logging
import os
from enum import Enum
from typing import Optional

from sealstream.buffer import TrailingBuffer
from sealstream.engine import CipherEngine, MACAccumulator, Operation, Sink
from sealstream.errors import (
    AuthenticationError,
    EnvelopeTooShortError,
    InvalidFormatError,
)
from sealstream.header import (
    Header,
    KeyHeader,
    PasswordHeader,
    decode_header,
    encode_header,
)
from sealstream.kdf import derive_key
from sealstream.settings import V3, FormatSettings, Options

logger = logging.getLogger(__name__)


class State(Enum):
    HEADER_PENDING = "header_pending"
    STREAMING = "streaming"
    FINALIZED = "finalized"


def constant_time_equal(trusted: bytes, untrusted: bytes) -> bool:
    """Compare a computed tag with an untrusted one in constant time."""
    return hmac.compare_digest(trusted, untrusted)


def _check_keys(encryption_key: bytes, hmac_key: bytes, settings: FormatSettings) -> None:
    if len(encryption_key) != settings.key_size:
        raise ValueError(
            f"Encryption key must be {settings.key_size} bytes, got {len(encryption_key)}"
        )
    if len(hmac_key) != settings.key_size:
        raise ValueError(f"HMAC key must be {settings.key_size} bytes, got {len(hmac_key)}")


class Encryptor:
    """
    Encrypts a plaintext stream into a V3 envelope.

    The header is emitted before the first ciphertext byte and the 32-byte
    tag is always the last thing emitted. An instance is consumed by
    final().
    """

    def __init__(
        self,
        encryption_key: bytes,
        hmac_key: bytes,
        iv: Optional[bytes] = None,
        settings: FormatSettings = V3,
    ):
        """
        Initialize with an explicit key pair.

        Args:
            encryption_key: 32-byte AES key
            hmac_key: 32-byte HMAC key
            iv: 16-byte IV (random if omitted; pass one only for tests)
            settings: Format constants

        Raises:
            ValueError: If a key or the IV has the wrong size
        """
        if iv is None:
            iv = os.urandom(settings.iv_size)
        self._start(encryption_key, hmac_key, KeyHeader(iv=iv), settings)

    @classmethod
    def from_password(
        cls,
        password: str,
        encryption_salt: Optional[bytes] = None,
        hmac_salt: Optional[bytes] = None,
        iv: Optional[bytes] = None,
        settings: FormatSettings = V3,
    ) -> "Encryptor":
        """
        Create an Encryptor whose keys are derived from a password.

        Salts and IV are random unless given.

        Raises:
            ValueError: If the password is empty
        """
        if not password:
            raise ValueError("Password must not be empty")

        if encryption_salt is None:
            encryption_salt = os.urandom(settings.salt_size)
        if hmac_salt is None:
            hmac_salt = os.urandom(settings.salt_size)
        if iv is None:
            iv = os.urandom(settings.iv_size)

        header = PasswordHeader(encryption_salt=encryption_salt, hmac_salt=hmac_salt, iv=iv)
        encryption_key = derive_key(password, header.encryption_salt, settings)
        hmac_key = derive_key(password, header.hmac_salt, settings)

        instance = cls.__new__(cls)
        instance._start(encryption_key, hmac_key, header, settings)
        return instance

    def _start(
        self,
        encryption_key: bytes,
        hmac_key: bytes,
        header: Header,
        settings: FormatSettings,
    ) -> None:
        _check_keys(encryption_key, hmac_key, settings)
        self.settings = settings
        self.header = header
        self._pending_header: Optional[bytes] = encode_header(header, settings)
        self._hmac = MACAccumulator(hmac_key)
        self._engine = CipherEngine(Operation.ENCRYPT, encryption_key, header.iv, settings)
        self.state = State.HEADER_PENDING
        logger.debug("Encryptor created (%s mode)", header.options.name.lower())

    def _check_open(self) -> None:
        if self.state is State.FINALIZED:
            raise RuntimeError("Encryptor already finalized")

    def _take_header(self) -> bytes:
        header = self._pending_header or b""
        if header:
            self._hmac.update(header)
        self._pending_header = None
        self.state = State.STREAMING
        return header

    def update(self, data: bytes, sink: Sink) -> None:
        """
        Encrypt a chunk of plaintext.

        Args:
            data: Plaintext chunk of any size (may be empty)
            sink: Called with each output chunk, in order
        """
        self._check_open()

        header = self._take_header()
        if header:
            sink(header)

        def emit(chunk: bytes) -> None:
            self._hmac.update(chunk)
            sink(chunk)

        self._engine.update(data, emit)

    def final(self, sink: Sink) -> None:
        """Flush the cipher and emit the remaining ciphertext plus the tag."""
        self._check_open()

        out = bytearray(self._take_header())
        tail = bytearray()
        self._engine.final(tail.extend)
        self._hmac.update(bytes(tail))
        out += tail
        out += self._hmac.final()

        self.state = State.FINALIZED
        logger.debug("Encryptor finalized")
        sink(bytes(out))

    def encrypt(self, data: bytes) -> bytes:
        """One-shot: encrypt all of data and return the whole envelope."""
        out = bytearray()
        self.update(data, out.extend)
        self.final(out.extend)
        return bytes(out)


class Decryptor:
    """
    Decrypts the body of a V3 envelope whose header has already been read.

    The last 32 bytes of the stream are withheld in a TrailingBuffer, so
    the tag is never fed to the cipher. final() verifies the tag before
    releasing the last block of plaintext.

    Plaintext emitted by update() is not yet authenticated. Callers must
    discard it if final() raises.
    """

    def __init__(
        self,
        encryption_key: bytes,
        hmac_key: bytes,
        header: bytes,
        settings: FormatSettings = V3,
    ):
        """
        Initialize with an explicit key pair and the 18-byte header.

        Raises:
            ValueError: If a key has the wrong size
            InvalidFormatError: If the header is not a key-based V3 header
        """
        _check_keys(encryption_key, hmac_key, settings)
        decoded = decode_header(header, Options.KEY, settings)
        if decoded is None:
            raise InvalidFormatError("Not a key-based V3 header")
        self._start(encryption_key, hmac_key, decoded, header, settings)

    @classmethod
    def from_password(
        cls, password: str, header: bytes, settings: FormatSettings = V3
    ) -> "Decryptor":
        """
        Create a Decryptor from a password and the 34-byte header.

        Raises:
            InvalidFormatError: If the password is empty or the header is
                not a password-based V3 header
        """
        if not password:
            raise InvalidFormatError("Password must not be empty")
        decoded = decode_header(header, Options.PASSWORD, settings)
        if decoded is None:
            raise InvalidFormatError("Not a password-based V3 header")

        encryption_key = derive_key(password, decoded.encryption_salt, settings)
        hmac_key = derive_key(password, decoded.hmac_salt, settings)

        instance = cls.__new__(cls)
        instance._start(encryption_key, hmac_key, decoded, header, settings)
        return instance

    def _start(
        self,
        encryption_key: bytes,
        hmac_key: bytes,
        header: Header,
        raw_header: bytes,
        settings: FormatSettings,
    ) -> None:
        self.settings = settings
        self.header = header
        self._hmac = MACAccumulator(hmac_key)
        self._hmac.update(bytes(raw_header))
        self._buffer = TrailingBuffer(settings.hmac_size)
        self._engine = CipherEngine(Operation.DECRYPT, encryption_key, header.iv, settings)
        self.state = State.STREAMING
        logger.debug("Decryptor created (%s mode)", header.options.name.lower())

    def _check_open(self) -> None:
        if self.state is State.FINALIZED:
            raise RuntimeError("Decryptor already finalized")

    def update(self, data: bytes, sink: Sink) -> None:
        """
        Decrypt a chunk of envelope body (ciphertext and/or tag bytes).

        Args:
            data: Chunk of any size (may be empty)
            sink: Called with each unauthenticated plaintext chunk
        """
        self._check_open()
        released = self._buffer.update(data)
        if released:
            self._hmac.update(released)
            self._engine.update(released, sink)

    def final(self, sink: Sink) -> None:
        """
        Verify the tag and emit the last plaintext block.

        Raises:
            EnvelopeTooShortError: If fewer than 32 tag bytes were seen
            AuthenticationError: If the tag does not match
            DecodeError: If the padding is invalid
        """
        self._check_open()
        self.state = State.FINALIZED

        tag = self._buffer.final()
        if len(tag) < self.settings.hmac_size:
            raise EnvelopeTooShortError(
                f"Envelope truncated: expected {self.settings.hmac_size}-byte tag, got {len(tag)}"
            )

        if not constant_time_equal(self._hmac.final(), tag):
            logger.debug("Decryptor tag verification failed")
            raise AuthenticationError("HMAC mismatch")

        staged = []
        self._engine.final(staged.append)
        logger.debug("Decryptor finalized")
        for chunk in staged:
            sink(chunk)

    def decrypt(self, data: bytes) -> bytes:
        """One-shot: decrypt the whole body following the header."""
        out = bytearray()
        self.update(data, out.extend)
        self.final(out.extend)
        return bytes(out)
