"""
Sealstream Stream - Iterator and file helpers for V3 envelopes.

Wraps Encryptor/Decryptor so whole files or chunk iterators can be
processed with constant memory.

Example:
    >>> from sealstream.stream import EnvelopeCipher
    >>> cipher = EnvelopeCipher.from_password("password")
    >>> cipher.encrypt_file("large.bin", "large.bin.enc")
    >>> cipher.decrypt_file("large.bin.enc", "large.bin.dec")
"""

import contextlib
import logging
import os
import tempfile
from typing import Iterable, Iterator, Optional

from sealstream.cryptor import Decryptor, Encryptor
from sealstream.errors import EnvelopeTooShortError
from sealstream.settings import V3, FormatSettings, Options

logger = logging.getLogger(__name__)

# Default chunk size: 64KB
DEFAULT_CHUNK_SIZE = 64 * 1024


def read_options(data: bytes, settings: FormatSettings = V3) -> Optional[Options]:
    """
    Peek at the start of an envelope to see which mode produced it.

    Returns:
        Options.KEY or Options.PASSWORD, or None if the first two bytes
        are not a V3 version/options pair
    """
    if len(data) < 2 or data[0] != settings.version:
        return None
    try:
        return Options(data[1])
    except ValueError:
        return None


class EnvelopeCipher:
    """
    Encrypts and decrypts complete V3 envelopes.

    Holds either a key pair or a password. With a password, every
    envelope gets fresh random salts and therefore fresh keys.
    """

    def __init__(
        self,
        encryption_key: bytes,
        hmac_key: bytes,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        settings: FormatSettings = V3,
    ):
        """
        Initialize with an explicit key pair.

        Args:
            encryption_key: 32-byte AES key
            hmac_key: 32-byte HMAC key
            chunk_size: Read size for file helpers (default: 64KB)

        Raises:
            ValueError: If a key is not 32 bytes
        """
        for name, key in (("Encryption key", encryption_key), ("HMAC key", hmac_key)):
            if len(key) != settings.key_size:
                raise ValueError(f"{name} must be {settings.key_size} bytes, got {len(key)}")

        self._encryption_key = encryption_key
        self._hmac_key = hmac_key
        self._password: Optional[str] = None
        self.chunk_size = chunk_size
        self.settings = settings

    @classmethod
    def from_password(
        cls,
        password: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        settings: FormatSettings = V3,
    ) -> "EnvelopeCipher":
        """
        Create EnvelopeCipher from password.

        Raises:
            ValueError: If the password is empty
        """
        if not password:
            raise ValueError("Password must not be empty")

        instance = cls.__new__(cls)
        instance._encryption_key = None
        instance._hmac_key = None
        instance._password = password
        instance.chunk_size = chunk_size
        instance.settings = settings
        return instance

    @property
    def options(self) -> Options:
        return Options.KEY if self._password is None else Options.PASSWORD

    @property
    def header_size(self) -> int:
        return self.settings.header_size(self.options)

    def _encryptor(self) -> Encryptor:
        if self._password is not None:
            return Encryptor.from_password(self._password, settings=self.settings)
        return Encryptor(self._encryption_key, self._hmac_key, settings=self.settings)

    def _decryptor(self, header: bytes) -> Decryptor:
        if self._password is not None:
            return Decryptor.from_password(self._password, header, settings=self.settings)
        return Decryptor(self._encryption_key, self._hmac_key, header, settings=self.settings)

    def encrypt_stream(self, data_iter: Iterable[bytes]) -> Iterator[bytes]:
        """
        Encrypt streaming data.

        Args:
            data_iter: Iterable yielding plaintext chunks

        Yields:
            Envelope chunks: header first, tag last
        """
        encryptor = self._encryptor()
        pending = []

        for data in data_iter:
            encryptor.update(data, pending.append)
            yield from pending
            pending.clear()

        encryptor.final(pending.append)
        yield from pending

    def decrypt_stream(self, enc_iter: Iterable[bytes]) -> Iterator[bytes]:
        """
        Decrypt streaming data.

        Chunk boundaries are arbitrary; the header may be split across
        several chunks.

        Args:
            enc_iter: Iterable yielding envelope chunks

        Yields:
            Plaintext chunks. Only the last one is emitted after the tag
            verifies, so discard everything if this raises.

        Raises:
            InvalidFormatError: If the header is malformed or the envelope
                is truncated
            AuthenticationError: If the tag or padding does not verify
        """
        header = bytearray()
        decryptor: Optional[Decryptor] = None
        pending = []

        for data in enc_iter:
            if decryptor is None:
                header += data
                if len(header) < self.header_size:
                    continue
                data = bytes(header[self.header_size :])
                decryptor = self._decryptor(bytes(header[: self.header_size]))

            decryptor.update(data, pending.append)
            yield from pending
            pending.clear()

        if decryptor is None:
            raise EnvelopeTooShortError(
                f"Envelope truncated: expected {self.header_size}-byte header, got {len(header)}"
            )

        decryptor.final(pending.append)
        yield from pending

    def encrypt(self, data: bytes) -> bytes:
        """
        Encrypt data in memory (convenience method).

        Returns:
            Complete envelope
        """
        return b"".join(self.encrypt_stream([data]))

    def decrypt(self, encrypted: bytes) -> bytes:
        """
        Decrypt data in memory (convenience method).

        Returns:
            Plaintext

        Raises:
            CryptorError: If the envelope is malformed or does not verify
        """
        return b"".join(self.decrypt_stream([encrypted]))

    def encrypt_file(self, in_path: str, out_path: str) -> None:
        """
        Encrypt a file.

        Args:
            in_path: Path to input file
            out_path: Path to output file
        """
        with open(in_path, "rb") as fin, open(out_path, "wb") as fout:
            chunks = iter(lambda: fin.read(self.chunk_size), b"")
            for encrypted in self.encrypt_stream(chunks):
                fout.write(encrypted)
        logger.debug("Encrypted %s -> %s", in_path, out_path)

    def decrypt_file(self, in_path: str, out_path: str) -> None:
        """
        Decrypt a file.

        Plaintext goes to a temporary file beside ``out_path`` that is only
        moved into place once the tag verifies.

        Args:
            in_path: Path to encrypted file
            out_path: Path to output file

        Raises:
            CryptorError: If the envelope is malformed or does not verify
        """
        out_dir = os.path.dirname(os.path.abspath(out_path))
        fd, tmp_path = tempfile.mkstemp(dir=out_dir, prefix=".sealstream-")
        try:
            with os.fdopen(fd, "wb") as fout, open(in_path, "rb") as fin:
                chunks = iter(lambda: fin.read(self.chunk_size), b"")
                for decrypted in self.decrypt_stream(chunks):
                    fout.write(decrypted)
            os.replace(tmp_path, out_path)
        except BaseException:
            logger.debug("Decryption of %s failed, discarding output", in_path)
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_path)
            raise
        logger.debug("Decrypted %s -> %s", in_path, out_path)
