"""
Sealstream Settings - Format constants for V3 envelopes.

All sizes are in bytes. A single immutable ``V3`` instance is created at
import time and passed into every component as a default argument.
"""

from dataclasses import dataclass
from enum import IntEnum


class Options(IntEnum):
    """Header options byte: how the keys were obtained."""

    KEY = 0
    PASSWORD = 1


@dataclass(frozen=True)
class FormatSettings:
    """Envelope format constants."""

    version: int = 3
    key_size: int = 32
    iv_size: int = 16
    hmac_size: int = 32
    salt_size: int = 8
    pbkdf2_iterations: int = 10_000

    @property
    def block_size(self) -> int:
        # AES block size equals the IV size
        return self.iv_size

    @property
    def key_header_size(self) -> int:
        """version(1) || options(1) || iv"""
        return 2 + self.iv_size

    @property
    def password_header_size(self) -> int:
        """version(1) || options(1) || encryption_salt || hmac_salt || iv"""
        return 2 + 2 * self.salt_size + self.iv_size

    def header_size(self, options: Options) -> int:
        if options == Options.PASSWORD:
            return self.password_header_size
        return self.key_header_size


V3 = FormatSettings()
