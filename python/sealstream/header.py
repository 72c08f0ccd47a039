"""
Sealstream Header - Fixed-size envelope header codec.

Layouts:
    key-based:       version(1) || 0(1) || iv(16)                          = 18 bytes
    password-based:  version(1) || 1(1) || enc_salt(8) || hmac_salt(8) || iv(16) = 34 bytes

Decoding never raises on bad input; it returns None so callers can report
"wrong format, key or password" without crashing.
"""

from dataclasses import dataclass
from typing import Optional, Union

from sealstream.settings import V3, FormatSettings, Options


@dataclass(frozen=True)
class KeyHeader:
    """Header for envelopes encrypted with an explicit key pair."""

    iv: bytes

    options = Options.KEY


@dataclass(frozen=True)
class PasswordHeader:
    """Header for envelopes encrypted with password-derived keys."""

    encryption_salt: bytes
    hmac_salt: bytes
    iv: bytes

    options = Options.PASSWORD


Header = Union[KeyHeader, PasswordHeader]


def _check_length(name: str, value: bytes, expected: int) -> None:
    if len(value) != expected:
        raise ValueError(f"{name} must be {expected} bytes, got {len(value)}")


def encode_header(header: Header, settings: FormatSettings = V3) -> bytes:
    """
    Serialize a header.

    Raises:
        ValueError: If a field has the wrong size
    """
    _check_length("IV", header.iv, settings.iv_size)

    if isinstance(header, PasswordHeader):
        _check_length("Encryption salt", header.encryption_salt, settings.salt_size)
        _check_length("HMAC salt", header.hmac_salt, settings.salt_size)
        return (
            bytes([settings.version, Options.PASSWORD])
            + header.encryption_salt
            + header.hmac_salt
            + header.iv
        )

    if isinstance(header, KeyHeader):
        return bytes([settings.version, Options.KEY]) + header.iv

    raise TypeError(f"Unsupported header type: {type(header).__name__}")


def decode_header(
    data: bytes, options: Options, settings: FormatSettings = V3
) -> Optional[Header]:
    """
    Parse a header of the expected mode.

    Args:
        data: Exactly the header bytes
        options: Mode the caller expects

    Returns:
        KeyHeader or PasswordHeader, or None if length, version or
        options byte do not match
    """
    if len(data) != settings.header_size(options):
        return None
    if data[0] != settings.version or data[1] != options:
        return None

    if options == Options.PASSWORD:
        salt = settings.salt_size
        return PasswordHeader(
            encryption_salt=bytes(data[2 : 2 + salt]),
            hmac_salt=bytes(data[2 + salt : 2 + 2 * salt]),
            iv=bytes(data[2 + 2 * salt :]),
        )

    return KeyHeader(iv=bytes(data[2:]))
