"""
Sealstream Errors.

Integrity failures are ``ValueError`` subclasses so callers can treat any
bad envelope uniformly. ``DecodeError`` is an ``AuthenticationError`` so
padding failures and tag mismatches look the same to callers that only
catch the latter.
"""


class CryptorError(ValueError):
    """Base class for envelope failures."""


class InvalidFormatError(CryptorError):
    """Header is malformed, has the wrong version/options, or wrong length."""


class EnvelopeTooShortError(InvalidFormatError):
    """Stream ended before a full authentication tag was read."""


class AuthenticationError(CryptorError):
    """Computed HMAC does not match the envelope's tag."""


class DecodeError(AuthenticationError):
    """Ciphertext could not be decrypted (bad block length or padding)."""


class CryptoEnvironmentError(RuntimeError):
    """The cryptographic backend failed. Not recoverable."""
