"""
Sealstream KDF - Password to key derivation.

PBKDF2-HMAC-SHA1, 10,000 iterations, 32-byte output. The parameters are
fixed by the V3 format; changing them breaks interoperability.
"""

from cryptography.exceptions import InternalError, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sealstream.errors import CryptoEnvironmentError
from sealstream.settings import V3, FormatSettings


def derive_key(password: str, salt: bytes, settings: FormatSettings = V3) -> bytes:
    """
    Derive a key from a password and salt.

    Args:
        password: User's password (encoded as UTF-8)
        salt: Salt bytes (8 bytes in V3 headers)
        settings: Format constants

    Returns:
        ``settings.key_size`` bytes of key material

    Raises:
        CryptoEnvironmentError: If the backend cannot run PBKDF2
    """
    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA1(),
            length=settings.key_size,
            salt=salt,
            iterations=settings.pbkdf2_iterations,
        )
        return kdf.derive(password.encode("utf-8"))
    except (InternalError, UnsupportedAlgorithm) as exc:
        raise CryptoEnvironmentError(f"Could not derive key from password: {exc}") from exc
