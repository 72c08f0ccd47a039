"""
Sealstream Buffer - Lookback buffer for trailing tags.

Withholds the most recent ``capacity`` bytes of a stream so a decryptor
never treats the appended HMAC tag as ciphertext.
"""


class TrailingBuffer:
    """
    Fixed-capacity lookback buffer.

    Everything fed through update() is either returned by it or still
    held, and the held part is always the last ``capacity`` bytes seen.

    Example:
        >>> buf = TrailingBuffer(4)
        >>> buf.update(b"abc")
        b''
        >>> buf.update(b"defg")
        b'abc'
        >>> buf.final()
        b'defg'
    """

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError(f"Capacity must be non-negative, got {capacity}")
        self.capacity = capacity
        self._held = bytearray()

    def __len__(self) -> int:
        return len(self._held)

    def update(self, data: bytes) -> bytes:
        """
        Add data and release whatever no longer fits.

        Returns:
            Bytes beyond the last ``capacity`` seen so far (may be empty)
        """
        self._held += data
        excess = len(self._held) - self.capacity
        if excess <= 0:
            return b""

        released = bytes(self._held[:excess])
        del self._held[:excess]
        return released

    def final(self) -> bytes:
        """Return and clear the retained tail (at most ``capacity`` bytes)."""
        tail = bytes(self._held)
        self._held.clear()
        return tail
