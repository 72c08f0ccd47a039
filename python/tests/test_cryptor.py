"""Tests for the Encryptor/Decryptor state machines."""

import hashlib
import hmac
import os
import random
import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sealstream.cryptor import Decryptor, Encryptor, State, constant_time_equal
from sealstream.errors import (
    AuthenticationError,
    DecodeError,
    EnvelopeTooShortError,
    InvalidFormatError,
)
from sealstream.header import KeyHeader, PasswordHeader

ENC_KEY = bytes(range(32))
HMAC_KEY = bytes(range(32, 64))
ZERO_IV = b"\x00" * 16


def decrypt_key_envelope(envelope: bytes, enc_key=ENC_KEY, hmac_key=HMAC_KEY) -> bytes:
    return Decryptor(enc_key, hmac_key, envelope[:18]).decrypt(envelope[18:])


def decrypt_password_envelope(envelope: bytes, password: str) -> bytes:
    return Decryptor.from_password(password, envelope[:34]).decrypt(envelope[34:])


def split_randomly(data: bytes, seed: int):
    rng = random.Random(seed)
    pos = 0
    while pos < len(data):
        step = rng.randint(0, 40)
        yield data[pos : pos + step]
        pos += step


class TestConstantTimeEqual:
    """Test constant_time_equal."""

    def test_equal(self):
        assert constant_time_equal(b"\x01" * 32, b"\x01" * 32)

    def test_single_byte_difference(self):
        """A difference anywhere is detected."""
        trusted = os.urandom(32)
        for i in range(32):
            untrusted = bytearray(trusted)
            untrusted[i] ^= 0x01
            assert not constant_time_equal(trusted, bytes(untrusted))

    def test_length_mismatch(self):
        """Prefixes and extensions do not match."""
        trusted = os.urandom(32)
        assert not constant_time_equal(trusted, trusted[:31])
        assert not constant_time_equal(trusted, trusted + b"\x00")
        assert not constant_time_equal(trusted, b"")

    def test_empty_trusted(self):
        assert constant_time_equal(b"", b"")
        assert not constant_time_equal(b"", b"x")


class TestEncryptor:
    """Test Encryptor class."""

    def test_empty_plaintext_vector(self):
        """Empty input with fixed keys and zero IV gives a fixed 66-byte envelope."""
        envelope = Encryptor(ENC_KEY, HMAC_KEY, iv=ZERO_IV).encrypt(b"")
        assert len(envelope) == 66

        header = b"\x03\x00" + ZERO_IV
        raw = Cipher(algorithms.AES(ENC_KEY), modes.CBC(ZERO_IV)).encryptor()
        ciphertext = raw.update(b"\x10" * 16) + raw.finalize()
        tag = hmac.new(HMAC_KEY, header + ciphertext, hashlib.sha256).digest()
        assert envelope == header + ciphertext + tag

        again = Encryptor(ENC_KEY, HMAC_KEY, iv=ZERO_IV).encrypt(b"")
        assert again == envelope

    def test_empty_plaintext_vector_decrypts(self):
        """The fixed 66-byte envelope decrypts to nothing."""
        envelope = Encryptor(ENC_KEY, HMAC_KEY, iv=ZERO_IV).encrypt(b"")
        assert decrypt_key_envelope(envelope) == b""

    @pytest.mark.parametrize("length", [0, 1, 15, 16, 17, 31, 32, 1000])
    def test_output_length(self, length):
        """header + padded ciphertext + 32-byte tag."""
        envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(os.urandom(length))
        assert len(envelope) == 18 + 16 * (length // 16 + 1) + 32

    def test_header_emitted_first_and_once(self):
        """First sink call is exactly the header."""
        calls = []
        encryptor = Encryptor(ENC_KEY, HMAC_KEY, iv=ZERO_IV)
        encryptor.update(b"a" * 40, calls.append)
        encryptor.update(b"b" * 40, calls.append)
        encryptor.final(calls.append)
        assert calls[0] == b"\x03\x00" + ZERO_IV
        assert sum(1 for c in calls if c.startswith(b"\x03\x00" + ZERO_IV)) == 1

    def test_header_emitted_in_final_when_no_update(self):
        """final() alone still emits the header."""
        out = bytearray()
        encryptor = Encryptor(ENC_KEY, HMAC_KEY, iv=ZERO_IV)
        encryptor.final(out.extend)
        assert bytes(out) == Encryptor(ENC_KEY, HMAC_KEY, iv=ZERO_IV).encrypt(b"")

    def test_random_iv(self):
        """Default IV is random."""
        enc1 = Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"same")
        enc2 = Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"same")
        assert enc1[2:18] != enc2[2:18]
        assert enc1 != enc2

    def test_streaming_equivalence(self):
        """Single-byte updates produce the same envelope as one update."""
        plaintext = os.urandom(333)
        whole = Encryptor(ENC_KEY, HMAC_KEY, iv=ZERO_IV).encrypt(plaintext)

        out = bytearray()
        encryptor = Encryptor(ENC_KEY, HMAC_KEY, iv=ZERO_IV)
        for i in range(len(plaintext)):
            encryptor.update(plaintext[i : i + 1], out.extend)
        encryptor.final(out.extend)
        assert bytes(out) == whole

    def test_state_transitions(self):
        """HEADER_PENDING -> STREAMING -> FINALIZED."""
        encryptor = Encryptor(ENC_KEY, HMAC_KEY)
        assert encryptor.state is State.HEADER_PENDING
        encryptor.update(b"x", lambda chunk: None)
        assert encryptor.state is State.STREAMING
        encryptor.final(lambda chunk: None)
        assert encryptor.state is State.FINALIZED

    def test_no_calls_after_final(self):
        """Instance is consumed by final()."""
        encryptor = Encryptor(ENC_KEY, HMAC_KEY)
        encryptor.final(lambda chunk: None)
        with pytest.raises(RuntimeError):
            encryptor.update(b"late", lambda chunk: None)
        with pytest.raises(RuntimeError):
            encryptor.final(lambda chunk: None)

    def test_bad_key_length(self):
        """Keys must be 32 bytes."""
        with pytest.raises(ValueError):
            Encryptor(b"short", HMAC_KEY)
        with pytest.raises(ValueError):
            Encryptor(ENC_KEY, b"short")

    def test_password_header(self):
        """Password mode writes both salts and the IV."""
        enc_salt, hmac_salt, iv = b"\x01" * 8, b"\x02" * 8, b"\x03" * 16
        encryptor = Encryptor.from_password("pw", enc_salt, hmac_salt, iv)
        assert encryptor.header == PasswordHeader(enc_salt, hmac_salt, iv)
        envelope = encryptor.encrypt(b"")
        assert envelope[:34] == b"\x03\x01" + enc_salt + hmac_salt + iv

    def test_password_known_answer(self):
        """AES key comes from the first salt, HMAC key from the second."""
        password = "thepassword"
        enc_salt, hmac_salt = bytes(range(8)), bytes(range(8, 16))
        iv = bytes(range(16, 32))
        plaintext = b"password mode, fixed salts"

        envelope = Encryptor.from_password(password, enc_salt, hmac_salt, iv).encrypt(plaintext)

        enc_key = hashlib.pbkdf2_hmac("sha1", password.encode(), enc_salt, 10_000, 32)
        hmac_key = hashlib.pbkdf2_hmac("sha1", password.encode(), hmac_salt, 10_000, 32)
        header = b"\x03\x01" + enc_salt + hmac_salt + iv
        padder = padding.PKCS7(128).padder()
        padded = padder.update(plaintext) + padder.finalize()
        raw = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
        ciphertext = raw.update(padded) + raw.finalize()
        tag = hmac.new(hmac_key, header + ciphertext, hashlib.sha256).digest()

        assert envelope == header + ciphertext + tag
        assert decrypt_password_envelope(envelope, password) == plaintext

    def test_empty_password_rejected(self):
        with pytest.raises(ValueError):
            Encryptor.from_password("")


class TestDecryptor:
    """Test Decryptor class."""

    @pytest.mark.parametrize("length", [0, 1, 15, 16, 17, 100, 4096])
    def test_key_roundtrip(self, length):
        """decrypt(encrypt(P)) == P."""
        plaintext = os.urandom(length)
        envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(plaintext)
        assert decrypt_key_envelope(envelope) == plaintext

    def test_password_single_byte_scenario(self):
        """'A' under a password is 82 bytes, decrypts, and rejects a bumped tag."""
        envelope = Encryptor.from_password("thepassword").encrypt(b"A")
        assert len(envelope) == 34 + 16 + 32
        assert decrypt_password_envelope(envelope, "thepassword") == b"A"

        tampered = bytearray(envelope)
        tampered[-1] = (tampered[-1] + 1) % 256
        with pytest.raises(AuthenticationError):
            decrypt_password_envelope(bytes(tampered), "thepassword")

    def test_wrong_password(self):
        """Wrong password fails the MAC check."""
        envelope = Encryptor.from_password("correct").encrypt(b"secret")
        with pytest.raises(AuthenticationError):
            decrypt_password_envelope(envelope, "wrong")

    def test_wrong_hmac_key(self):
        """Wrong HMAC key fails the MAC check."""
        envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"secret")
        with pytest.raises(AuthenticationError):
            decrypt_key_envelope(envelope, hmac_key=os.urandom(32))

    def test_wrong_key_pair(self):
        """Wrong keys fail, never return garbage silently."""
        envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"secret")
        with pytest.raises(AuthenticationError):
            decrypt_key_envelope(envelope, enc_key=os.urandom(32), hmac_key=os.urandom(32))

    def test_every_body_bit_flip_fails(self):
        """Flipping any bit of ciphertext or tag is detected."""
        envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"sixteen byte msg!")
        for pos in range(18, len(envelope)):
            for bit in range(8):
                tampered = bytearray(envelope)
                tampered[pos] ^= 1 << bit
                with pytest.raises(AuthenticationError):
                    decrypt_key_envelope(bytes(tampered))

    def test_iv_flip_fails(self):
        """The header is authenticated too."""
        envelope = bytearray(Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"data"))
        envelope[5] ^= 0x80
        with pytest.raises(AuthenticationError):
            decrypt_key_envelope(bytes(envelope))

    def test_streaming_equivalence(self):
        """Arbitrary and single-byte splits give the same plaintext."""
        plaintext = os.urandom(777)
        envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(plaintext)
        body = envelope[18:]

        for chunks in (list(split_randomly(body, 7)), [body[i : i + 1] for i in range(len(body))]):
            out = bytearray()
            decryptor = Decryptor(ENC_KEY, HMAC_KEY, envelope[:18])
            for chunk in chunks:
                decryptor.update(chunk, out.extend)
            decryptor.final(out.extend)
            assert bytes(out) == plaintext

    def test_tag_never_decrypted(self):
        """update() never emits more than the ciphertext allows."""
        plaintext = os.urandom(64)
        envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(plaintext)
        out = bytearray()
        decryptor = Decryptor(ENC_KEY, HMAC_KEY, envelope[:18])
        decryptor.update(envelope[18:], out.extend)
        # ciphertext is 80 bytes; the padding block is held back
        assert bytes(out) == plaintext[:64]
        decryptor.final(out.extend)
        assert bytes(out) == plaintext

    def test_final_emits_nothing_on_failure(self):
        """A failed final() stages no plaintext to the sink."""
        envelope = bytearray(Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"x" * 10))
        envelope[-1] ^= 0x01
        decryptor = Decryptor(ENC_KEY, HMAC_KEY, bytes(envelope[:18]))
        decryptor.update(bytes(envelope[18:]), lambda chunk: None)
        emitted = []
        with pytest.raises(AuthenticationError):
            decryptor.final(emitted.append)
        assert emitted == []

    def test_truncated_envelope(self):
        """Fewer than 32 bytes after the header is too short."""
        envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"")
        with pytest.raises(EnvelopeTooShortError):
            decrypt_key_envelope(envelope[:18 + 20])
        with pytest.raises(InvalidFormatError):
            decrypt_key_envelope(envelope[:18])

    def test_valid_tag_bad_padding(self):
        """Authentic but unpadded body is a DecodeError."""
        header = b"\x03\x00" + ZERO_IV
        tag = hmac.new(HMAC_KEY, header, hashlib.sha256).digest()
        with pytest.raises(DecodeError):
            Decryptor(ENC_KEY, HMAC_KEY, header).decrypt(tag)

    def test_wrong_version(self):
        """Version byte must be 3."""
        header = b"\x02\x00" + ZERO_IV
        with pytest.raises(InvalidFormatError):
            Decryptor(ENC_KEY, HMAC_KEY, header)

    def test_mode_mismatch(self):
        """Key decryptor rejects password headers and vice versa."""
        password_envelope = Encryptor.from_password("pw").encrypt(b"x")
        with pytest.raises(InvalidFormatError):
            Decryptor(ENC_KEY, HMAC_KEY, password_envelope[:18])

        key_envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"x")
        with pytest.raises(InvalidFormatError):
            Decryptor.from_password("pw", key_envelope[:34])

    def test_header_length(self):
        """Header must be exactly the mode's size."""
        with pytest.raises(InvalidFormatError):
            Decryptor(ENC_KEY, HMAC_KEY, b"\x03\x00" + ZERO_IV + b"\x00")
        with pytest.raises(InvalidFormatError):
            Decryptor.from_password("pw", b"\x03\x01" + b"\x00" * 31)

    def test_empty_password(self):
        """Empty password is rejected as invalid."""
        envelope = Encryptor.from_password("pw").encrypt(b"x")
        with pytest.raises(InvalidFormatError):
            Decryptor.from_password("", envelope[:34])

    def test_parsed_header(self):
        """Decryptor exposes the decoded header."""
        decryptor = Decryptor(ENC_KEY, HMAC_KEY, b"\x03\x00" + ZERO_IV)
        assert decryptor.header == KeyHeader(iv=ZERO_IV)

    def test_no_calls_after_final(self):
        """Instance is consumed by final()."""
        envelope = Encryptor(ENC_KEY, HMAC_KEY).encrypt(b"")
        decryptor = Decryptor(ENC_KEY, HMAC_KEY, envelope[:18])
        decryptor.decrypt(envelope[18:])
        assert decryptor.state is State.FINALIZED
        with pytest.raises(RuntimeError):
            decryptor.update(b"", lambda chunk: None)
