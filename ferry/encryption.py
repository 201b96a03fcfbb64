from __future__ import annotations

import hashlib
import os
from typing import BinaryIO, Optional, Tuple

from Cryptodome.Cipher import AES

from .constants import BLOCK_SIZE, KEY_SIZE, SALT_MAGIC, SALT_SIZE
from .errors import CryptoSetupError, FormatError
from .streams import Layer


PREAMBLE_SIZE = len(SALT_MAGIC) + SALT_SIZE  # == BLOCK_SIZE, both variants read 16 bytes


def derive_key(password: bytes, salt: bytes) -> Tuple[bytes, bytes]:
    """Derive (key, iv) from a password and an 8-byte salt.

    Matches ``openssl enc -aes-256-* -md sha256`` (EVP_BytesToKey, one round):
    key = SHA256(password || salt), iv = SHA256(key || password || salt)[:16].
    """
    key = hashlib.sha256(password + salt).digest()
    iv = hashlib.sha256(key + password + salt).digest()[:BLOCK_SIZE]
    return key, iv


def derive_simple_key(password: bytes) -> bytes:
    """Key for the unsalted variant; the IV travels in the clear."""
    return hashlib.sha256(password).digest()


def _new_cipher(key: bytes, iv: bytes):
    if len(key) != KEY_SIZE:
        raise CryptoSetupError(f"AES-256 key must be {KEY_SIZE} bytes, got {len(key)}")
    if len(iv) != BLOCK_SIZE:
        raise CryptoSetupError(f"IV must be {BLOCK_SIZE} bytes, got {len(iv)}")
    try:
        return AES.new(key, AES.MODE_OFB, iv=iv)
    except (ValueError, TypeError) as exc:
        raise CryptoSetupError(f"cipher setup failed: {exc}") from exc


def _read_exact(inner: BinaryIO, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        data = inner.read(n - len(buf))
        if not data:
            break
        buf += data
    return bytes(buf)


class EncryptWriter(Layer):
    """AES-256-OFB writer.

    Salted (default): writes ``Salted__`` + 8 random salt bytes, key and IV
    come from :func:`derive_key`. Unsalted: writes a random 16-byte IV, the key
    is SHA256(password) or the explicit ``key``.
    """

    def __init__(
        self,
        inner: BinaryIO,
        password: Optional[bytes] = None,
        *,
        salted: bool = True,
        key: Optional[bytes] = None,
    ):
        if salted:
            if password is None:
                raise CryptoSetupError("salted encryption needs a password")
            salt = os.urandom(SALT_SIZE)
            k, iv = derive_key(password, salt)
            preamble = SALT_MAGIC + salt
        else:
            if key is None:
                if password is None:
                    raise CryptoSetupError("encryption needs a password or a key")
                key = derive_simple_key(password)
            k = key
            iv = os.urandom(BLOCK_SIZE)
            preamble = iv
        self._cipher = _new_cipher(k, iv)
        super().__init__(inner)
        inner.write(preamble)

    def _encode(self, data: bytes) -> bytes:
        return self._cipher.encrypt(data)


class DecryptReader(Layer):
    """Inverse of :class:`EncryptWriter`; consumes the preamble on construction."""

    def __init__(
        self,
        inner: BinaryIO,
        password: Optional[bytes] = None,
        *,
        salted: bool = True,
        key: Optional[bytes] = None,
    ):
        preamble = _read_exact(inner, PREAMBLE_SIZE)
        if len(preamble) != PREAMBLE_SIZE:
            raise FormatError(
                f"encrypted stream truncated: expected {PREAMBLE_SIZE} preamble bytes, got {len(preamble)}"
            )
        if salted:
            # See http://justsolve.archiveteam.org/wiki/OpenSSL_salted_format
            if preamble[: len(SALT_MAGIC)] != SALT_MAGIC:
                raise FormatError("Stream does not start with 'Salted__'")
            if password is None:
                raise CryptoSetupError("salted decryption needs a password")
            k, iv = derive_key(password, preamble[len(SALT_MAGIC):])
        else:
            if key is None:
                if password is None:
                    raise CryptoSetupError("decryption needs a password or a key")
                key = derive_simple_key(password)
            k, iv = key, preamble
        self._cipher = _new_cipher(k, iv)
        super().__init__(inner)

    def _decode(self, data: bytes) -> bytes:
        return self._cipher.decrypt(data)
