"""Streaming AES-256-CBC encryption compatible with ``openssl enc``.

The ciphertext layout is the one ``openssl enc -aes-256-cbc -salt -pbkdf2``
writes, so an uploaded image can be restored with::

    openssl enc -d -aes-256-cbc -pbkdf2 -in image.img.enc -out image.img

Layout:
    b"Salted__" | 8-byte random salt | AES-256-CBC(PKCS#7 padded plaintext)

Key and IV are derived together from the passphrase with
PBKDF2-HMAC-SHA256 (48 bytes: 32 key, 16 IV), 10000 iterations by default,
matching OpenSSL's ``-pbkdf2`` defaults. A fresh salt per run means two
runs over identical plaintext never produce identical ciphertext.
"""

from __future__ import annotations

import os
from typing import Callable, Iterable, Iterator

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from forensic_imager.config.settings import DEFAULT_PBKDF2_ITERATIONS
from forensic_imager.storage.exceptions import EncryptionError

MAGIC = b"Salted__"
SALT_SIZE = 8
KEY_SIZE = 32
IV_SIZE = 16
HEADER_SIZE = len(MAGIC) + SALT_SIZE
BLOCK_BITS = algorithms.AES.block_size


def derive_key_iv(
    passphrase: str | bytes, salt: bytes, iterations: int = DEFAULT_PBKDF2_ITERATIONS
) -> tuple[bytes, bytes]:
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    if not passphrase:
        raise EncryptionError("Encryption passphrase is empty")
    if len(salt) != SALT_SIZE:
        raise EncryptionError(f"Salt must be {SALT_SIZE} bytes")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE + IV_SIZE,
        salt=salt,
        iterations=iterations,
    )
    material = kdf.derive(passphrase)
    return material[:KEY_SIZE], material[KEY_SIZE:]


class OpenSSLEncryptor:
    """Encrypt a chunk stream; one instance per run."""

    def __init__(
        self,
        passphrase: str | bytes,
        iterations: int = DEFAULT_PBKDF2_ITERATIONS,
        salt_factory: Callable[[int], bytes] = os.urandom,
    ):
        self._passphrase = passphrase
        self.iterations = iterations
        self._salt_factory = salt_factory

    def transform(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        """Yield the salted header, then ciphertext for each input chunk.

        Raises:
            EncryptionError: If key derivation or the cipher fails
        """
        try:
            salt = self._salt_factory(SALT_SIZE)
            key, iv = derive_key_iv(self._passphrase, salt, self.iterations)
            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            padder = padding.PKCS7(BLOCK_BITS).padder()
        except (ValueError, TypeError, InvalidKey) as error:
            raise EncryptionError(f"Cipher setup failed: {error}") from error

        yield MAGIC + salt
        for chunk in chunks:
            try:
                data = encryptor.update(padder.update(chunk))
            except (ValueError, TypeError) as error:
                raise EncryptionError(f"Encryption failed: {error}") from error
            if data:
                yield data
        try:
            tail = encryptor.update(padder.finalize()) + encryptor.finalize()
        except (ValueError, TypeError) as error:
            raise EncryptionError(f"Encryption failed: {error}") from error
        yield tail


def decrypt_chunks(
    chunks: Iterable[bytes],
    passphrase: str | bytes,
    iterations: int = DEFAULT_PBKDF2_ITERATIONS,
) -> Iterator[bytes]:
    """Inverse of ``OpenSSLEncryptor.transform`` for restoring an image."""
    stream = iter(chunks)
    header = b""
    for chunk in stream:
        header += chunk
        if len(header) >= HEADER_SIZE:
            break
    if len(header) < HEADER_SIZE or not header.startswith(MAGIC):
        raise EncryptionError("Missing OpenSSL salted header")

    salt = header[len(MAGIC):HEADER_SIZE]
    key, iv = derive_key_iv(passphrase, salt, iterations)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    unpadder = padding.PKCS7(BLOCK_BITS).unpadder()

    def feed(data: bytes) -> bytes:
        return unpadder.update(decryptor.update(data))

    try:
        rest = header[HEADER_SIZE:]
        if rest:
            out = feed(rest)
            if out:
                yield out
        for chunk in stream:
            out = feed(chunk)
            if out:
                yield out
        yield unpadder.update(decryptor.finalize()) + unpadder.finalize()
    except ValueError as error:
        raise EncryptionError(f"Decryption failed: {error}") from error
