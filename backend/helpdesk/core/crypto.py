"""
Chat frame encryption.

Frames use the OpenSSL passphrase format produced by CryptoJS
``AES.encrypt(text, passphrase)``: base64("Salted__" + salt + ciphertext),
with key and IV derived by EVP_BytesToKey (MD5, one round) and AES-256-CBC
with PKCS#7 padding. Browser clients decrypt with the same passphrase.
"""

import base64
import hashlib
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

SALT_MAGIC = b"Salted__"
KEY_LEN = 32
IV_LEN = 16


class DecryptionError(ValueError):
    pass


def _evp_bytes_to_key(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    derived = b""
    block = b""
    while len(derived) < KEY_LEN + IV_LEN:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:KEY_LEN], derived[KEY_LEN:KEY_LEN + IV_LEN]


def encrypt_message(message: str, passphrase: str) -> str:
    salt = os.urandom(8)
    key, iv = _evp_bytes_to_key(passphrase.encode("utf-8"), salt)

    padder = padding.PKCS7(128).padder()
    data = padder.update(message.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ct = encryptor.update(data) + encryptor.finalize()
    return base64.b64encode(SALT_MAGIC + salt + ct).decode("ascii")


def decrypt_message(ciphertext: str, passphrase: str) -> str:
    try:
        raw = base64.b64decode(ciphertext, validate=True)
    except (ValueError, TypeError) as e:
        raise DecryptionError("frame is not base64") from e

    if len(raw) < 32 or not raw.startswith(SALT_MAGIC) or (len(raw) - 16) % 16:
        raise DecryptionError("frame is not an OpenSSL salted ciphertext")

    salt, ct = raw[8:16], raw[16:]
    key, iv = _evp_bytes_to_key(passphrase.encode("utf-8"), salt)

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ct) + decryptor.finalize()
    try:
        unpadder = padding.PKCS7(128).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise DecryptionError("wrong key or corrupted frame") from e
