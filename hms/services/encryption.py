"""AES-256-GCM encryption for PHI fields stored as text.

Ciphertext format is ``iv:tag:data`` with every part hex encoded.  The
key comes from ``settings.ENCRYPTION_KEY`` (64 hex chars); without one a
development key is derived from ``SECRET_KEY``.
"""
import binascii
from functools import lru_cache

from Crypto.Cipher import AES
from Crypto.Protocol.KDF import scrypt
from Crypto.Random import get_random_bytes
from django.conf import settings

IV_LENGTH = 16
KEY_LENGTH = 32


@lru_cache(maxsize=4)
def _key_for(hex_key: str, secret: str) -> bytes:
    if hex_key:
        return bytes.fromhex(hex_key)
    return scrypt(secret, b'salt', KEY_LENGTH, N=2 ** 14, r=8, p=1)


class PHICrypto:
    @staticmethod
    def _key() -> bytes:
        return _key_for(settings.ENCRYPTION_KEY or '', settings.SECRET_KEY)

    @staticmethod
    def encrypt(text: str) -> str:
        iv = get_random_bytes(IV_LENGTH)
        cipher = AES.new(PHICrypto._key(), AES.MODE_GCM, nonce=iv)
        data, tag = cipher.encrypt_and_digest(text.encode('utf-8'))
        return ':'.join(part.hex() for part in (iv, tag, data))

    @staticmethod
    def decrypt(token: str) -> str:
        parts = token.split(':')
        if len(parts) != 3:
            raise ValueError('Invalid encrypted data format')
        try:
            iv, tag, data = (bytes.fromhex(p) for p in parts)
        except (ValueError, binascii.Error) as exc:
            raise ValueError('Invalid encrypted data format') from exc
        cipher = AES.new(PHICrypto._key(), AES.MODE_GCM, nonce=iv)
        return cipher.decrypt_and_verify(data, tag).decode('utf-8')

    @staticmethod
    def is_encrypted(value) -> bool:
        if not isinstance(value, str):
            return False
        parts = value.split(':')
        return len(parts) == 3 and len(parts[0]) == IV_LENGTH * 2


def mask(value: str, visible: int = 4) -> str:
    """Return ``value`` with everything but the last ``visible`` characters starred."""
    if not value:
        return ''
    if len(value) <= visible:
        return '*' * len(value)
    return '*' * (len(value) - visible) + value[-visible:]
