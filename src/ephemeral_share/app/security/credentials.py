"""Share password hashing and verification.

Passwords are run through scrypt (``cryptography``) with a random
per-password salt. Only the encoded digest is stored:

    scrypt$<log2_n>$<r>$<p>$<salt_b64>$<key_b64>

Security invariants:
  - The raw password is never returned, logged or stored.
  - Verification uses the KDF's constant-time ``verify``.
  - Unparseable digests verify as False rather than raising.
"""

from __future__ import annotations

import base64
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

_SCHEME = 'scrypt'
_SALT_BYTES = 16
_KEY_LENGTH = 32


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + '=' * (-len(text) % 4))


@dataclass(frozen=True, slots=True)
class ScryptCredentialVerifier:
    """CredentialVerifier backed by scrypt.

    Attributes:
        log2_n: CPU/memory cost exponent (n = 2**log2_n).
        r: Block size.
        p: Parallelization.
    """

    log2_n: int = 14
    r: int = 8
    p: int = 1

    def _kdf(self, salt: bytes, log2_n: int, r: int, p: int) -> Scrypt:
        return Scrypt(salt=salt, length=_KEY_LENGTH, n=2 ** log2_n, r=r, p=p)

    def hash(self, secret: str) -> str:
        salt = os.urandom(_SALT_BYTES)
        key = self._kdf(salt, self.log2_n, self.r, self.p).derive(secret.encode('utf-8'))
        return '$'.join((
            _SCHEME,
            str(self.log2_n),
            str(self.r),
            str(self.p),
            _b64encode(salt),
            _b64encode(key),
        ))

    def verify(self, secret: str, digest: str) -> bool:
        try:
            scheme, log2_n, r, p, salt_b64, key_b64 = digest.split('$')
            if scheme != _SCHEME:
                return False
            kdf = self._kdf(_b64decode(salt_b64), int(log2_n), int(r), int(p))
            expected = _b64decode(key_b64)
        except ValueError:
            return False
        try:
            kdf.verify(secret.encode('utf-8'), expected)
        except InvalidKey:
            return False
        return True
