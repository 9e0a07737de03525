"""Credential handling for password-protected shares."""

from .credentials import ScryptCredentialVerifier

__all__ = [
    'ScryptCredentialVerifier',
]
