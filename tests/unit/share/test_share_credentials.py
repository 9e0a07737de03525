"""Tests for scrypt password digests."""

from __future__ import annotations

import pytest

from ephemeral_share.app.protocols import CredentialVerifier
from ephemeral_share.app.security import ScryptCredentialVerifier


@pytest.fixture
def fast_verifier():
    return ScryptCredentialVerifier(log2_n=4)


def test_satisfies_protocol(fast_verifier):
    assert isinstance(fast_verifier, CredentialVerifier)


def test_round_trip(fast_verifier):
    digest = fast_verifier.hash('hunter2')
    assert fast_verifier.verify('hunter2', digest)
    assert not fast_verifier.verify('hunter3', digest)


def test_digest_never_contains_secret(fast_verifier):
    digest = fast_verifier.hash('correct horse battery staple')
    assert 'correct horse' not in digest
    assert digest.startswith('scrypt$4$8$1$')


def test_salted(fast_verifier):
    assert fast_verifier.hash('same') != fast_verifier.hash('same')


def test_cost_parameters_read_from_digest(fast_verifier):
    digest = ScryptCredentialVerifier(log2_n=5, r=4, p=1).hash('pw1')
    assert fast_verifier.verify('pw1', digest)


@pytest.mark.parametrize('digest', [
    '',
    'plaintext',
    'bcrypt$4$8$1$c2FsdA$a2V5',
    'scrypt$x$8$1$c2FsdA$a2V5',
    'scrypt$4$8$1$!!!$a2V5',
])
def test_malformed_digest_is_false(fast_verifier, digest):
    assert fast_verifier.verify('anything', digest) is False
