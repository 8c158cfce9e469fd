"""
core/keys.py -- RSA key material for credential signing.

Credentials are signed with RS256: the private key mints, the public key
verifies. Only the auth service needs the private key; any downstream
service can validate a credential with the public key alone.
"""

from __future__ import annotations

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_rsa_keypair(key_size: int = 2048) -> tuple[str, str]:
    """Generate an RSA key pair. Returns (private_pem, public_pem) as text.

    The private key is exported as unencrypted PKCS8 -- protect the file with
    filesystem permissions when writing it to disk.
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem.decode("utf-8"), public_pem.decode("utf-8")
