"""MessageSigner — signs outbound transfer payloads as RS256 JWTs.

Peers verify our tokens against the keyset served at /transactions/jwks, so
the `kid` in every token header must match a key in published_keys().
RSASSA-PKCS1-v1_5 is deterministic: the same key and payload always produce
the same token.
"""

from __future__ import annotations

import base64
import hashlib
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from interbank_settlement.logging_config import get_logger

if TYPE_CHECKING:
    from interbank_settlement.config import Settings
    from interbank_settlement.domain.models import TransferPayload

logger = get_logger(__name__)

SIGNING_ALGORITHM = "RS256"


def key_thumbprint(public_key: rsa.RSAPublicKey) -> str:
    """Derive a stable key id from the DER-encoded public key."""
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    digest = hashlib.sha256(der).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def load_private_key(path: str | Path) -> rsa.RSAPrivateKey:
    """Load an unencrypted PEM RSA private key.

    Raises:
        ValueError: If the file does not hold an RSA private key.
    """
    key = serialization.load_pem_private_key(Path(path).read_bytes(), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError(f"{path} does not contain an RSA private key")
    return key


class MessageSigner:
    """Signs transfer payloads with this node's private key."""

    def __init__(self, private_key: rsa.RSAPrivateKey, key_id: str | None = None) -> None:
        self._private_key = private_key
        self._public_key = private_key.public_key()
        self._kid = key_id or key_thumbprint(self._public_key)

    @classmethod
    def from_settings(cls, settings: Settings) -> MessageSigner:
        """Build a signer from the configured PEM file, or an ephemeral key."""
        if settings.signing_key_path:
            private_key = load_private_key(settings.signing_key_path)
            logger.info("signer.key_loaded", path=settings.signing_key_path)
        else:
            private_key = generate_private_key()
            logger.warning(
                "signer.ephemeral_key",
                reason="signing_key_path not set; peers must refetch our JWKS after restart",
            )
        return cls(private_key, key_id=settings.signing_key_id or None)

    @property
    def key_id(self) -> str:
        return self._kid

    def sign(self, payload: TransferPayload) -> str:
        """Return a compact JWS over the payload's wire claims."""
        return jwt.encode(
            payload.to_claims(),
            self._private_key,
            algorithm=SIGNING_ALGORITHM,
            headers={"kid": self._kid},
        )

    def published_keys(self) -> dict[str, Any]:
        """Return this node's verification keyset as a JWKS document."""
        jwk = json.loads(RSAAlgorithm.to_jwk(self._public_key))
        jwk.update({"kid": self._kid, "use": "sig", "alg": SIGNING_ALGORITHM})
        return {"keys": [jwk]}
