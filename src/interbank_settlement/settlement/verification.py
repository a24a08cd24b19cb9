"""MessageVerifier — checks inbound transfer tokens against the sender's JWKS.

Verification flow:
    1. decode_unverified() reads the claims so the caller can find the
       sender bank (its prefix is inside the payload).
    2. fetch_verification_key() loads that bank's keyset, cached per URL
       for a fixed TTL.
    3. verify() picks the key by `kid` and checks the RS256 signature.

Every failure in step 3 is one SignatureError; a token is never partially
trusted.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import httpx
import jwt
from jwt.algorithms import RSAAlgorithm

from interbank_settlement.domain.exceptions import (
    MalformedTokenError,
    SignatureError,
    UpstreamError,
)
from interbank_settlement.logging_config import get_logger
from interbank_settlement.settlement.signing import SIGNING_ALGORITHM

logger = get_logger(__name__)


def _select_key(keyset: list[dict[str, Any]], kid: str | None) -> dict[str, Any]:
    if not keyset:
        raise SignatureError("sender bank publishes no keys")
    if kid is None:
        if len(keyset) == 1:
            return keyset[0]
        raise SignatureError("token header has no 'kid' and the keyset has several keys")
    for candidate in keyset:
        if candidate.get("kid") == kid:
            return candidate
    raise SignatureError(f"unknown 'kid' {kid}")


def _keys_from_document(document: Any) -> list[dict[str, Any]]:
    """Accept a JWKS ({"keys": [...]}), a bare key list, or a single JWK."""
    if isinstance(document, dict) and "keys" in document:
        keys = document["keys"]
    elif isinstance(document, dict):
        keys = [document]
    else:
        keys = document
    if not isinstance(keys, list) or not all(isinstance(k, dict) for k in keys):
        raise ValueError("JWKS document must hold a list of key objects")
    return keys


class MessageVerifier:
    """Fetches peer keysets and verifies tokens signed by peer banks."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache_ttl: float = 300.0,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._cache_ttl = cache_ttl
        self._timeout = timeout
        self._clock = clock
        self._cache: dict[str, tuple[float, list[dict[str, Any]]]] = {}

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _cached(self, jwks_url: str) -> list[dict[str, Any]] | None:
        entry = self._cache.get(jwks_url)
        if entry is None:
            return None
        expires_at, keys = entry
        if self._clock() >= expires_at:
            del self._cache[jwks_url]
            return None
        return keys

    def invalidate(self, jwks_url: str) -> None:
        """Forget a cached keyset, e.g. after the peer rotated its key."""
        self._cache.pop(jwks_url, None)

    async def fetch_verification_key(
        self, jwks_url: str, use_cache: bool = True
    ) -> list[dict[str, Any]]:
        """Return the keyset published at `jwks_url`.

        Raises:
            UpstreamError: If the keyset cannot be fetched or parsed.
        """
        if use_cache:
            cached = self._cached(jwks_url)
            if cached is not None:
                return cached

        logger.info("verifier.fetching_jwks", jwks_url=jwks_url)
        try:
            response = await self._client.get(jwks_url, timeout=self._timeout)
            response.raise_for_status()
            keys = _keys_from_document(response.json())
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"Fetching verification keys from {jwks_url} failed: {exc!r}",
                upstream="jwks",
            ) from exc
        except ValueError as exc:
            raise UpstreamError(
                f"Invalid verification keyset at {jwks_url}: {exc}",
                upstream="jwks",
            ) from exc

        if self._cache_ttl > 0:
            self._cache[jwks_url] = (self._clock() + self._cache_ttl, keys)
        return keys

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    @staticmethod
    def decode_unverified(token: Any) -> dict[str, Any]:
        """Read a token's claims WITHOUT checking the signature.

        Only for routing: the result must not be trusted until verify().

        Raises:
            MalformedTokenError: If the token is not a decodable JWT.
        """
        if token is None or token == "":
            raise MalformedTokenError("Missing jwt")
        if not isinstance(token, str):
            raise MalformedTokenError(f"jwt must be a string, got {type(token).__name__}")
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise MalformedTokenError(f"Undecodable jwt: {exc}") from exc

    def verify(self, token: str, keyset: list[dict[str, Any]]) -> dict[str, Any]:
        """Check the token's signature against a keyset and return its claims.

        Raises:
            SignatureError: On any integrity or signature failure.
        """
        try:
            header = jwt.get_unverified_header(token)
            if header.get("alg") != SIGNING_ALGORITHM:
                raise SignatureError(f"unsupported alg {header.get('alg')!r}")
            key_data = _select_key(keyset, header.get("kid"))
            public_key = RSAAlgorithm.from_jwk(json.dumps(key_data))
            return jwt.decode(
                token,
                public_key,
                algorithms=[SIGNING_ALGORITHM],
                options={"verify_aud": False},
            )
        except SignatureError:
            raise
        except jwt.PyJWTError as exc:
            raise SignatureError(str(exc)) from exc
        except (ValueError, TypeError, KeyError) as exc:
            raise SignatureError(f"unusable key or token: {exc}") from exc

    async def verify_from(self, token: str, jwks_url: str) -> dict[str, Any]:
        """Fetch (cached) keys and verify; refetch once if a cached keyset fails.

        Raises:
            UpstreamError: If the keyset cannot be fetched.
            SignatureError: If the token does not verify against fresh keys.
        """
        was_cached = self._cached(jwks_url) is not None
        keyset = await self.fetch_verification_key(jwks_url)
        try:
            return self.verify(token, keyset)
        except SignatureError:
            if not was_cached:
                raise
            logger.info("verifier.refetch_after_failure", jwks_url=jwks_url)
            self.invalidate(jwks_url)
            keyset = await self.fetch_verification_key(jwks_url, use_cache=False)
            return self.verify(token, keyset)
