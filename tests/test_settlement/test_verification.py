"""Tests for MessageVerifier: signature checks, key selection and JWKS caching."""

from __future__ import annotations

import pytest

from conftest import tamper
from interbank_settlement.domain.exceptions import (
    MalformedTokenError,
    SignatureError,
    UpstreamError,
)
from interbank_settlement.domain.models import TransferPayload
from interbank_settlement.settlement.signing import MessageSigner
from interbank_settlement.settlement.verification import MessageVerifier

JWKS_URL = "http://bf7.test/transactions/jwks"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestDecodeUnverified:
    def test_reads_claims(self, peer_signer: MessageSigner, transfer_payload) -> None:
        claims = MessageVerifier.decode_unverified(peer_signer.sign(transfer_payload))
        assert claims["senderName"] == "Jane Doe"

    @pytest.mark.parametrize("token", [None, "", 42, "not-a-jwt", "a.b.c"])
    def test_garbage_is_malformed(self, token) -> None:
        with pytest.raises(MalformedTokenError):
            MessageVerifier.decode_unverified(token)


class TestVerify:
    @pytest.mark.asyncio
    async def test_valid_signature(
        self, http_client, peer_signer: MessageSigner, transfer_payload: TransferPayload
    ) -> None:
        verifier = MessageVerifier(http_client)
        token = peer_signer.sign(transfer_payload)

        claims = verifier.verify(token, peer_signer.published_keys()["keys"])

        assert TransferPayload.from_claims(claims) == transfer_payload

    @pytest.mark.asyncio
    async def test_tampered_payload_is_rejected(
        self, http_client, peer_signer: MessageSigner, transfer_payload: TransferPayload
    ) -> None:
        verifier = MessageVerifier(http_client)
        forged = tamper(peer_signer.sign(transfer_payload), amount=1_000_000)

        with pytest.raises(SignatureError, match="Signature verification failed"):
            verifier.verify(forged, peer_signer.published_keys()["keys"])

    @pytest.mark.asyncio
    async def test_wrong_key_is_rejected(
        self,
        http_client,
        peer_signer: MessageSigner,
        rogue_signer: MessageSigner,
        transfer_payload: TransferPayload,
    ) -> None:
        verifier = MessageVerifier(http_client)
        token = rogue_signer.sign(transfer_payload)

        with pytest.raises(SignatureError):
            verifier.verify(token, peer_signer.published_keys()["keys"])

    @pytest.mark.asyncio
    async def test_unknown_kid_is_rejected(
        self, http_client, our_signer: MessageSigner, peer_signer: MessageSigner, transfer_payload
    ) -> None:
        verifier = MessageVerifier(http_client)
        token = our_signer.sign(transfer_payload)

        with pytest.raises(SignatureError, match="unknown 'kid'"):
            verifier.verify(token, peer_signer.published_keys()["keys"])

    @pytest.mark.asyncio
    async def test_empty_keyset_is_rejected(
        self, http_client, peer_signer: MessageSigner, transfer_payload
    ) -> None:
        with pytest.raises(SignatureError, match="no keys"):
            MessageVerifier(http_client).verify(peer_signer.sign(transfer_payload), [])


class TestFetchVerificationKey:
    @pytest.mark.asyncio
    async def test_keyset_is_cached_until_ttl(
        self, router, http_client, peer_signer: MessageSigner
    ) -> None:
        router.json("GET", JWKS_URL, peer_signer.published_keys())
        clock = FakeClock()
        verifier = MessageVerifier(http_client, cache_ttl=60, clock=clock)

        await verifier.fetch_verification_key(JWKS_URL)
        await verifier.fetch_verification_key(JWKS_URL)
        assert len(router.calls("GET", JWKS_URL)) == 1

        clock.now += 61
        await verifier.fetch_verification_key(JWKS_URL)
        assert len(router.calls("GET", JWKS_URL)) == 2

    @pytest.mark.asyncio
    async def test_fetch_failure_is_upstream_error(self, router, http_client) -> None:
        router.json("GET", JWKS_URL, {"error": "down"}, status_code=500)

        with pytest.raises(UpstreamError) as exc_info:
            await MessageVerifier(http_client).fetch_verification_key(JWKS_URL)
        assert exc_info.value.upstream == "jwks"

    @pytest.mark.asyncio
    async def test_bare_key_document_is_accepted(
        self, router, http_client, peer_signer: MessageSigner
    ) -> None:
        router.json("GET", JWKS_URL, peer_signer.published_keys()["keys"][0])

        keys = await MessageVerifier(http_client).fetch_verification_key(JWKS_URL)
        assert keys[0]["kid"] == peer_signer.key_id


class TestVerifyFrom:
    @pytest.mark.asyncio
    async def test_fetches_and_verifies(
        self, router, http_client, peer_signer: MessageSigner, transfer_payload
    ) -> None:
        router.json("GET", JWKS_URL, peer_signer.published_keys())

        claims = await MessageVerifier(http_client).verify_from(
            peer_signer.sign(transfer_payload), JWKS_URL
        )
        assert claims["accountTo"] == "bf5000111"

    @pytest.mark.asyncio
    async def test_rotated_key_triggers_one_refetch(
        self,
        router,
        http_client,
        peer_signer: MessageSigner,
        rogue_signer: MessageSigner,
        transfer_payload,
    ) -> None:
        # Cache holds the old key; the peer has since rotated to a new one.
        router.json("GET", JWKS_URL, rogue_signer.published_keys())
        verifier = MessageVerifier(http_client)
        await verifier.fetch_verification_key(JWKS_URL)

        router.json("GET", JWKS_URL, peer_signer.published_keys())
        claims = await verifier.verify_from(peer_signer.sign(transfer_payload), JWKS_URL)

        assert claims["senderName"] == "Jane Doe"
        assert len(router.calls("GET", JWKS_URL)) == 2

    @pytest.mark.asyncio
    async def test_fresh_keyset_failure_is_not_retried(
        self,
        router,
        http_client,
        peer_signer: MessageSigner,
        rogue_signer: MessageSigner,
        transfer_payload,
    ) -> None:
        router.json("GET", JWKS_URL, peer_signer.published_keys())

        with pytest.raises(SignatureError):
            await MessageVerifier(http_client).verify_from(
                rogue_signer.sign(transfer_payload), JWKS_URL
            )
        assert len(router.calls("GET", JWKS_URL)) == 1
