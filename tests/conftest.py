"""Shared test fixtures for the interbank settlement test suite.

Provides:
    - A throwaway SQLite database (aiosqlite) with all tables created
    - RSA signers for this bank and for peers
    - Registry bank entries and an httpx MockTransport router
    - Factory functions for accounts and transactions
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from interbank_settlement.domain.models import Bank, TransferPayload
from interbank_settlement.infrastructure.database.orm_models import (
    Account,
    Base,
    Transaction,
    UserSession,
)
from interbank_settlement.settlement.signing import MessageSigner, generate_private_key

REGISTRY_URL = "http://registry.test"
OUR_PREFIX = "bf5"
PEER_PREFIX = "bf7"

# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def our_signer() -> MessageSigner:
    return MessageSigner(generate_private_key(), key_id="bf5-key-1")


@pytest.fixture(scope="session")
def peer_signer() -> MessageSigner:
    return MessageSigner(generate_private_key(), key_id="bf7-key-1")


@pytest.fixture(scope="session")
def rogue_signer() -> MessageSigner:
    """Signs with a key nobody publishes, under the peer's kid."""
    return MessageSigner(generate_private_key(), key_id="bf7-key-1")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def bank_entry(prefix: str, name: str | None = None) -> dict:
    """One element of the registry's /banks array."""
    return {
        "name": name or f"Bank {prefix}",
        "bankPrefix": prefix,
        "transactionUrl": f"http://{prefix}.test/transactions/b2b",
        "jwksUrl": f"http://{prefix}.test/transactions/jwks",
        "owners": "Team",
    }


@pytest.fixture
def registry_banks() -> list[dict]:
    return [bank_entry(OUR_PREFIX, "Our Bank"), bank_entry(PEER_PREFIX, "Peer Bank")]


@pytest.fixture
def peer_bank() -> Bank:
    return Bank.from_registry(bank_entry(PEER_PREFIX, "Peer Bank"))


def _without_query(url: httpx.URL) -> str:
    return str(url).split("?", 1)[0]


class MockRouter:
    """Routes MockTransport requests by "METHOD url-without-query" and records them."""

    def __init__(self) -> None:
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[f"{method} {url}"] = handler

    def json(self, method: str, url: str, body: object, status_code: int = 200) -> None:
        self.add(method, url, lambda request: httpx.Response(status_code, json=body))

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and _without_query(r.url) == url
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.method} {_without_query(request.url)}"
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"error": f"no route for {key}"})
        return handler(request)


@pytest.fixture
def router() -> MockRouter:
    return MockRouter()


@pytest_asyncio.fixture
async def http_client(router: MockRouter):
    async with httpx.AsyncClient(transport=httpx.MockTransport(router)) as client:
        yield client


def posted_jwt(request: httpx.Request) -> str:
    return json.loads(request.content)["jwt"]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def add_account(session_factory):
    """Insert an account and return it."""

    async def _add(
        number: str = "bf5000111",
        user_id: str = "user-1",
        owner_name: str = "John Smith",
        currency: str = "EUR",
        balance: int = 10_000,
    ) -> Account:
        account = Account(
            number=number,
            user_id=user_id,
            owner_name=owner_name,
            currency=currency,
            balance=balance,
        )
        async with session_factory() as session:
            session.add(account)
            await session.commit()
        return account

    return _add


@pytest.fixture
def add_session_token(session_factory):
    async def _add(token: str = "session-token", user_id: str = "user-1") -> None:
        async with session_factory() as session:
            session.add(UserSession(token=token, user_id=user_id))
            await session.commit()

    return _add


@pytest.fixture
def add_transaction(session_factory):
    """Insert a transaction (outbound Pending by default) and return it."""

    async def _add(**overrides) -> Transaction:
        values = {
            "direction": "outbound",
            "account_from": "bf5000111",
            "account_to": "bf7000222",
            "sender_name": "John Smith",
            "amount": 1000,
            "currency": "EUR",
            "explanation": "Rent",
            "status": "Pending",
            "status_details": "",
        }
        values.update(overrides)
        transaction = Transaction(**values)
        async with session_factory() as session:
            session.add(transaction)
            await session.commit()
        return transaction

    return _add


@pytest.fixture
def transfer_payload() -> TransferPayload:
    """A transfer from the peer bank (bf7) to an account at this bank (bf5)."""
    return TransferPayload(
        account_from="bf7000222",
        account_to="bf5000111",
        amount=1000,
        currency="EUR",
        explanation="Invoice 42",
        sender_name="Jane Doe",
    )


def tamper(token: str, **changes) -> str:
    """Re-encode a token's payload with `changes` but keep the original signature."""
    header, payload, signature = token.split(".")
    claims = json.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)))
    claims.update(changes)
    forged = base64.urlsafe_b64encode(json.dumps(claims, separators=(",", ":")).encode())
    return f"{header}.{forged.rstrip(b'=').decode('ascii')}.{signature}"
