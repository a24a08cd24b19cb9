"""BankDirectory — routing-prefix lookup backed by the central registry.

The directory holds an immutable snapshot of the registry's bank list. A
refresh builds the next snapshot off to the side and publishes it with a
single assignment, so a concurrent lookup sees either the old generation or
the new one, never a half-emptied table.

Lookup never does I/O. resolve() refreshes exactly once on a miss, which
makes a stale directory heal itself the first time an unknown prefix shows up.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from interbank_settlement.domain.exceptions import BankNotFoundError, UpstreamError
from interbank_settlement.domain.models import Bank
from interbank_settlement.infrastructure.database.repositories import BankRepository
from interbank_settlement.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from interbank_settlement.config import Settings

logger = get_logger(__name__)


class BankDirectory:
    """Point-in-time cache of the central registry keyed by bank prefix."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        registry_url: str,
        api_key: str,
        timeout: float = 5.0,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        """
        Args:
            client: Shared HTTP client used for registry calls.
            registry_url: Base URL of the central registry (no trailing /banks).
            api_key: Value of the Api-Key header the registry expects.
            timeout: Per-request timeout in seconds.
            session_factory: When given, each published snapshot is also
                persisted to the banks table so the next start is warm.
        """
        self._client = client
        self._registry_url = registry_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._session_factory = session_factory
        self._banks: Mapping[str, Bank] = MappingProxyType({})
        self._generation = 0
        self._refresh_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> BankDirectory:
        return cls(
            client=client,
            registry_url=settings.registry_url,
            api_key=settings.registry_api_key,
            timeout=settings.registry_timeout_seconds,
            session_factory=session_factory,
        )

    @property
    def generation(self) -> int:
        """Number of snapshots published so far (0 = never loaded)."""
        return self._generation

    def __len__(self) -> int:
        return len(self._banks)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def lookup(self, bank_prefix: str) -> Bank | None:
        """Return the bank for a prefix from the current snapshot, or None."""
        return self._banks.get(bank_prefix)

    async def resolve(self, bank_prefix: str) -> Bank:
        """Lookup, refreshing once from the registry on a miss.

        Raises:
            UpstreamError: The refresh failed; the registry error is wrapped.
            BankNotFoundError: The prefix is still unknown after the refresh.
        """
        bank = self.lookup(bank_prefix)
        if bank is not None:
            return bank

        logger.info("directory.miss", bank_prefix=bank_prefix, generation=self._generation)
        await self.refresh()

        bank = self.lookup(bank_prefix)
        if bank is None:
            raise BankNotFoundError(bank_prefix)
        return bank

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def warm(self, banks: Iterable[Bank]) -> None:
        """Publish a snapshot without contacting the registry (startup)."""
        self._publish(banks)
        logger.info("directory.warmed", banks=len(self._banks))

    async def refresh(self) -> int:
        """Replace the snapshot with the registry's current bank list.

        Returns:
            The number of banks in the new snapshot.

        Raises:
            UpstreamError: On transport failure, non-2xx status or a body that
                is not a list of bank objects. The old snapshot stays published.
        """
        async with self._refresh_lock:
            banks = await self._fetch()
            self._publish(banks)
            logger.info(
                "directory.refreshed",
                banks=len(self._banks),
                generation=self._generation,
            )
            if self._session_factory is not None:
                await self._persist(banks)
            return len(self._banks)

    def _publish(self, banks: Iterable[Bank]) -> None:
        snapshot = {bank.bank_prefix: bank for bank in banks}
        self._banks = MappingProxyType(snapshot)
        self._generation += 1

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get_banks(self) -> httpx.Response:
        """GET the bank list, retrying connection-level failures only."""
        return await self._client.get(
            f"{self._registry_url}/banks",
            headers={"Api-Key": self._api_key},
            timeout=self._timeout,
        )

    async def _fetch(self) -> list[Bank]:
        try:
            response = await self._get_banks()
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "directory.registry_error",
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            raise UpstreamError(
                f"Central registry returned {exc.response.status_code}: "
                f"{exc.response.text[:500]}",
                upstream="registry",
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("directory.registry_unreachable", error=repr(exc))
            raise UpstreamError(
                f"Central registry unreachable: {exc!r}",
                upstream="registry",
            ) from exc
        except ValueError as exc:
            raise UpstreamError(
                "Central registry returned a non-JSON body",
                upstream="registry",
            ) from exc

        if not isinstance(data, list):
            raise UpstreamError(
                "Central registry returned an unexpected bank list",
                upstream="registry",
            )
        try:
            return [Bank.from_registry(item) for item in data]
        except (KeyError, TypeError, AttributeError) as exc:
            raise UpstreamError(
                f"Central registry returned a malformed bank entry: {exc!r}",
                upstream="registry",
            ) from exc

    async def _persist(self, banks: list[Bank]) -> None:
        assert self._session_factory is not None
        try:
            async with self._session_factory() as session:
                await BankRepository(session).replace_all(banks)
                await session.commit()
        except Exception as exc:
            # The in-memory snapshot is already published; only warm-start is lost.
            logger.warning("directory.persist_failed", error=str(exc))
