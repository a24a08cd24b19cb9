"""Transaction Processor — drives outbound transfers to a terminal state.

One pass:
    1. Load the ids of all Pending outbound transactions.
    2. For each (bounded concurrency, every task awaited before the pass ends,
       a task that raises is logged and counted without cutting the pass short):
        a. expired            -> Failed("Expired"), no network call
        b. claim              -> In Progress via conditional UPDATE; lost claim = skip
        c. resolve the destination bank through the BankDirectory
        d. sign the payload and POST {"jwt": ...} to the bank's transactionUrl,
           the whole request bounded by the outbound timeout
        e. timeout / transport error -> back to Pending for the next pass
        f. peer reports an error     -> Failed(error)
        g. peer accepts              -> Completed, receiverName recorded

Passes repeat with a fixed delay measured from the end of the previous pass.
stop() is honoured between passes only, so a pass never abandons a claimed
transaction in In Progress.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import httpx

from interbank_settlement.domain.enums import EventType, TransactionStatus
from interbank_settlement.domain.exceptions import (
    BankNotFoundError,
    InvalidStateTransitionError,
    UpstreamError,
)
from interbank_settlement.domain.models import TransferPayload
from interbank_settlement.domain.state_machine import (
    TransactionStateMachine,
    validate_transition,
)
from interbank_settlement.infrastructure.database.repositories import (
    EventRepository,
    TransactionRepository,
)
from interbank_settlement.logging_config import bind_context, get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from interbank_settlement.config import Settings
    from interbank_settlement.infrastructure.database.orm_models import Transaction
    from interbank_settlement.settlement.directory import BankDirectory
    from interbank_settlement.settlement.signing import MessageSigner

logger = get_logger(__name__)

INVALID_DESTINATION_BANK = "Invalid destination bank"
EXPIRED = "Expired"
FINISHED = "finished"


def _utc(value: datetime) -> datetime:
    # SQLite hands timezone-aware columns back naive.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class TransactionProcessor:
    """Background settlement engine for outbound transactions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: BankDirectory,
        signer: MessageSigner,
        client: httpx.AsyncClient,
        outbound_timeout: float = 0.5,
        interval: float = 1.0,
        concurrency: int = 10,
        expiry: timedelta = timedelta(days=3),
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._session_factory = session_factory
        self._directory = directory
        self._signer = signer
        self._client = client
        self._outbound_timeout = outbound_timeout
        self._interval = interval
        self._concurrency = max(1, concurrency)
        self._expiry = expiry
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        directory: BankDirectory,
        signer: MessageSigner,
        client: httpx.AsyncClient,
    ) -> TransactionProcessor:
        return cls(
            session_factory=session_factory,
            directory=directory,
            signer=signer,
            client=client,
            outbound_timeout=settings.outbound_timeout_seconds,
            interval=settings.processor_interval_seconds,
            concurrency=settings.processor_concurrency,
            expiry=timedelta(days=settings.transaction_expiry_days),
        )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task[None]:
        """Start the polling loop as a background task."""
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run(), name="transaction-processor")
        return self._task

    async def stop(self) -> None:
        """Ask the loop to stop after the current pass and wait for it."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        """Run passes until stop() is called, sleeping `interval` between them."""
        logger.info("processor.started", interval=self._interval)
        while not self._stop_event.is_set():
            try:
                await self.run_pass()
            except Exception:
                # e.g. the database is briefly unreachable; the next pass retries.
                logger.exception("processor.pass_failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                pass
        logger.info("processor.stopped")

    async def run_pass(self) -> Counter[str]:
        """Process every currently Pending transaction once.

        Returns:
            Count of outcomes: expired, skipped, completed, failed, released,
            error. A task that raises is counted as "error" once every other
            task has finished.
        """
        bind_context(pass_id=uuid.uuid4().hex[:12])
        async with self._session_factory() as session:
            pending_ids = await TransactionRepository(session).get_ids_by_status(
                TransactionStatus.PENDING
            )

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(transaction_id: uuid.UUID) -> str:
            async with semaphore:
                return await self.process_one(transaction_id)

        results = await asyncio.gather(
            *(_bounded(tid) for tid in pending_ids), return_exceptions=True
        )
        outcomes: Counter[str] = Counter()
        for transaction_id, result in zip(pending_ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "transaction.process_failed",
                    transaction_id=str(transaction_id),
                    error=repr(result),
                    exc_info=result,
                )
                outcomes["error"] += 1
            else:
                outcomes[result] += 1
        if pending_ids:
            logger.info("processor.pass_completed", pending=len(pending_ids), **outcomes)
        return outcomes

    # ------------------------------------------------------------------
    # Per-transaction state machine
    # ------------------------------------------------------------------

    def is_expired(self, transaction: Transaction) -> bool:
        return _utc(transaction.created_at) + self._expiry < self._clock()

    async def process_one(self, transaction_id: uuid.UUID) -> str:
        """Drive a single Pending transaction one step towards settlement."""
        async with self._session_factory() as session:
            transaction = await TransactionRepository(session).get_by_id(transaction_id)
            if transaction is None or transaction.status != TransactionStatus.PENDING:
                return "skipped"

            if self.is_expired(transaction):
                moved = await self._transition(
                    session,
                    transaction.id,
                    "expire",
                    TransactionStatus.FAILED,
                    EventType.TRANSACTION_EXPIRED,
                    EXPIRED,
                )
                await session.commit()
                if moved:
                    logger.info("transaction.expired", transaction_id=str(transaction.id))
                return "expired" if moved else "skipped"

            claimed = await self._transition(
                session,
                transaction.id,
                "claim",
                TransactionStatus.IN_PROGRESS,
                EventType.TRANSACTION_CLAIMED,
            )
            await session.commit()
            if not claimed:
                logger.debug("transaction.claim_lost", transaction_id=str(transaction.id))
                return "skipped"

            try:
                outcome = await self._settle(session, transaction)
            except Exception as exc:
                logger.exception("transaction.settle_crashed", transaction_id=str(transaction.id))
                await session.rollback()
                await self._transition(
                    session,
                    transaction_id,
                    "release",
                    TransactionStatus.PENDING,
                    EventType.TRANSACTION_RELEASED,
                    f"Unexpected error: {exc!r}",
                )
                outcome = "released"
            await session.commit()
            return outcome

    async def _settle(self, session: AsyncSession, transaction: Transaction) -> str:
        payload = TransferPayload(
            account_from=transaction.account_from,
            account_to=transaction.account_to,
            amount=transaction.amount,
            currency=transaction.currency,
            explanation=transaction.explanation,
            sender_name=transaction.sender_name,
        )

        try:
            bank = await self._directory.resolve(payload.destination_prefix)
        except BankNotFoundError:
            return await self._fail(session, transaction, INVALID_DESTINATION_BANK)
        except UpstreamError as exc:
            return await self._fail(
                session, transaction, f"Contacting central bank failed: {exc.message}"
            )

        token = self._signer.sign(payload)
        try:
            async with asyncio.timeout(self._outbound_timeout):
                response = await self._client.post(
                    bank.transaction_url,
                    json={"jwt": token},
                    timeout=self._outbound_timeout,
                )
        except (TimeoutError, httpx.TimeoutException) as exc:
            return await self._release(
                session,
                transaction,
                f"Request to {bank.transaction_url} timed out after "
                f"{self._outbound_timeout}s ({type(exc).__name__})",
            )
        except httpx.HTTPError as exc:
            return await self._release(
                session,
                transaction,
                f"Request to {bank.transaction_url} failed: {exc!r}",
            )

        body = _json_or_none(response)
        if isinstance(body, dict) and body.get("error") is not None:
            return await self._fail(session, transaction, str(body["error"]))

        if response.is_success:
            receiver_name = body.get("receiverName") if isinstance(body, dict) else None
            await self._transition(
                session,
                transaction.id,
                "complete",
                TransactionStatus.COMPLETED,
                EventType.TRANSACTION_COMPLETED,
                FINISHED,
                receiver_name=receiver_name,
            )
            logger.info(
                "transaction.completed",
                transaction_id=str(transaction.id),
                bank_prefix=bank.bank_prefix,
                receiver_name=receiver_name,
            )
            return "completed"

        if response.status_code >= 500:
            return await self._release(
                session,
                transaction,
                f"Remote bank {bank.bank_prefix} responded {response.status_code}",
            )
        return await self._fail(
            session,
            transaction,
            f"Remote bank {bank.bank_prefix} rejected transaction: HTTP {response.status_code}",
        )

    async def _fail(self, session: AsyncSession, transaction: Transaction, details: str) -> str:
        await self._transition(
            session,
            transaction.id,
            "reject",
            TransactionStatus.FAILED,
            EventType.TRANSACTION_REJECTED,
            details,
        )
        logger.info("transaction.failed", transaction_id=str(transaction.id), details=details)
        return "failed"

    async def _release(self, session: AsyncSession, transaction: Transaction, details: str) -> str:
        await self._transition(
            session,
            transaction.id,
            "release",
            TransactionStatus.PENDING,
            EventType.TRANSACTION_RELEASED,
            details,
        )
        logger.info("transaction.released", transaction_id=str(transaction.id), details=details)
        return "released"

    async def _transition(
        self,
        session: AsyncSession,
        transaction_id: uuid.UUID,
        event_name: str,
        new_status: TransactionStatus,
        event_type: EventType,
        details: str | None = None,
        receiver_name: str | None = None,
    ) -> bool:
        """Guard, then conditionally apply, one state machine event.

        Returns False when another worker changed the row first.
        """
        expected = self._source_status(event_name, new_status)
        moved = await TransactionRepository(session).compare_and_set_status(
            transaction_id,
            expected=expected,
            new_status=new_status,
            status_details=details,
            receiver_name=receiver_name,
        )
        if moved:
            metadata: dict = {}
            if details is not None:
                metadata["details"] = details
            if receiver_name is not None:
                metadata["receiver_name"] = receiver_name
            await EventRepository(session).record(
                transaction_id=transaction_id,
                event_type=event_type,
                old_status=expected,
                new_status=new_status,
                metadata=metadata or None,
            )
        return moved

    @staticmethod
    def _source_status(event_name: str, new_status: TransactionStatus) -> TransactionStatus:
        return _source_status_for(event_name, new_status)


@lru_cache(maxsize=None)
def _source_status_for(event_name: str, new_status: TransactionStatus) -> TransactionStatus:
    """Find the status `event_name` fires from, checking it lands on `new_status`."""
    for source in TransactionStatus:
        if source.is_terminal:
            continue
        sm = TransactionStateMachine(current_status=source.value)
        if event_name in sm.get_allowed_events():
            if validate_transition(source.value, event_name) != new_status.value:
                raise InvalidStateTransitionError(source.value, event_name)
            return source
    raise InvalidStateTransitionError(new_status.value, event_name)
