"""Application services — use case orchestration."""

from interbank_settlement.services.inbound_settlement import InboundSettlementHandler
from interbank_settlement.services.transaction_processor import TransactionProcessor
from interbank_settlement.services.transfer_service import TransferService

__all__ = ["InboundSettlementHandler", "TransactionProcessor", "TransferService"]
