import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, Index
from hotwallet_refill.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RefillStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = (RefillStatus.PENDING, RefillStatus.PROCESSING)
TERMINAL_STATUSES = (RefillStatus.COMPLETED, RefillStatus.FAILED, RefillStatus.CANCELLED)

# Status only moves forward; terminal rows are frozen
ALLOWED_TRANSITIONS = {
    RefillStatus.PENDING: {RefillStatus.PROCESSING, *TERMINAL_STATUSES},
    RefillStatus.PROCESSING: set(TERMINAL_STATUSES),
    RefillStatus.COMPLETED: set(),
    RefillStatus.FAILED: set(),
    RefillStatus.CANCELLED: set(),
}


def is_terminal(status) -> bool:
    return status is not None and RefillStatus(status) in TERMINAL_STATUSES


def can_transition(current, new) -> bool:
    return RefillStatus(new) in ALLOWED_TRANSITIONS[RefillStatus(current)]


class RefillTransaction(Base):
    __tablename__ = "refill_transactions"
    __table_args__ = (
        Index("idx_refill_transactions_provider_tx_id", "provider_tx_id"),
        Index("idx_refill_transactions_status", "status"),
        Index("idx_refill_transactions_token_symbol", "token_symbol"),
        Index("idx_refill_transactions_created_at", "created_at"),
    )

    # Externally supplied; doubles as the idempotency token
    refill_request_id = Column(String(255), primary_key=True)
    provider = Column(String(50), nullable=False)
    provider_tx_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=RefillStatus.PENDING.value)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=True)
    amount_atomic = Column(String(255), nullable=False)
    amount = Column(String(100), nullable=True)
    token_symbol = Column(String(50), nullable=True)
    chain_name = Column(String(50), nullable=True)
    provider_status = Column(String(100), nullable=True)
    tx_hash = Column(String(255), nullable=True)
    provider_data = Column(JSON, nullable=True)
    message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "refillRequestId": self.refill_request_id,
            "status": self.status,
            "provider": self.provider,
            "providerTxId": self.provider_tx_id,
            "providerStatus": self.provider_status,
            "amount": self.amount,
            "amountAtomic": self.amount_atomic,
            "tokenSymbol": self.token_symbol,
            "chainName": self.chain_name,
            "txHash": self.tx_hash,
            "message": self.message,
            "createdAt": as_utc(self.created_at).isoformat() if self.created_at else None,
            "updatedAt": as_utc(self.updated_at).isoformat() if self.updated_at else None,
        }
