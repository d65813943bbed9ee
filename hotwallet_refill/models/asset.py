from sqlalchemy import Column, Integer, SmallInteger, String, Numeric, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hotwallet_refill.database import Base

NATIVE_ASSET_ADDRESS = "native"

# Atomic amounts of 18-decimal assets do not fit in BIGINT
ATOMIC = Numeric(78, 0)


class Asset(Base):
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True)
    symbol = Column(String(20), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    contract_address = Column(String(255), nullable=True)
    decimals = Column(SmallInteger, nullable=False)
    asset_type = Column(String(20), nullable=False, default="token")
    monitor_balance = Column(Boolean, nullable=False, default=True)
    monitor_transactions = Column(Boolean, nullable=False, default=False)

    low_balance_threshold_atomic = Column(ATOMIC, nullable=True)
    refill_trigger_threshold_atomic = Column(ATOMIC, nullable=True)
    refill_target_balance_atomic = Column(ATOMIC, nullable=True)
    high_withdrawal_threshold_atomic = Column(ATOMIC, nullable=True)
    refill_dust_threshold_atomic = Column(ATOMIC, nullable=True)
    # Seconds between successful refills
    refill_cooldown_period = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=True)
    blockchain_id = Column(Integer, ForeignKey("blockchains.id"), nullable=False)

    refill_sweep_wallet = Column(String(255), nullable=True)
    # {"provider": "fireblocks", "fireblocks": {"vaultId": "...", "assetId": "..."}}
    sweep_wallet_config = Column(JSON, nullable=True)
    hot_wallet_config = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    blockchain = relationship("Blockchain", back_populates="assets", lazy="selectin")
    wallet = relationship("Wallet", lazy="selectin")

    @property
    def is_native(self) -> bool:
        return (self.contract_address or "").lower() == NATIVE_ASSET_ADDRESS
