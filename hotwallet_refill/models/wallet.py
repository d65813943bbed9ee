from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hotwallet_refill.database import Base


class WalletType:
    hot = "hot"
    cold = "cold"


class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True)
    address = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    wallet_type = Column(String(20), nullable=False)
    monitor_status = Column(String(20), nullable=False, default="active")
    blockchain_id = Column(Integer, ForeignKey("blockchains.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    blockchain = relationship("Blockchain", back_populates="wallets", lazy="selectin")
