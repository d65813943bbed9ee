from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hotwallet_refill.database import Base

class Blockchain(Base):
    __tablename__ = "blockchains"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    symbol = Column(String(10), unique=True, nullable=False)
    chain_id = Column(String(50), nullable=True)
    native_asset_symbol = Column(String(10), nullable=True)
    explorer_url_tx = Column(String(255), nullable=True)
    explorer_url_address = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    wallets = relationship("Wallet", back_populates="blockchain")
    assets = relationship("Asset", back_populates="blockchain")
