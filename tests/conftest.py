import pytest
import pytest_asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import create_async_engine
from hotwallet_refill.database import Base, create_session_factory
from hotwallet_refill.models import Blockchain, Wallet, WalletType, Asset
from hotwallet_refill.providers.base import (
    CustodyProvider,
    TokenConfig,
    TransferRequest,
    TransferResult,
    ProviderTransaction,
)
from hotwallet_refill.providers.registry import ProviderRegistry
from hotwallet_refill.services.ledger import Ledger

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

HOT_ADDRESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"
COLD_ADDRESS = "0x9f8F72aA9304c8B593d555F12eF6589cC3A579A2"
CONTRACT_ADDRESS = "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599"

COLD_VAULT = "0"
HOT_VAULT = "7"


class FakeCustodyProvider(CustodyProvider):
    """In-memory custody backend keyed by vault id."""

    name = "fireblocks"

    def __init__(self):
        super().__init__(client=AsyncMock())
        self.balances = {COLD_VAULT: "200000000", HOT_VAULT: "30000000"}
        self.transfers: list[TransferRequest] = []
        self.transactions: dict[str, ProviderTransaction] = {}
        self.transfer_status = "SUBMITTED"
        self.transfer_error = None
        self.balance_error = None

    async def initialize(self) -> None:
        pass

    async def get_token_balance(self, token: TokenConfig) -> str:
        if self.balance_error:
            raise self.balance_error
        return self.balances[token.wallet_config[self.name]["vaultId"]]

    async def create_transfer_request(self, transfer: TransferRequest) -> TransferResult:
        self.transfers.append(transfer)
        if self.transfer_error:
            raise self.transfer_error
        tx_id = f"fb-{len(self.transfers)}"
        return TransferResult(
            status=self.transfer_status,
            external_id=transfer.external_id,
            provider_tx_id=tx_id,
            created_at=datetime.now(timezone.utc).isoformat(),
            raw={"id": tx_id, "status": self.transfer_status},
        )

    async def get_transaction_by_id(self, provider_tx_id: str) -> ProviderTransaction:
        if provider_tx_id not in self.transactions:
            raise RuntimeError(f"unknown transaction {provider_tx_id}")
        return self.transactions[provider_tx_id]

    async def _check_credentials(self) -> None:
        pass


@pytest_asyncio.fixture
async def ledger():
    engine = create_async_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield Ledger(create_session_factory(engine))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


async def seed(session_factory):
    """One chain, a hot and a cold wallet, and a WBTC asset routed through Fireblocks."""
    async with session_factory() as db:
        chain = Blockchain(name="ethereum", symbol="ETH", chain_id="1", native_asset_symbol="ETH")
        db.add(chain)
        await db.flush()
        hot = Wallet(address=HOT_ADDRESS, name="eth-hot", wallet_type=WalletType.hot, blockchain_id=chain.id)
        cold = Wallet(address=COLD_ADDRESS, name="eth-cold", wallet_type=WalletType.cold, blockchain_id=chain.id)
        db.add_all([hot, cold])
        await db.flush()
        asset = Asset(
            symbol="WBTC",
            name="Wrapped Bitcoin",
            contract_address=CONTRACT_ADDRESS,
            decimals=8,
            blockchain_id=chain.id,
            wallet_id=hot.id,
            refill_sweep_wallet=COLD_ADDRESS,
            refill_trigger_threshold_atomic=50000000,
            refill_target_balance_atomic=100000000,
            refill_dust_threshold_atomic=1000,
            sweep_wallet_config={"provider": "fireblocks", "fireblocks": {"vaultId": COLD_VAULT, "assetId": "WBTC"}},
            hot_wallet_config={"provider": "fireblocks", "fireblocks": {"vaultId": HOT_VAULT, "assetId": "WBTC"}},
        )
        db.add(asset)
        await db.commit()
        ids = {"blockchain_id": chain.id, "hot_wallet_id": hot.id, "cold_wallet_id": cold.id, "asset_id": asset.id}
    return ids


@pytest_asyncio.fixture
async def seeded(ledger):
    return await seed(ledger.session_factory)


@pytest.fixture
def provider():
    return FakeCustodyProvider()


@pytest.fixture
def registry(provider):
    return ProviderRegistry({provider.name: provider})


@pytest.fixture(scope="session")
def rsa_keys():
    """(private_pem, public_pem) for signing tests."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture
def refill_request():
    def build(**overrides):
        data = {
            "refill_request_id": "req-001",
            "wallet_address": HOT_ADDRESS,
            "asset_symbol": "WBTC",
            "asset_address": CONTRACT_ADDRESS,
            "chain_name": "ethereum",
            "refill_amount": "0.5",
            "refill_sweep_wallet": COLD_ADDRESS,
        }
        data.update(overrides)
        return data
    return build
