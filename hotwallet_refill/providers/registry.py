import logging
from typing import Optional
from hotwallet_refill.config import Settings
from hotwallet_refill.providers.base import CustodyProvider
from hotwallet_refill.providers.fireblocks import FireblocksProvider
from hotwallet_refill.providers.liminal import LiminalProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Initialized custody providers keyed by name.

    A backend that is unconfigured or fails to initialize is simply absent;
    requests routed to it resolve to ``None`` while other backends keep working.
    """

    def __init__(self, providers: Optional[dict[str, CustodyProvider]] = None):
        self.providers: dict[str, CustodyProvider] = dict(providers or {})

    @classmethod
    async def from_settings(cls, settings: Settings) -> "ProviderRegistry":
        candidates: list[CustodyProvider] = []

        if settings.liminal_configured:
            candidates.append(LiminalProvider(
                client_id=settings.LIMINAL_CLIENT_ID,
                client_secret=settings.LIMINAL_CLIENT_SECRET,
                audience=settings.LIMINAL_AUTH_AUDIENCE,
                base_url=settings.LIMINAL_API_BASE_URL,
                auth_url=settings.LIMINAL_AUTH_URL,
                env=settings.LIMINAL_ENV,
                timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            ))
        else:
            logger.warning("Liminal credentials not found or incomplete, provider disabled")

        if settings.fireblocks_configured:
            candidates.append(FireblocksProvider(
                api_key=settings.FIREBLOCKS_API_KEY,
                private_key=settings.FIREBLOCKS_PRIVATE_KEY,
                base_url=settings.FIREBLOCKS_API_BASE_URL,
                timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            ))
        else:
            logger.warning("Fireblocks credentials not found or incomplete, provider disabled")

        registry = cls()
        for provider in candidates:
            await registry.register(provider)
        logger.info(f"Provider initialization completed: {registry.names() or 'none available'}")
        return registry

    async def register(self, provider: CustodyProvider) -> bool:
        try:
            await provider.initialize()
        except Exception as e:
            logger.error(f"Failed to initialize {provider.name} provider: {e}")
            await provider.close()
            return False
        self.providers[provider.name] = provider
        return True

    def get(self, name: Optional[str]) -> Optional[CustodyProvider]:
        if not name:
            return None
        return self.providers.get(name.lower())

    def names(self) -> list[str]:
        return sorted(self.providers)

    async def resolve_for_asset(self, chain_name: str, asset_symbol: str, ledger) -> Optional[CustodyProvider]:
        """Provider named by the asset's sweep wallet config, or None."""
        try:
            blockchain = await ledger.get_blockchain_by_name(chain_name.lower())
            if not blockchain:
                logger.error(f"Blockchain not found for chain name: {chain_name}")
                return None
            asset = await ledger.get_asset_by_symbol_and_blockchain(asset_symbol, blockchain.id)
            if not asset:
                logger.error(f"Asset not found for symbol {asset_symbol} on {chain_name}")
                return None
        except Exception as e:
            logger.error(f"Error resolving provider for {asset_symbol} on {chain_name}: {e}")
            return None

        provider_name = (asset.sweep_wallet_config or {}).get("provider")
        if not provider_name:
            logger.error(f"No provider configured in sweep wallet config for {asset_symbol} on {chain_name}")
            return None
        provider = self.get(provider_name)
        if not provider:
            logger.error(f"Provider {provider_name} not initialized for {asset_symbol} on {chain_name}")
            return None
        logger.info(f"Using provider {provider_name} for {asset_symbol} on {chain_name}")
        return provider

    async def health(self) -> dict:
        return {name: await provider.get_health_status() for name, provider in self.providers.items()}

    async def close(self) -> None:
        for provider in self.providers.values():
            await provider.close()
        self.providers.clear()
