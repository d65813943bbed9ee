"""Custody provider interface.

Every backend exposes the same coroutine set so the validator, orchestrator and
reconciliation loop never branch on provider identity. Balances cross this
boundary as atomic-unit integer strings; transfer amounts go out in human
units, the way custody APIs expect them.
"""
import abc
import logging
from dataclasses import dataclass, field
from typing import Any, Optional
import httpx
from hotwallet_refill.core.errors import ProviderError, ProviderTimeoutError

logger = logging.getLogger(__name__)


def build_external_reference(refill_request_id: str, asset_id) -> str:
    """Deterministic transfer reference, so a resubmitted request collides at the provider too."""
    return f"{refill_request_id}_{asset_id}"


@dataclass
class TokenConfig:
    symbol: str
    decimals: int
    wallet_config: dict
    blockchain_symbol: Optional[str] = None
    native_coin: Optional[str] = None
    contract_address: Optional[str] = None  # None for native assets


@dataclass
class TransferRequest:
    cold_wallet_id: str
    hot_wallet_id: str
    hot_wallet_address: str
    amount: str  # human units
    asset: str
    external_id: str
    token: TokenConfig
    provider_asset_id: Optional[str] = None
    blockchain: Optional[str] = None
    cold_wallet_address: Optional[str] = None


@dataclass
class TransferResult:
    status: str
    external_id: str
    provider_tx_id: Optional[str]
    created_at: str
    message: Optional[str] = None
    raw: dict = field(default_factory=dict)


@dataclass
class ProviderTransaction:
    status: Optional[str]
    tx_hash: Optional[str] = None
    message: Optional[str] = None
    raw: dict = field(default_factory=dict)


class CustodyProvider(abc.ABC):
    name: str = ""

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @abc.abstractmethod
    async def initialize(self) -> None:
        ...

    @abc.abstractmethod
    async def get_token_balance(self, token: TokenConfig) -> str:
        ...

    @abc.abstractmethod
    async def create_transfer_request(self, transfer: TransferRequest) -> TransferResult:
        ...

    @abc.abstractmethod
    async def get_transaction_by_id(self, provider_tx_id: str) -> ProviderTransaction:
        ...

    @abc.abstractmethod
    async def _check_credentials(self) -> None:
        """Cheap read-only call that raises when the credentials are rejected."""

    async def validate_credentials(self) -> dict:
        try:
            await self._check_credentials()
            return {"success": True}
        except Exception as e:
            logger.error(f"Credential validation failed for {self.name}: {e}")
            return {
                "success": False,
                "error": "Failed to validate credentials",
                "code": "CREDENTIAL_VALIDATION_ERROR",
                "details": str(e),
            }

    async def get_health_status(self) -> dict:
        validation = await self.validate_credentials()
        return {
            "success": validation["success"],
            "status": "healthy" if validation["success"] else "unhealthy",
            "error": validation.get("error"),
            "code": validation.get("code"),
        }

    async def close(self) -> None:
        await self.client.aclose()

    async def _send(self, method: str, url: str, **kwargs) -> Any:
        """Issue one HTTP call and return the decoded JSON body.

        No retries. Timeouts, transport errors and non-2xx responses all
        surface as ProviderError.
        """
        try:
            resp = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(self.name, f"{method} {url} timed out") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"{method} {url} failed: {e}") from e

        if resp.status_code >= 400:
            raise ProviderError(
                self.name,
                f"{method} {url} returned {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(self.name, f"{method} {url} returned invalid JSON") from e


def require_wallet_config(provider_name: str, wallet_config: Optional[dict]) -> dict:
    """Extract and check the provider-specific block of a sweep/hot wallet config.

    Liminal needs ``walletId``; Fireblocks needs ``vaultId`` and ``assetId``.
    Returns the provider block or raises ValueError naming what is missing.
    """
    block = (wallet_config or {}).get(provider_name) or {}
    if provider_name == "liminal":
        required = ("walletId",)
    elif provider_name == "fireblocks":
        required = ("vaultId", "assetId")
    else:
        raise ValueError(f"Unsupported provider: {provider_name}")
    missing = [key for key in required if not block.get(key)]
    if missing:
        raise ValueError(f"No {provider_name} wallet configuration ({', '.join(missing)}) for this asset")
    return {provider_name: {key: block[key] for key in required}}
