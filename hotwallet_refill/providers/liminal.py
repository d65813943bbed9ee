import logging
import time
from datetime import datetime, timezone
from typing import Optional
import httpx
from hotwallet_refill.core.errors import ConfigurationError, ProviderError
from hotwallet_refill.providers.base import (
    CustodyProvider,
    TokenConfig,
    TransferRequest,
    TransferResult,
    ProviderTransaction,
)
from hotwallet_refill.services.amounts import normalize_balance

logger = logging.getLogger(__name__)

# Token names Liminal uses on BNB chain where they differ from the asset symbol
BNB_TOKEN_ALIASES = {"avax": "avaxb", "wrx": "wrxnew"}

# Refresh the access token this many seconds before it expires
TOKEN_REFRESH_MARGIN = 60


def liminal_coin(token: TokenConfig, env: str) -> tuple[str, Optional[str]]:
    """Map an asset to Liminal's (coin, token name) pair.

    Contract tokens live under their chain's native coin; native assets are
    their own coin. Cosmos ATOM is ``uatom`` on mainnet and ``umlg`` on the
    test environments.
    """
    symbol = token.symbol.lower()
    if token.contract_address and token.native_coin:
        coin = token.native_coin.lower()
        token_name = BNB_TOKEN_ALIASES.get(symbol, symbol) if coin == "bnb" else symbol
        return coin, token_name
    if symbol == "atom":
        return ("uatom" if env in ("prod", "beta") else "umlg"), None
    return symbol, None


class LiminalProvider(CustodyProvider):
    """Liminal custody REST API.

    Transfers go through Liminal's multi-sig approval, so a freshly created
    request reports an in-progress status until approvers sign.
    """

    name = "liminal"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        audience: str,
        base_url: str,
        auth_url: str,
        env: str = "dev",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.client_id = client_id
        self.client_secret = client_secret
        self.audience = audience
        self.base_url = base_url.rstrip("/")
        self.auth_url = auth_url
        self.env = env
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    async def _authenticate(self) -> str:
        data = await self._send(
            "POST",
            self.auth_url,
            json={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "audience": self.audience,
            },
        )
        token = data.get("access_token")
        if not token:
            raise ProviderError(self.name, "Authentication response carried no access token")
        self._access_token = token
        self._token_expires_at = time.time() + int(data.get("expires_in", 3600))
        return token

    async def _token(self) -> str:
        if not self._access_token or time.time() >= self._token_expires_at - TOKEN_REFRESH_MARGIN:
            return await self._authenticate()
        return self._access_token

    async def _call(self, method: str, path: str, **kwargs):
        headers = {"Authorization": f"Bearer {await self._token()}"}
        data = await self._send(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        # Responses are wrapped in {"success": ..., "data": {...}}
        if isinstance(data, dict) and "data" in data:
            return data["data"]
        return data

    async def initialize(self) -> None:
        if not self.client_id or not self.client_secret or not self.audience:
            raise ConfigurationError("Liminal API credentials not configured properly")
        if not self.base_url or not self.auth_url:
            raise ConfigurationError("Liminal API and auth URLs must be configured")
        await self._authenticate()
        logger.info(f"Liminal provider initialized with environment: {self.env}")

    async def get_token_balance(self, token: TokenConfig) -> str:
        wallet_id = token.wallet_config["liminal"]["walletId"]
        coin, token_name = liminal_coin(token, self.env)
        params = {"coin": coin, "walletId": wallet_id}
        if token_name:
            params.update(tokenName=token_name, tokenAddress=token.contract_address)
        logger.debug(f"Getting Liminal balance for {token.symbol} ({coin}) in wallet {wallet_id}")
        data = await self._call("GET", "/api/wallet/balance", params=params)

        atomic = data.get("spendableBalanceInLowerDenom")
        if atomic is not None:
            return str(int(atomic))
        human = data.get("spendableBalance")
        if human is None:
            raise ProviderError(self.name, f"No spendable balance for wallet {wallet_id}")
        return normalize_balance(human, token.decimals)

    async def create_transfer_request(self, transfer: TransferRequest) -> TransferResult:
        coin, token_name = liminal_coin(transfer.token, self.env)
        logger.info(
            f"Creating Liminal transfer request: {transfer.amount} {transfer.asset} "
            f"from wallet {transfer.cold_wallet_id} to {transfer.hot_wallet_address}"
        )
        payload = {
            "coin": coin,
            "walletId": transfer.cold_wallet_id,
            "recipients": [{"address": transfer.hot_wallet_address, "amount": transfer.amount}],
            "sequenceId": transfer.external_id,
        }
        if token_name:
            payload.update(tokenName=token_name, tokenAddress=transfer.token.contract_address)
        data = await self._call("POST", "/api/wallet/transfer-request", json=payload)
        tx_id = data.get("id")
        return TransferResult(
            status=str(data.get("status", 1)),
            external_id=transfer.external_id,
            provider_tx_id=str(tx_id) if tx_id is not None else None,
            created_at=datetime.now(timezone.utc).isoformat(),
            message="Transfer request submitted for multi-sig approval",
            raw=data,
        )

    async def get_transaction_by_id(self, provider_tx_id: str) -> ProviderTransaction:
        data = await self._call("GET", f"/api/wallet/transfer-request/{provider_tx_id}")
        status = data.get("status")
        return ProviderTransaction(
            status=str(status) if status is not None else None,
            tx_hash=data.get("txid") or data.get("txHash"),
            message=data.get("note") or data.get("message"),
            raw=data,
        )

    async def _check_credentials(self) -> None:
        await self._call("GET", "/api/wallet/list", params={"coin": "trx", "limit": 1})
