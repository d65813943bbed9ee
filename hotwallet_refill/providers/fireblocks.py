import hashlib
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode
import httpx
from jose import jwt
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

# Request tokens are single-use; keep exp under a minute past iat
TOKEN_LIFETIME_SECONDS = 55


class FireblocksProvider(CustodyProvider):
    """Fireblocks REST API, vault-to-vault transfers.

    Each request carries a fresh RS256 JWT whose ``bodyHash`` claim binds it to
    the exact request body and ``uri`` claim to the path and query.
    """

    name = "fireblocks"

    def __init__(
        self,
        api_key: str,
        private_key: str,
        base_url: str = "https://api.fireblocks.io",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.private_key = private_key
        self.base_url = base_url.rstrip("/")

    def _sign(self, path: str, body: str) -> str:
        now = int(time.time())
        claims = {
            "uri": path,
            "nonce": uuid.uuid4().hex,
            "iat": now,
            "exp": now + TOKEN_LIFETIME_SECONDS,
            "sub": self.api_key,
            "bodyHash": hashlib.sha256(body.encode()).hexdigest(),
        }
        return jwt.encode(claims, self.private_key, algorithm="RS256")

    async def _call(self, method: str, path: str, params: Optional[dict] = None, payload: Optional[dict] = None):
        if params:
            path = f"{path}?{urlencode(params)}"
        body = json.dumps(payload) if payload is not None else ""
        headers = {
            "X-API-Key": self.api_key,
            "Authorization": f"Bearer {self._sign(path, body)}",
        }
        if payload is not None:
            headers["Content-Type"] = "application/json"
        return await self._send(
            method,
            f"{self.base_url}{path}",
            content=body.encode() if payload is not None else None,
            headers=headers,
        )

    async def initialize(self) -> None:
        if not self.api_key or not self.private_key:
            raise ConfigurationError("Fireblocks API credentials not configured properly")
        logger.info(f"Fireblocks provider initialized with API URL: {self.base_url}")

    async def get_token_balance(self, token: TokenConfig) -> str:
        cfg = token.wallet_config["fireblocks"]
        logger.info(f"Getting Fireblocks balance for {token.symbol} in vault {cfg['vaultId']}")
        data = await self._call("GET", f"/v1/vault/accounts/{cfg['vaultId']}/{cfg['assetId']}")
        available = data.get("available")
        if available is None:
            raise ProviderError(self.name, f"No available balance for asset {cfg['assetId']}")
        return normalize_balance(available, token.decimals)

    async def create_transfer_request(self, transfer: TransferRequest) -> TransferResult:
        if not transfer.provider_asset_id or not transfer.cold_wallet_id or not transfer.hot_wallet_id:
            raise ConfigurationError(
                f"Missing asset ID, cold vault ID or hot vault ID for {transfer.asset} on {transfer.blockchain}"
            )
        logger.info(
            f"Creating Fireblocks vault-to-vault transfer: {transfer.amount} {transfer.asset} "
            f"from vault {transfer.cold_wallet_id} to vault {transfer.hot_wallet_id}"
        )
        payload = {
            "externalTxId": transfer.external_id,
            "assetId": transfer.provider_asset_id,
            "amount": transfer.amount,
            "feeLevel": "MEDIUM",
            "source": {"type": "VAULT_ACCOUNT", "id": str(transfer.cold_wallet_id)},
            "destination": {"type": "VAULT_ACCOUNT", "id": str(transfer.hot_wallet_id)},
            "note": f"Cold to hot wallet refill - {transfer.asset} transfer",
        }
        data = await self._call("POST", "/v1/transactions", payload=payload)
        return TransferResult(
            status=data.get("status") or "SUBMITTED",
            external_id=transfer.external_id,
            provider_tx_id=data.get("id"),
            created_at=datetime.now(timezone.utc).isoformat(),
            message="Vault-to-vault transfer request submitted to Fireblocks",
            raw=data,
        )

    async def get_transaction_by_id(self, provider_tx_id: str) -> ProviderTransaction:
        data = await self._call("GET", f"/v1/transactions/{provider_tx_id}")
        return ProviderTransaction(
            status=data.get("status"),
            tx_hash=data.get("txHash") or None,
            message=data.get("subStatus") or data.get("note"),
            raw=data,
        )

    async def _check_credentials(self) -> None:
        await self._call("GET", "/v1/vault/accounts_paged", params={"limit": 1})
