"""Ordered guard pipeline for refill requests.

Stages run cheapest first and stop at the first failure:

1. required fields
2. blockchain and asset resolution, asset configuration coherence
3. sweep (cold) wallet binding
4. cold wallet solvency (provider call)
5. hot wallet need (provider call)
6. ledger guards: cooldown, then the in-flight guard

The in-flight guard must stay last so that, under the orchestrator's per-asset
lock, nothing can slip in between it and the ledger write.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from hotwallet_refill.core.errors import ConfigurationError
from hotwallet_refill.models.asset import Asset, NATIVE_ASSET_ADDRESS
from hotwallet_refill.models.blockchain import Blockchain
from hotwallet_refill.models.refill_transaction import as_utc, utcnow
from hotwallet_refill.models.wallet import Wallet, WalletType
from hotwallet_refill.providers.base import CustodyProvider, TokenConfig, require_wallet_config
from hotwallet_refill.schemas.refill import RefillResult
from hotwallet_refill.services.amounts import AmountError, to_atomic, to_int
from hotwallet_refill.services.ledger import Ledger

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "refill_request_id",
    "wallet_address",
    "asset_symbol",
    "asset_address",
    "chain_name",
    "refill_amount",
    "refill_sweep_wallet",
)


@dataclass
class ValidatedRefill:
    """Everything the orchestrator needs once a request has passed every stage."""
    blockchain: Blockchain
    asset: Asset
    wallet: Wallet
    provider_name: str
    refill_amount_atomic: int
    cold_wallet_id: str
    available_balance: int
    current_balance: int
    target_balance: int
    trigger_threshold: int


def build_token_config(asset: Asset, wallet_config: dict) -> TokenConfig:
    blockchain = asset.blockchain
    return TokenConfig(
        symbol=asset.symbol,
        decimals=asset.decimals,
        wallet_config=wallet_config,
        blockchain_symbol=blockchain.symbol if blockchain else None,
        native_coin=blockchain.native_asset_symbol if blockchain else None,
        contract_address=None if asset.is_native else asset.contract_address,
    )


def wallet_id_for(provider_name: str, wallet_config: dict) -> str:
    block = wallet_config[provider_name]
    return block.get("walletId") or block.get("vaultId")


class RefillValidator:
    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    @staticmethod
    def validate_required_fields(refill_data: dict) -> RefillResult:
        missing = [f for f in REQUIRED_FIELDS if refill_data.get(f) in (None, "")]
        if missing:
            return RefillResult.fail(
                "MISSING_FIELDS",
                f"Missing required fields: {', '.join(missing)}",
                {"missingFields": missing},
            )
        return RefillResult.ok({"missingFields": []})

    @staticmethod
    def determine_hot_wallet_address(refill_data: dict, asset) -> str:
        """Native assets go to the requested wallet; contract assets to the asset's bound wallet."""
        if str(refill_data.get("asset_address", "")).lower() == NATIVE_ASSET_ADDRESS:
            return refill_data["wallet_address"]

        wallet = getattr(asset, "wallet", None)
        if wallet is None or not wallet.address:
            symbol = getattr(asset, "symbol", None) or refill_data.get("asset_symbol")
            raise ConfigurationError(f"Hot wallet not configured for asset: {symbol}")
        requested = refill_data.get("wallet_address")
        if requested and requested.lower() != wallet.address.lower():
            raise ConfigurationError(
                f"Hot wallet address mismatch. Expected: {wallet.address}, Got: {requested}"
            )
        return wallet.address

    async def validate_asset(self, refill_data: dict) -> RefillResult:
        chain_name = refill_data["chain_name"].lower()
        symbol = refill_data["asset_symbol"].upper()
        try:
            blockchain = await self.ledger.get_blockchain_by_name(chain_name)
            if not blockchain:
                return RefillResult.fail("BLOCKCHAIN_NOT_FOUND", "Blockchain not found", {"chainName": chain_name})
            asset = await self.ledger.get_asset_by_symbol_and_blockchain(symbol, blockchain.id)
        except Exception as e:
            logger.error(f"Error validating asset {symbol} on {chain_name}: {e}")
            return RefillResult.fail(
                "ASSET_VALIDATION_ERROR", "Database error while validating asset", {"details": str(e)}
            )

        if not asset:
            return RefillResult.fail(
                "ASSET_NOT_FOUND",
                "Asset not found or inactive",
                {"assetSymbol": symbol, "blockchainId": blockchain.id},
            )

        trigger = to_int(asset.refill_trigger_threshold_atomic)
        target = to_int(asset.refill_target_balance_atomic)
        if trigger and target and trigger >= target:
            return RefillResult.fail(
                "INVALID_THRESHOLD_CONFIG",
                "Refill trigger threshold must be below the refill target balance",
                {"assetSymbol": symbol, "trigger": str(trigger), "target": str(target)},
            )

        requested = str(refill_data["asset_address"]).lower()
        configured = (asset.contract_address or "").lower()
        if requested != configured:
            return RefillResult.fail(
                "ASSET_ADDRESS_MISMATCH",
                f"Asset address mismatch. Expected: {asset.contract_address}, Got: {refill_data['asset_address']}",
                {"expected": asset.contract_address, "received": refill_data["asset_address"]},
            )

        return RefillResult.ok({"blockchain": blockchain, "asset": asset})

    async def validate_refill_sweep_wallet(self, refill_sweep_wallet: str, asset: Asset) -> RefillResult:
        if not asset.refill_sweep_wallet:
            return RefillResult.fail(
                "NO_SWEEP_WALLET_CONFIGURED",
                "No sweep wallet configured for this asset",
                {"assetSymbol": asset.symbol, "refillSweepWallet": refill_sweep_wallet},
            )
        if refill_sweep_wallet != asset.refill_sweep_wallet:
            return RefillResult.fail(
                "SWEEP_WALLET_MISMATCH",
                f"Refill sweep wallet mismatch. Expected: {asset.refill_sweep_wallet}, Got: {refill_sweep_wallet}",
                {"expected": asset.refill_sweep_wallet, "received": refill_sweep_wallet},
            )
        return RefillResult.ok()

    async def validate_cold_wallet_balance(self, asset: Asset, refill_amount, provider: CustodyProvider) -> RefillResult:
        sweep_config = asset.sweep_wallet_config or {}
        provider_name = sweep_config.get("provider")
        if not provider_name:
            return RefillResult.fail(
                "NO_COLD_WALLET_CONFIGURED",
                "No cold wallet configuration found for this asset",
                {"assetSymbol": asset.symbol},
            )
        try:
            wallet_config = require_wallet_config(provider_name, sweep_config)
        except ValueError as e:
            return RefillResult.fail("NO_COLD_WALLET_CONFIGURED", str(e), {"assetSymbol": asset.symbol})

        try:
            required = to_atomic(refill_amount, asset.decimals)
        except AmountError as e:
            return RefillResult.fail("INVALID_AMOUNT", str(e), {"refillAmount": str(refill_amount)})

        cold_wallet_id = wallet_id_for(provider_name, wallet_config)
        try:
            available = int(await provider.get_token_balance(build_token_config(asset, wallet_config)))
        except Exception as e:
            logger.error(f"Error fetching cold wallet balance for {asset.symbol}: {e}")
            return RefillResult.fail(
                "BALANCE_VALIDATION_ERROR",
                "Error fetching cold wallet balance from provider",
                {"details": str(e)},
            )

        if available < required:
            return RefillResult.fail(
                "INSUFFICIENT_BALANCE",
                f"Insufficient cold wallet balance. Available: {available}, Required: {required}",
                {
                    "availableBalance": str(available),
                    "requiredAmount": str(required),
                    "coldWalletId": cold_wallet_id,
                    "provider": provider_name,
                    "checkedAt": utcnow().isoformat(),
                },
            )
        return RefillResult.ok({
            "coldWalletId": cold_wallet_id,
            "availableBalance": str(available),
            "requiredAmount": str(required),
            "provider": provider_name,
        })

    async def validate_hot_wallet_needs_refill(
        self, wallet_address: str, refill_amount, provider: CustodyProvider, asset: Asset
    ) -> RefillResult:
        try:
            wallet = await self.ledger.get_wallet_by_address(wallet_address)
        except Exception as e:
            logger.error(f"Error loading hot wallet {wallet_address}: {e}")
            return RefillResult.fail(
                "HOT_WALLET_VALIDATION_ERROR", "Database error while loading hot wallet", {"details": str(e)}
            )
        if not wallet:
            return RefillResult.fail("HOT_WALLET_NOT_FOUND", "Hot wallet not found", {"walletAddress": wallet_address})
        if wallet.wallet_type != WalletType.hot:
            return RefillResult.fail(
                "INVALID_WALLET_TYPE",
                "Wallet is not a hot wallet",
                {"walletAddress": wallet_address, "walletType": wallet.wallet_type},
            )

        try:
            amount_atomic = to_atomic(refill_amount, asset.decimals)
        except AmountError as e:
            return RefillResult.fail("INVALID_AMOUNT", str(e), {"refillAmount": str(refill_amount)})
        if amount_atomic <= 0:
            return RefillResult.fail("INVALID_AMOUNT", "Refill amount must be positive", {"refillAmount": str(refill_amount)})

        hot_config = asset.hot_wallet_config or {}
        hot_provider = hot_config.get("provider") or provider.name
        if hot_provider != provider.name:
            return RefillResult.fail(
                "NO_HOT_WALLET_CONFIGURED",
                f"Hot wallet is held at {hot_provider}, cold wallet at {provider.name}",
                {"assetSymbol": asset.symbol},
            )
        try:
            wallet_config = require_wallet_config(hot_provider, hot_config)
        except ValueError as e:
            return RefillResult.fail("NO_HOT_WALLET_CONFIGURED", str(e), {"assetSymbol": asset.symbol})

        try:
            current = int(await provider.get_token_balance(build_token_config(asset, wallet_config)))
        except Exception as e:
            logger.error(f"Error fetching hot wallet balance for {asset.symbol}: {e}")
            return RefillResult.fail(
                "HOT_WALLET_VALIDATION_ERROR",
                "Error fetching hot wallet balance from provider",
                {"details": str(e)},
            )

        target = to_int(asset.refill_target_balance_atomic)
        trigger = to_int(asset.refill_trigger_threshold_atomic)
        dust = to_int(asset.refill_dust_threshold_atomic)
        checked_at = utcnow().isoformat()

        if target > 0 and current >= target:
            return RefillResult.fail(
                "SUFFICIENT_BALANCE",
                "Hot wallet already has sufficient balance",
                {"current": str(current), "target": str(target), "checkedAt": checked_at},
            )
        if trigger > 0 and current > trigger:
            return RefillResult.fail(
                "ABOVE_TRIGGER_THRESHOLD",
                "Hot wallet balance is above trigger threshold",
                {"current": str(current), "threshold": str(trigger), "checkedAt": checked_at},
            )
        if target > 0 and dust > 0 and target - current <= dust:
            return RefillResult.fail(
                "BELOW_DUST_THRESHOLD",
                "Shortfall to target is within the dust threshold",
                {"current": str(current), "target": str(target), "dust": str(dust), "checkedAt": checked_at},
            )
        if target > 0 and current + amount_atomic > target:
            return RefillResult.fail(
                "WILL_OVERFILL_TARGET",
                "Refill would overfill hot wallet target balance",
                {
                    "current": str(current),
                    "refillAmount": str(amount_atomic),
                    "projected": str(current + amount_atomic),
                    "target": str(target),
                    "checkedAt": checked_at,
                },
            )

        return RefillResult.ok({
            "wallet": wallet,
            "currentBalance": current,
            "targetBalance": target,
            "triggerThreshold": trigger,
            "refillAmountAtomic": amount_atomic,
        })

    async def validate_refill_cooldown(self, asset: Asset) -> RefillResult:
        cooldown = asset.refill_cooldown_period or 0
        if cooldown <= 0:
            return RefillResult.ok()
        try:
            last = await self.ledger.get_last_successful_refill_by_asset_id(asset.id)
        except Exception as e:
            logger.error(f"Error checking refill cooldown for asset {asset.id}: {e}")
            return RefillResult.fail("COOLDOWN_CHECK_ERROR", "Error checking refill cooldown", {"details": str(e)})
        if not last:
            return RefillResult.ok()

        completed_at = as_utc(last.updated_at)
        ready_at = completed_at + timedelta(seconds=cooldown)
        now = utcnow()
        if now < ready_at:
            return RefillResult.fail(
                "REFILL_COOLDOWN_ACTIVE",
                "Asset was refilled recently; cooldown period has not elapsed",
                {
                    "lastRefillRequestId": last.refill_request_id,
                    "lastCompletedAt": completed_at.isoformat(),
                    "cooldownSeconds": cooldown,
                    "retryAfterSeconds": int((ready_at - now).total_seconds()) + 1,
                },
            )
        return RefillResult.ok()

    async def validate_no_pending_refill(self, asset_id: int) -> RefillResult:
        try:
            pending = await self.ledger.get_pending_transaction_by_asset_id(asset_id)
        except Exception as e:
            logger.error(f"Error checking pending refills for asset {asset_id}: {e}")
            return RefillResult.fail(
                "PENDING_REFILL_CHECK_ERROR", "Error checking for pending refills", {"details": str(e)}
            )
        if pending:
            return RefillResult.fail(
                "REFILL_IN_PROGRESS",
                "A refill for this asset is already in progress. Please wait for it to complete.",
                {
                    "existingRefillRequestId": pending.refill_request_id,
                    "existingStatus": pending.status,
                    "existingProviderTxId": pending.provider_tx_id,
                    "createdAt": as_utc(pending.created_at).isoformat() if pending.created_at else None,
                },
            )
        return RefillResult.ok()

    async def validate_refill_request(self, refill_data: dict, provider: Optional[CustodyProvider]) -> RefillResult:
        """Run every stage; on success ``data`` is a ValidatedRefill."""
        try:
            return await self._run_pipeline(refill_data, provider)
        except ConfigurationError as e:
            logger.error(f"Hot wallet configuration error for {refill_data.get('refill_request_id')}: {e}")
            return RefillResult.fail("HOT_WALLET_CONFIG_ERROR", str(e), {"details": str(e)})
        except Exception as e:
            logger.exception(f"Error validating refill request {refill_data.get('refill_request_id')}")
            return RefillResult.fail("VALIDATION_ERROR", "Internal validation error", {"details": str(e)})

    async def _run_pipeline(self, refill_data: dict, provider: Optional[CustodyProvider]) -> RefillResult:
        logger.info(f"Validating refill request {refill_data.get('refill_request_id')} for wallet {refill_data.get('wallet_address')}")

        result = self.validate_required_fields(refill_data)
        if not result.success:
            return result

        result = await self.validate_asset(refill_data)
        if not result.success:
            return result
        blockchain, asset = result.data["blockchain"], result.data["asset"]

        result = await self.validate_refill_sweep_wallet(refill_data["refill_sweep_wallet"], asset)
        if not result.success:
            return result

        if provider is None:
            return RefillResult.fail(
                "PROVIDER_NOT_AVAILABLE", "Provider instance not available for balance validation"
            )

        cold = await self.validate_cold_wallet_balance(asset, refill_data["refill_amount"], provider)
        if not cold.success:
            return cold

        hot_wallet_address = self.determine_hot_wallet_address(refill_data, asset)
        hot = await self.validate_hot_wallet_needs_refill(
            hot_wallet_address, refill_data["refill_amount"], provider, asset
        )
        if not hot.success:
            return hot

        result = await self.validate_refill_cooldown(asset)
        if not result.success:
            return result

        result = await self.validate_no_pending_refill(asset.id)
        if not result.success:
            return result

        logger.info(f"Refill request {refill_data['refill_request_id']} passed validation")
        return RefillResult.ok(ValidatedRefill(
            blockchain=blockchain,
            asset=asset,
            wallet=hot.data["wallet"],
            provider_name=cold.data["provider"],
            refill_amount_atomic=hot.data["refillAmountAtomic"],
            cold_wallet_id=cold.data["coldWalletId"],
            available_balance=int(cold.data["availableBalance"]),
            current_balance=hot.data["currentBalance"],
            target_balance=hot.data["targetBalance"],
            trigger_threshold=hot.data["triggerThreshold"],
        ))
