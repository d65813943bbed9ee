import logging
from typing import Optional
from hotwallet_refill.models.refill_transaction import RefillStatus
from hotwallet_refill.providers.base import CustodyProvider, TransferRequest, TransferResult, build_external_reference
from hotwallet_refill.providers.registry import ProviderRegistry
from hotwallet_refill.schemas.refill import RefillResult
from hotwallet_refill.services.alerts import SlackAlerter
from hotwallet_refill.services.amounts import from_atomic
from hotwallet_refill.services.ledger import DuplicateRefillError, Ledger
from hotwallet_refill.services.refill_validator import (
    RefillValidator,
    ValidatedRefill,
    build_token_config,
)
from hotwallet_refill.services.status_mapping import map_provider_status

logger = logging.getLogger(__name__)

FAILED_STATUSES = (RefillStatus.FAILED.value, RefillStatus.CANCELLED.value)


class RefillOrchestrator:
    """Validate, submit and record one refill.

    Each accepted request produces exactly one provider call and one ledger
    row. Retries are the caller's job: resubmitting the same request id
    replays the stored outcome instead of transferring again.
    """

    def __init__(
        self,
        ledger: Ledger,
        registry: ProviderRegistry,
        validator: Optional[RefillValidator] = None,
        alerter: Optional[SlackAlerter] = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.validator = validator or RefillValidator(ledger)
        self.alerter = alerter or SlackAlerter()

    async def process_refill_request(self, refill_data: dict) -> RefillResult:
        try:
            return await self._process(refill_data)
        except Exception as e:
            logger.exception(f"Error processing refill request {refill_data.get('refill_request_id')}")
            return RefillResult.fail(
                "PROCESSING_ERROR",
                "Internal server error while processing refill request",
                {"details": str(e)},
            )

    async def _process(self, refill_data: dict) -> RefillResult:
        fields = self.validator.validate_required_fields(refill_data)
        if not fields.success:
            return fields

        request_id = refill_data["refill_request_id"]
        replay = await self._replay(request_id)
        if replay:
            return replay

        chain_name = refill_data["chain_name"]
        asset_symbol = refill_data["asset_symbol"]
        logger.info(f"Processing refill request {request_id} for {refill_data['refill_amount']} {asset_symbol} on {chain_name}")

        provider = await self.registry.resolve_for_asset(chain_name, asset_symbol, self.ledger)
        if provider is None:
            return RefillResult.fail(
                "NO_PROVIDER_AVAILABLE",
                "No provider available for this blockchain and asset combination",
                {
                    "chainName": chain_name,
                    "assetSymbol": asset_symbol,
                    "availableProviders": self.registry.names(),
                },
            )

        async with self.ledger.asset_lock(chain_name, asset_symbol):
            # A concurrent request with the same id may have finished while we waited
            replay = await self._replay(request_id)
            if replay:
                return replay

            validation = await self.validator.validate_refill_request(refill_data, provider)
            if not validation.success:
                logger.warning(f"Refill request {request_id} rejected: {validation.code} {validation.error}")
                return validation
            return await self._initiate(refill_data, validation.data, provider)

    async def _initiate(self, refill_data: dict, validated: ValidatedRefill, provider: CustodyProvider) -> RefillResult:
        request_id = refill_data["refill_request_id"]
        asset = validated.asset
        amount = from_atomic(validated.refill_amount_atomic, asset.decimals)
        sweep_config = asset.sweep_wallet_config or {}

        transfer = TransferRequest(
            cold_wallet_id=validated.cold_wallet_id,
            hot_wallet_id=self._hot_wallet_id(validated, provider),
            hot_wallet_address=validated.wallet.address,
            amount=amount,
            asset=asset.symbol,
            external_id=build_external_reference(request_id, asset.id),
            token=build_token_config(asset, {provider.name: sweep_config.get(provider.name, {})}),
            provider_asset_id=(sweep_config.get(provider.name) or {}).get("assetId"),
            blockchain=validated.blockchain.symbol,
            cold_wallet_address=asset.refill_sweep_wallet,
        )
        row = {
            "refill_request_id": request_id,
            "provider": provider.name,
            "asset_id": asset.id,
            "amount_atomic": str(validated.refill_amount_atomic),
            "amount": amount,
            "token_symbol": asset.symbol,
            "chain_name": validated.blockchain.name,
        }

        try:
            result = await provider.create_transfer_request(transfer)
        except Exception as e:
            logger.error(f"Refill {request_id} initiation with {provider.name} failed: {e}")
            await self._record_failure(row, e)
            return RefillResult.fail(
                "REFILL_INITIATION_ERROR",
                f"Failed to initiate refill with {provider.name}",
                {"details": str(e)},
            )

        status = map_provider_status(provider.name, result.status)
        try:
            await self.ledger.create_refill_transaction(
                **row,
                status=status.value,
                provider_tx_id=result.provider_tx_id,
                provider_status=result.status,
                provider_data=result.raw,
                message=result.message,
            )
        except DuplicateRefillError:
            # Only reachable if another process raced past the row lock
            logger.warning(f"Refill {request_id} was recorded concurrently, replaying stored outcome")
            return await self._replay(request_id)
        except Exception as e:
            return await self._record_ambiguous(row, result, e)

        logger.info(
            f"Refill {request_id} initiated: {amount} {asset.symbol} via {provider.name}, "
            f"provider tx {result.provider_tx_id}, status {status.value}"
        )
        return RefillResult.ok({
            "refillRequestId": request_id,
            "transactionId": result.provider_tx_id,
            "externalTxId": result.external_id,
            "walletAddress": validated.wallet.address,
            "assetSymbol": asset.symbol,
            "refillAmount": amount,
            "refillAmountAtomic": str(validated.refill_amount_atomic),
            "status": status.value,
            "providerStatus": result.status,
            "provider": provider.name,
        })

    @staticmethod
    def _hot_wallet_id(validated: ValidatedRefill, provider: CustodyProvider) -> str:
        if provider.name == "liminal":
            return validated.wallet.address
        hot_config = (validated.asset.hot_wallet_config or {}).get(provider.name) or {}
        return hot_config.get("vaultId") or hot_config.get("walletId")

    async def _record_failure(self, row: dict, error: Exception) -> None:
        try:
            await self.ledger.create_refill_transaction(
                **row,
                status=RefillStatus.FAILED.value,
                message=f"Refill initiation failed: {error}",
                provider_data={"error": str(error)},
            )
        except Exception as e:
            logger.error(f"Could not record failed refill {row['refill_request_id']}: {e}")

    async def _record_ambiguous(self, row: dict, result: TransferResult, error: Exception) -> RefillResult:
        """The provider accepted the transfer but the ledger write failed.

        Retry once with a minimal PROCESSING row so the in-flight guard stays
        closed and reconciliation can settle it from the provider.
        """
        request_id = row["refill_request_id"]
        logger.critical(
            f"Ledger write failed for refill {request_id} after {row['provider']} accepted "
            f"transfer {result.provider_tx_id}: {error}"
        )
        consistent = True
        try:
            await self.ledger.create_refill_transaction(
                **row,
                status=RefillStatus.PROCESSING.value,
                provider_tx_id=result.provider_tx_id,
                provider_status=result.status,
                message=f"Ledger write failed after provider acceptance: {error}",
            )
        except Exception as e:
            consistent = False
            logger.critical(f"Fallback ledger write for refill {request_id} also failed: {e}")

        await self.alerter.send(
            f"Refill Alert: ledger write failed for {request_id}\n"
            f"   • Provider: {row['provider']}\n"
            f"   • Provider tx: {result.provider_tx_id}\n"
            f"   • Amount: {row['amount']} {row['token_symbol']}\n"
            f"   • Ledger consistent: {'yes' if consistent else 'NO, manual entry required'}\n"
            f"   • Error: {error}"
        )
        return RefillResult.fail(
            "LEDGER_WRITE_ERROR",
            "Transfer was submitted but could not be recorded",
            {
                "details": str(error),
                "refillRequestId": request_id,
                "providerTxId": result.provider_tx_id,
                "ledgerConsistent": consistent,
            },
        )

    async def _replay(self, request_id: str) -> Optional[RefillResult]:
        tx = await self.ledger.get_refill_transaction_by_request_id(request_id)
        if tx is None:
            return None
        logger.info(f"Refill request {request_id} already recorded with status {tx.status}, replaying")
        data = tx.to_dict()
        data["idempotentReplay"] = True
        if tx.status in FAILED_STATUSES:
            return RefillResult.fail("REFILL_FAILED", f"Refill request {request_id} ended with status {tx.status}", data)
        return RefillResult.ok(data)

    async def get_refill_status(self, request_id: str) -> RefillResult:
        try:
            tx = await self.ledger.get_refill_transaction_by_request_id(request_id)
        except Exception as e:
            logger.error(f"Error getting refill status for {request_id}: {e}")
            return RefillResult.fail("STATUS_CHECK_ERROR", "Failed to get refill status", {"details": str(e)})
        if tx is None:
            return RefillResult.fail(
                "TRANSACTION_NOT_FOUND", "Refill transaction not found", {"refillRequestId": request_id}
            )
        return RefillResult.ok(tx.to_dict())
