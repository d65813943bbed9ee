import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from hotwallet_refill.core.errors import ProviderError
from hotwallet_refill.models.refill_transaction import (
    RefillTransaction,
    RefillStatus,
    ACTIVE_STATUSES,
    as_utc,
    is_terminal,
    utcnow,
)
from hotwallet_refill.providers.registry import ProviderRegistry
from hotwallet_refill.services.alerts import SlackAlerter
from hotwallet_refill.services.ledger import Ledger
from hotwallet_refill.services.status_mapping import map_provider_status

logger = logging.getLogger(__name__)


@dataclass
class StatusCheck:
    refill_request_id: str
    previous: str
    current: str
    updated: bool = False
    skipped: bool = False


@dataclass
class ReconciliationReport:
    checked: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    alerted: list[str] = field(default_factory=list)


def _format_duration(seconds: int) -> str:
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minutes"
    return f"{seconds / 3600:.1f} hours"


def format_pending_alert(long_pending: list[dict], threshold_seconds: int, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    lines = [
        f"Refill Alert: {len(long_pending)} transaction(s) pending for over "
        f"{threshold_seconds // 60} minutes",
        "",
    ]
    for index, item in enumerate(long_pending, start=1):
        lines.append(f"{index}. {item['refill_request_id']}")
        lines.append(f"   • Status: `{item['status']}`")
        lines.append(f"   • Provider: {item['provider']}")
        lines.append(f"   • Pending for: {_format_duration(item['pending_seconds'])}")
        lines.append(f"   • Created: {item['created_at'].isoformat()}")
        lines.append("")
    lines.append(f"_Monitor cycle: {now.isoformat()}_")
    return "\n".join(lines)


class ReconciliationLoop:
    """Polls custody providers for refills the ledger still considers in flight.

    This is the only path that moves a refill to a terminal status. Checks
    within a cycle run concurrently and are individually time-bounded; one
    failing check never aborts the rest of the batch.
    """

    def __init__(
        self,
        ledger: Ledger,
        registry: ProviderRegistry,
        alerter: Optional[SlackAlerter] = None,
        batch_size: int = 100,
        status_check_timeout: float = 15.0,
        pending_alert_threshold: int = 1800,
    ):
        self.ledger = ledger
        self.registry = registry
        self.alerter = alerter or SlackAlerter()
        self.batch_size = batch_size
        self.status_check_timeout = status_check_timeout
        self.pending_alert_threshold = pending_alert_threshold

    async def run_cycle(self) -> ReconciliationReport:
        """Visit every in-flight row, one page of ``batch_size`` at a time."""
        report = ReconciliationReport()
        transactions: list[RefillTransaction] = []
        current_status: dict[str, str] = {}
        after = None
        while True:
            try:
                page = await self.ledger.get_transactions_by_status(
                    [s.value for s in ACTIVE_STATUSES], limit=self.batch_size, after=after
                )
            except Exception as e:
                logger.error(f"Error fetching pending refill transactions: {e}")
                break
            if not page:
                break
            await self._reconcile_page(page, report, current_status)
            transactions.extend(page)
            if len(page) < self.batch_size:
                break
            after = (page[-1].created_at, page[-1].refill_request_id)

        if not transactions:
            logger.debug("No pending refill transactions to reconcile")
            return report

        logger.info(
            f"Reconciliation cycle complete: {len(report.checked)} checked, {len(report.updated)} updated, "
            f"{len(report.skipped)} skipped, {len(report.failed)} errors"
        )
        report.alerted = await self.check_and_alert_long_pending(transactions, current_status)
        return report

    async def _reconcile_page(
        self, transactions: list[RefillTransaction], report: ReconciliationReport, current_status: dict
    ) -> None:
        logger.info(f"Reconciling {len(transactions)} pending/processing refill transactions")
        results = await asyncio.gather(
            *(self._bounded_check(tx) for tx in transactions),
            return_exceptions=True,
        )

        for tx, result in zip(transactions, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.TimeoutError):
                    logger.error(f"Status check for {tx.refill_request_id} timed out after {self.status_check_timeout}s")
                else:
                    logger.error(f"Status check for {tx.refill_request_id} failed: {result}")
                report.failed.append(tx.refill_request_id)
                current_status[tx.refill_request_id] = tx.status
                continue
            current_status[tx.refill_request_id] = result.current
            if result.skipped:
                report.skipped.append(tx.refill_request_id)
                continue
            report.checked.append(tx.refill_request_id)
            if result.updated:
                report.updated.append(tx.refill_request_id)

    async def _bounded_check(self, tx: RefillTransaction) -> StatusCheck:
        return await asyncio.wait_for(self.check_and_update_transaction(tx), timeout=self.status_check_timeout)

    async def check_and_update_transaction(self, tx: RefillTransaction) -> StatusCheck:
        check = StatusCheck(tx.refill_request_id, previous=tx.status, current=tx.status)
        if not tx.provider_tx_id:
            # Ambiguous rows (ledger write failed after submission) need an operator
            logger.warning(f"Refill {tx.refill_request_id} has no provider transaction id, skipping")
            check.skipped = True
            return check

        provider = self.registry.get(tx.provider)
        if provider is None:
            raise ProviderError(tx.provider, f"Provider not available for refill {tx.refill_request_id}")

        provider_tx = await provider.get_transaction_by_id(tx.provider_tx_id)
        mapped = map_provider_status(provider.name, provider_tx.status)
        raw_status = str(provider_tx.status) if provider_tx.status is not None else None

        changes = {"provider_status": raw_status, "provider_data": provider_tx.raw}
        if provider_tx.tx_hash:
            changes["tx_hash"] = provider_tx.tx_hash
        if provider_tx.message:
            changes["message"] = provider_tx.message

        if mapped.value != tx.status:
            if await self.ledger.update_refill_transaction(tx.refill_request_id, status=mapped.value, **changes):
                check.current = mapped.value
                check.updated = True
                log = logger.info if is_terminal(mapped) else logger.debug
                log(f"Refill {tx.refill_request_id} status updated: {tx.status} -> {mapped.value}")
        elif raw_status != tx.provider_status or (provider_tx.tx_hash and provider_tx.tx_hash != tx.tx_hash):
            if await self.ledger.update_refill_transaction(tx.refill_request_id, **changes):
                check.updated = True
        else:
            logger.debug(f"Refill {tx.refill_request_id} unchanged: {tx.status}")
        return check

    async def check_and_alert_long_pending(self, transactions: list[RefillTransaction], current_status: dict) -> list[str]:
        """Send one grouped alert for rows still in flight past the threshold."""
        now = utcnow()
        long_pending = []
        for tx in transactions:
            status = current_status.get(tx.refill_request_id, tx.status)
            if status not in (RefillStatus.PENDING.value, RefillStatus.PROCESSING.value):
                continue
            created_at = as_utc(tx.created_at)
            pending_seconds = int((now - created_at).total_seconds())
            if pending_seconds >= self.pending_alert_threshold:
                long_pending.append({
                    "refill_request_id": tx.refill_request_id,
                    "status": status,
                    "provider": tx.provider,
                    "pending_seconds": pending_seconds,
                    "created_at": created_at,
                })

        if not long_pending:
            return []
        logger.warning(f"Found {len(long_pending)} long-pending refill transactions")
        message = format_pending_alert(long_pending, self.pending_alert_threshold, now)
        if not await self.alerter.send(message):
            return []
        return [item["refill_request_id"] for item in long_pending]
