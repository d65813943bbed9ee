import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncEngine
from hotwallet_refill.config import Settings
from hotwallet_refill.database import create_engine, create_session_factory
from hotwallet_refill.providers.registry import ProviderRegistry
from hotwallet_refill.services.alerts import SlackAlerter
from hotwallet_refill.services.ledger import Ledger
from hotwallet_refill.services.reconciliation import ReconciliationLoop
from hotwallet_refill.services.refill_orchestrator import RefillOrchestrator

logger = logging.getLogger(__name__)


class RefillContext:
    """Owns every long-lived collaborator of the service.

    Built once by the application lifespan (or a test) and passed explicitly
    to whatever needs it.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.ledger: Optional[Ledger] = None
        self.registry: Optional[ProviderRegistry] = None
        self.alerter: Optional[SlackAlerter] = None
        self.orchestrator: Optional[RefillOrchestrator] = None
        self.reconciliation: Optional[ReconciliationLoop] = None

    async def startup(self, registry: Optional[ProviderRegistry] = None) -> "RefillContext":
        self.engine = create_engine(self.settings.DATABASE_URL)
        self.ledger = Ledger(create_session_factory(self.engine))
        self.registry = registry or await ProviderRegistry.from_settings(self.settings)
        self.alerter = SlackAlerter(self.settings.SLACK_WEBHOOK_URL)
        self.orchestrator = RefillOrchestrator(self.ledger, self.registry, alerter=self.alerter)
        self.reconciliation = ReconciliationLoop(
            self.ledger,
            self.registry,
            alerter=self.alerter,
            batch_size=self.settings.RECONCILIATION_BATCH_SIZE,
            status_check_timeout=self.settings.STATUS_CHECK_TIMEOUT_SECONDS,
            pending_alert_threshold=self.settings.PENDING_ALERT_THRESHOLD_SECONDS,
        )
        logger.info(f"Refill service started with providers: {self.registry.names()}")
        return self

    async def shutdown(self) -> None:
        if self.registry:
            await self.registry.close()
        if self.alerter:
            await self.alerter.close()
        if self.engine:
            await self.engine.dispose()
        logger.info("Refill service stopped")

    async def health(self) -> dict:
        try:
            database = await self.ledger.health_check()
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            database = {"status": "unhealthy", "error": str(e)}
        providers = await self.registry.health()
        healthy = database["status"] == "healthy" and all(p["success"] for p in providers.values())
        return {
            "status": "healthy" if healthy else "unhealthy",
            "database": database,
            "providers": providers,
        }
