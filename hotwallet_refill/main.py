import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from hotwallet_refill.config import settings
from hotwallet_refill.context import RefillContext
from hotwallet_refill.core.logging import configure_logging
from hotwallet_refill.core.security import AuthError
from hotwallet_refill.routers import health, refill

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    ctx = await RefillContext(settings).startup()
    app.state.refill_context = ctx
    if settings.RECONCILIATION_ENABLED:
        scheduler.add_job(
            ctx.reconciliation.run_cycle,
            "interval",
            seconds=settings.RECONCILIATION_INTERVAL_SECONDS,
            id="reconciliation",
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
        )
        scheduler.start()
        logger.info(f"Reconciliation scheduled every {settings.RECONCILIATION_INTERVAL_SECONDS}s")
    yield
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await ctx.shutdown()


app = FastAPI(title="Hot Wallet Refill API", lifespan=lifespan)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    logger.warning(f"Authentication failed for {request.url.path}: {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code, "data": exc.data},
    )


app.include_router(refill.router)
app.include_router(health.router)
