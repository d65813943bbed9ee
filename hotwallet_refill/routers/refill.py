import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from hotwallet_refill.context import RefillContext
from hotwallet_refill.core.deps import get_context, get_refill_claims, require_bearer
from hotwallet_refill.core.security import sign_response
from hotwallet_refill.schemas.refill import RefillResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/wallet", tags=["refill"])


def render(result: RefillResult, status_code: int, ctx: RefillContext) -> Response:
    """JSON body, or the same record as an RS256 JWT when a callback key is configured."""
    payload = result.model_dump()
    settings = ctx.settings
    if settings.CALLBACK_PRIVATE_KEY:
        token = sign_response(payload, settings.CALLBACK_PRIVATE_KEY, settings.JWT_MAX_LIFETIME_SECONDS)
        return Response(content=token, status_code=status_code, media_type="application/jwt")
    return JSONResponse(content=payload, status_code=status_code)


def refill_status_code(result: RefillResult) -> int:
    if result.success:
        return 200
    if result.code == "REFILL_IN_PROGRESS":
        return 409
    return 400


@router.post("/refill")
async def process_refill(
    claims: dict = Depends(get_refill_claims),
    ctx: RefillContext = Depends(get_context),
):
    logger.info(f"Refill request received: {claims.get('refill_request_id')} for wallet {claims.get('wallet_address')}")
    try:
        result = await ctx.orchestrator.process_refill_request(claims)
    except Exception as e:
        logger.exception("Error processing refill request")
        return render(
            RefillResult.fail("INTERNAL_ERROR", "Internal server error", {"details": str(e)}), 500, ctx
        )
    return render(result, refill_status_code(result), ctx)


@router.get("/refill/status/{refill_request_id}")
async def refill_status(
    refill_request_id: str,
    _claims=Depends(require_bearer),
    ctx: RefillContext = Depends(get_context),
):
    try:
        result = await ctx.orchestrator.get_refill_status(refill_request_id)
    except Exception as e:
        logger.exception(f"Error checking refill status for {refill_request_id}")
        return render(
            RefillResult.fail("INTERNAL_ERROR", "Internal server error", {"details": str(e)}), 500, ctx
        )
    if result.success:
        return render(result, 200, ctx)
    return render(result, 404 if result.code == "TRANSACTION_NOT_FOUND" else 500, ctx)
