from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from hotwallet_refill.context import RefillContext
from hotwallet_refill.core.deps import get_context

router = APIRouter(prefix="/v1", tags=["health"])


@router.get("/health")
async def health(ctx: RefillContext = Depends(get_context)):
    report = await ctx.health()
    return JSONResponse(content=report, status_code=200 if report["status"] == "healthy" else 503)
