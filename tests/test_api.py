import time
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt
from hotwallet_refill.config import Settings
from hotwallet_refill.context import RefillContext
from hotwallet_refill.core.deps import get_context
from hotwallet_refill.main import app
from hotwallet_refill.services.refill_orchestrator import RefillOrchestrator
from tests.conftest import HOT_VAULT


def _context(ledger, registry, **overrides):
    settings = Settings(_env_file=None, AUTH_ENABLED=False, RECONCILIATION_ENABLED=False, **overrides)
    ctx = RefillContext(settings)
    ctx.ledger = ledger
    ctx.registry = registry
    ctx.orchestrator = RefillOrchestrator(ledger, registry)
    return ctx


@pytest.fixture
def ctx(ledger, registry):
    return _context(ledger, registry)


@pytest_asyncio.fixture
async def client(ctx):
    app.dependency_overrides[get_context] = lambda: ctx
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_refill_accepted(client, seeded, refill_request):
    resp = await client.post("/v1/wallet/refill", json=refill_request())
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "PROCESSING"
    assert body["data"]["transactionId"] == "fb-1"


@pytest.mark.asyncio
async def test_refill_in_progress_is_409(client, seeded, refill_request):
    await client.post("/v1/wallet/refill", json=refill_request())
    resp = await client.post("/v1/wallet/refill", json=refill_request(refill_request_id="req-002"))
    assert resp.status_code == 409
    assert resp.json()["code"] == "REFILL_IN_PROGRESS"


@pytest.mark.asyncio
async def test_refill_rejected_is_400(client, seeded, provider, refill_request):
    provider.balances[HOT_VAULT] = "90000000"
    resp = await client.post("/v1/wallet/refill", json=refill_request())
    assert resp.status_code == 400
    assert resp.json()["code"] == "ABOVE_TRIGGER_THRESHOLD"

    resp = await client.post("/v1/wallet/refill", json={})
    assert resp.status_code == 400
    assert resp.json()["code"] == "MISSING_FIELDS"


@pytest.mark.asyncio
async def test_malformed_body(client):
    resp = await client.post("/v1/wallet/refill", content=b"[1, 2]")
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_REQUEST_FORMAT"


@pytest.mark.asyncio
async def test_refill_status(client, seeded, refill_request):
    resp = await client.get("/v1/wallet/refill/status/req-001")
    assert resp.status_code == 404
    assert resp.json()["code"] == "TRANSACTION_NOT_FOUND"

    await client.post("/v1/wallet/refill", json=refill_request())
    resp = await client.get("/v1/wallet/refill/status/req-001")
    assert resp.status_code == 200
    assert resp.json()["data"]["providerTxId"] == "fb-1"


@pytest.mark.asyncio
async def test_health(client, ctx, provider):
    resp = await client.get("/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["providers"]["fireblocks"]["success"] is True

    async def rejected():
        raise RuntimeError("401 Unauthorized")

    provider._check_credentials = rejected
    resp = await client.get("/v1/health")
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_jwt_request_and_signed_response(ledger, registry, seeded, refill_request, rsa_keys):
    private_pem, public_pem = rsa_keys
    ctx = _context(ledger, registry, CALLBACK_PRIVATE_KEY=private_pem)
    ctx.settings.AUTH_ENABLED = True
    ctx.settings.AUTH_PUBLIC_KEY = public_pem
    app.dependency_overrides[get_context] = lambda: ctx

    now = int(time.time())
    token = jwt.encode({**refill_request(), "iat": now, "exp": now + 60}, private_pem, algorithm="RS256")
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.post("/v1/wallet/refill", content=token, headers={"Content-Type": "application/jwt"})
            assert resp.status_code == 200
            assert resp.headers["content-type"].startswith("application/jwt")
            claims = jwt.decode(resp.text, public_pem, algorithms=["RS256"])
            assert claims["success"] is True
            assert claims["data"]["refillRequestId"] == "req-001"

            resp = await c.post("/v1/wallet/refill", content=b"garbage")
            assert resp.status_code == 401
            assert resp.json()["code"] == "INVALID_TOKEN"

            resp = await c.get("/v1/wallet/refill/status/req-001")
            assert resp.status_code == 401
            assert resp.json()["code"] == "MISSING_AUTHORIZATION_HEADER"

            for header in ("Basic abc", "Bearer"):
                resp = await c.get("/v1/wallet/refill/status/req-001", headers={"Authorization": header})
                assert resp.status_code == 401
                assert resp.json()["code"] == "INVALID_AUTHORIZATION_FORMAT"

            resp = await c.get(
                "/v1/wallet/refill/status/req-001",
                headers={"Authorization": f"Bearer {token}"},
            )
            assert resp.status_code == 200
            assert jwt.decode(resp.text, public_pem, algorithms=["RS256"])["data"]["status"] == "PROCESSING"
    finally:
        app.dependency_overrides.clear()
