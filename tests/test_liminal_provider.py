import pytest
from unittest.mock import AsyncMock, MagicMock
from hotwallet_refill.core.errors import ConfigurationError, ProviderError
from hotwallet_refill.providers.base import TokenConfig, TransferRequest
from hotwallet_refill.providers.liminal import LiminalProvider, liminal_coin

AUTH_URL = "https://auth.liminal.test/oauth/token"


def _response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body if body is not None else {}
    resp.text = str(body)
    return resp


def _auth_response(expires_in=3600):
    return _response(body={"access_token": "token-abc", "expires_in": expires_in})


@pytest.fixture
def client():
    mock_client = MagicMock()
    mock_client.request = AsyncMock()
    mock_client.aclose = AsyncMock()
    return mock_client


@pytest.fixture
def liminal(client):
    return LiminalProvider(
        client_id="client-1",
        client_secret="secret",
        audience="https://api.liminal.test",
        base_url="https://api.liminal.test/",
        auth_url=AUTH_URL,
        env="prod",
        client=client,
    )


def _usdt():
    return TokenConfig(
        symbol="USDT",
        decimals=6,
        wallet_config={"liminal": {"walletId": "42"}},
        blockchain_symbol="ETH",
        native_coin="ETH",
        contract_address="0xdac17f958d2ee523a2206206994597c13d831ec7",
    )


def test_liminal_coin_mapping():
    assert liminal_coin(_usdt(), "prod") == ("eth", "usdt")
    assert liminal_coin(TokenConfig("ETH", 18, {}, native_coin="ETH"), "prod") == ("eth", None)
    assert liminal_coin(TokenConfig("AVAX", 18, {}, native_coin="BNB", contract_address="0x1"), "prod") == ("bnb", "avaxb")
    assert liminal_coin(TokenConfig("WRX", 8, {}, native_coin="BNB", contract_address="0x2"), "prod") == ("bnb", "wrxnew")
    assert liminal_coin(TokenConfig("ATOM", 6, {}), "prod") == ("uatom", None)
    assert liminal_coin(TokenConfig("ATOM", 6, {}), "dev") == ("umlg", None)


@pytest.mark.asyncio
async def test_initialize_authenticates(liminal, client):
    client.request.return_value = _auth_response()

    await liminal.initialize()

    method, url = client.request.await_args.args
    assert (method, url) == ("POST", AUTH_URL)
    body = client.request.await_args.kwargs["json"]
    assert body["grant_type"] == "client_credentials"
    assert body["audience"] == "https://api.liminal.test"


@pytest.mark.asyncio
async def test_initialize_requires_credentials(client):
    provider = LiminalProvider("", "", "", "https://api.liminal.test", AUTH_URL, client=client)
    with pytest.raises(ConfigurationError):
        await provider.initialize()
    client.request.assert_not_awaited()


@pytest.mark.asyncio
async def test_token_is_reused_until_near_expiry(liminal, client):
    client.request.side_effect = [
        _auth_response(),
        _response(body={"data": {"spendableBalanceInLowerDenom": "1000"}}),
        _response(body={"data": {"spendableBalanceInLowerDenom": "2000"}}),
    ]

    assert await liminal.get_token_balance(_usdt()) == "1000"
    assert await liminal.get_token_balance(_usdt()) == "2000"
    assert client.request.await_count == 3


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed(liminal, client):
    client.request.side_effect = [
        _auth_response(expires_in=30),
        _response(body={"spendableBalanceInLowerDenom": "1"}),
        _auth_response(),
        _response(body={"spendableBalanceInLowerDenom": "2"}),
    ]

    await liminal.get_token_balance(_usdt())
    await liminal.get_token_balance(_usdt())
    auth_calls = [c for c in client.request.await_args_list if c.args[1] == AUTH_URL]
    assert len(auth_calls) == 2


@pytest.mark.asyncio
async def test_balance_request_and_human_fallback(liminal, client):
    client.request.side_effect = [
        _auth_response(),
        _response(body={"data": {"spendableBalance": "12.5"}}),
    ]

    assert await liminal.get_token_balance(_usdt()) == "12500000"

    call = client.request.await_args
    assert call.args[1] == "https://api.liminal.test/api/wallet/balance"
    assert call.kwargs["params"] == {
        "coin": "eth",
        "walletId": "42",
        "tokenName": "usdt",
        "tokenAddress": "0xdac17f958d2ee523a2206206994597c13d831ec7",
    }
    assert call.kwargs["headers"]["Authorization"] == "Bearer token-abc"


@pytest.mark.asyncio
async def test_missing_balance_raises(liminal, client):
    client.request.side_effect = [_auth_response(), _response(body={"data": {}})]
    with pytest.raises(ProviderError):
        await liminal.get_token_balance(_usdt())


@pytest.mark.asyncio
async def test_transfer_request(liminal, client):
    client.request.side_effect = [
        _auth_response(),
        _response(body={"success": True, "data": {"id": 9001, "status": 1}}),
    ]
    transfer = TransferRequest(
        cold_wallet_id="42",
        hot_wallet_id="0xhot",
        hot_wallet_address="0xhot",
        amount="250",
        asset="USDT",
        external_id="req-001_5",
        token=_usdt(),
    )

    result = await liminal.create_transfer_request(transfer)

    assert result.provider_tx_id == "9001"
    assert result.status == "1"
    payload = client.request.await_args.kwargs["json"]
    assert payload["walletId"] == "42"
    assert payload["sequenceId"] == "req-001_5"
    assert payload["recipients"] == [{"address": "0xhot", "amount": "250"}]
    assert payload["tokenName"] == "usdt"


@pytest.mark.asyncio
async def test_transaction_status(liminal, client):
    client.request.side_effect = [
        _auth_response(),
        _response(body={"data": {"id": 9001, "status": 4, "txid": "0xabc"}}),
    ]

    tx = await liminal.get_transaction_by_id("9001")

    assert tx.status == "4"
    assert tx.tx_hash == "0xabc"
    assert client.request.await_args.args[1] == "https://api.liminal.test/api/wallet/transfer-request/9001"


@pytest.mark.asyncio
async def test_validate_credentials_failure(liminal, client):
    client.request.side_effect = [_response(401, {"error": "access_denied"})]

    result = await liminal.validate_credentials()
    assert result["success"] is False
    assert result["code"] == "CREDENTIAL_VALIDATION_ERROR"
