import json

import httpx
import pytest

from niomon.config.schema import ProviderConfig
from niomon.provider.rpc import DEFAULT_ALCHEMY_ID_ENV, SHARED_ALCHEMY_ID, JsonRpcEndpoint, resolve_rpc_url
from niomon.utils.exceptions import ConfigurationError, DecodeError, ProviderRpcError


def _options(**kwargs) -> ProviderConfig:
    return ProviderConfig(app_id="app", **{"chain_id": 1, **kwargs})


def test_alchemy_wins_over_infura_and_rpc():
    options = _options(alchemy_id="al", infura_id="in", rpc="https://rpc.example")
    assert resolve_rpc_url(options) == "https://eth-mainnet.alchemyapi.io/v2/al"


def test_infura_then_rpc_map():
    assert resolve_rpc_url(_options(chain_id=137, infura_id="in")) == "https://polygon-mainnet.infura.io/v3/in"
    assert resolve_rpc_url(_options(chain_id=5, rpc={5: "https://goerli.example"})) == "https://goerli.example"
    assert resolve_rpc_url(_options(rpc="https://single.example")) == "https://single.example"


def test_rpc_map_without_current_chain():
    with pytest.raises(ConfigurationError, match="Could not resolve rpc provider"):
        resolve_rpc_url(_options(rpc={5: "https://goerli.example"}))


def test_unknown_chain():
    with pytest.raises(ConfigurationError, match="Unknown network"):
        resolve_rpc_url(_options(chain_id=999, alchemy_id="al"))


def test_fallback_uses_env_then_shared_key(monkeypatch):
    monkeypatch.delenv(DEFAULT_ALCHEMY_ID_ENV, raising=False)
    assert resolve_rpc_url(_options(chain_id=80001)) == (
        f"https://polygon-mumbai.g.alchemy.com/v2/{SHARED_ALCHEMY_ID}"
    )
    monkeypatch.setenv(DEFAULT_ALCHEMY_ID_ENV, "team-key")
    assert resolve_rpc_url(_options()) == "https://eth-mainnet.alchemyapi.io/v2/team-key"


@pytest.mark.asyncio
async def test_send_posts_incrementing_jsonrpc_ids():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0x10"})

    endpoint = JsonRpcEndpoint("https://rpc.example", transport=httpx.MockTransport(handler))
    assert await endpoint.send("eth_blockNumber") == "0x10"
    assert await endpoint.send("eth_getBalance", ["0xabc", "latest"]) == "0x10"
    await endpoint.aclose()

    assert bodies == [
        {"jsonrpc": "2.0", "id": 1, "method": "eth_blockNumber", "params": []},
        {"jsonrpc": "2.0", "id": 2, "method": "eth_getBalance", "params": ["0xabc", "latest"]},
    ]


@pytest.mark.asyncio
async def test_send_raises_on_error_member():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "nonce too low"}})

    endpoint = JsonRpcEndpoint("https://rpc.example", transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderRpcError) as exc_info:
        await endpoint.send("eth_sendRawTransaction", ["0x00"])
    assert exc_info.value.to_dict() == {"code": -32000, "message": "nonce too low"}


@pytest.mark.asyncio
async def test_send_rejects_non_json():
    endpoint = JsonRpcEndpoint("https://rpc.example", transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>")))
    with pytest.raises(DecodeError):
        await endpoint.send("eth_chainId")
