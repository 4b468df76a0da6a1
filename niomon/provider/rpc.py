"""
Direct JSON-RPC endpoint for chain calls that need no session.

Endpoint resolution: Alchemy, then Infura, then an explicit ``rpc`` URL (single or
per chain), then the shared Alchemy fallback.
"""

from __future__ import annotations

import os
from typing import Any

import httpx
from loguru import logger

from niomon.config.schema import ProviderConfig
from niomon.utils.exceptions import ConfigurationError, DecodeError, ProviderRpcError

NETWORK_NAMES: dict[int, str] = {
    1: "homestead",
    3: "ropsten",
    4: "rinkeby",
    5: "goerli",
    42: "kovan",
    137: "matic",
    80001: "maticmum",
}

ALCHEMY_HOSTS: dict[str, str] = {
    "homestead": "eth-mainnet.alchemyapi.io",
    "ropsten": "eth-ropsten.alchemyapi.io",
    "rinkeby": "eth-rinkeby.alchemyapi.io",
    "goerli": "eth-goerli.alchemyapi.io",
    "kovan": "eth-kovan.alchemyapi.io",
    "matic": "polygon-mainnet.g.alchemy.com",
    "maticmum": "polygon-mumbai.g.alchemy.com",
}

INFURA_HOSTS: dict[str, str] = {
    "homestead": "mainnet.infura.io",
    "ropsten": "ropsten.infura.io",
    "rinkeby": "rinkeby.infura.io",
    "goerli": "goerli.infura.io",
    "kovan": "kovan.infura.io",
    "matic": "polygon-mainnet.infura.io",
    "maticmum": "polygon-mumbai.infura.io",
}

DEFAULT_ALCHEMY_ID_ENV = "NIOMON_DEFAULT_ALCHEMY_ID"
# Public shared key, heavily rate limited.
SHARED_ALCHEMY_ID = "_gg7wSSi0KMBsdKnGVfHDueq6xMB9EkC"


class JsonRpcEndpoint:
    """Plain HTTP JSON-RPC 2.0 client."""

    def __init__(
        self,
        url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.url = url
        self._next_id = 0
        self.http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def send(self, method: str, params: list[Any] | None = None) -> Any:
        """Call ``method``; an ``error`` member in the reply raises ProviderRpcError."""
        self._next_id += 1
        body = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params or []}
        resp = await self.http.post(self.url, json=body)
        resp.raise_for_status()
        try:
            data = resp.json()
        except ValueError as e:
            raise DecodeError(f"invalid JSON-RPC response: {e}", source=method) from e
        if not isinstance(data, dict):
            raise DecodeError("invalid JSON-RPC response", source=method)

        error = data.get("error")
        if error is not None:
            row = error if isinstance(error, dict) else {}
            code = row.get("code")
            raise ProviderRpcError(
                code if isinstance(code, int) else -32603,
                str(row.get("message") or error),
                row.get("data"),
            )
        return data.get("result")

    async def aclose(self) -> None:
        await self.http.aclose()


def resolve_rpc_url(options: ProviderConfig) -> str:
    network = NETWORK_NAMES.get(options.chain_id)
    if not network:
        raise ConfigurationError("Unknown network", field="chain_id")
    if options.alchemy_id:
        return f"https://{ALCHEMY_HOSTS[network]}/v2/{options.alchemy_id}"
    if options.infura_id:
        return f"https://{INFURA_HOSTS[network]}/v3/{options.infura_id}"
    if options.rpc:
        if isinstance(options.rpc, str):
            return options.rpc
        url = options.rpc.get(options.chain_id)
        if not url:
            raise ConfigurationError("Could not resolve rpc provider", field="rpc")
        return url

    logger.info("Ditto Provider: using fallback RPC")
    alchemy_id = os.environ.get(DEFAULT_ALCHEMY_ID_ENV) or SHARED_ALCHEMY_ID
    return f"https://{ALCHEMY_HOSTS[network]}/v2/{alchemy_id}"


def build_rpc_endpoint(
    options: ProviderConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> JsonRpcEndpoint:
    return JsonRpcEndpoint(resolve_rpc_url(options), transport=transport)
