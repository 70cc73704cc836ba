"""
JSON-RPC over HTTP, the wire every default ledger strategy speaks.

Settings shape (the ``network`` section of the SUT settings):

    network:
      nodes:
        - url: http://127.0.0.1:8545
      groupID: 1
      timeout: 10
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ledgerbench.bench.errors import ConfigurationError, ConnectivityError, RpcError

log = logging.getLogger("ledgerbench.sut.rpc")

DEFAULT_TIMEOUT_SECONDS = 10.0


class RpcClient:
    """
    One long-lived ``httpx.AsyncClient`` per connector, opened on first use.

    A client is bound to the event loop that opened it; a call from another
    loop opens a fresh one. ``aclose()`` releases the pool and the next call
    reopens it.
    """

    def __init__(self, network: Mapping[str, Any], transport: Optional[httpx.AsyncBaseTransport] = None):
        nodes = network.get("nodes") or []
        urls = [n.get("url") for n in nodes if isinstance(n, Mapping) and n.get("url")]
        if not urls:
            raise ConfigurationError("network.nodes must list at least one node with a 'url'")

        self.urls: List[str] = urls
        self.group_id = network.get("groupID", 1)
        raw_timeout = network.get("timeout", DEFAULT_TIMEOUT_SECONDS)
        try:
            self.timeout = float(raw_timeout)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"network.timeout must be a number of seconds, got {raw_timeout!r}") from e
        self.transport = transport

        self._next_node = itertools.cycle(range(len(urls)))
        self._ids = itertools.count(1)
        self._client: Optional[httpx.AsyncClient] = None
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._client.is_closed

    def _session(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        if not self.is_open or self._client_loop is not loop:
            self._client = httpx.AsyncClient(transport=self.transport, timeout=self.timeout)
            self._client_loop = loop
        return self._client

    async def aclose(self) -> None:
        client, loop = self._client, self._client_loop
        self._client, self._client_loop = None, None
        # a pool opened on a finished loop cannot be awaited any more
        if client is not None and not client.is_closed and loop is asyncio.get_running_loop():
            await client.aclose()

    def next_url(self) -> str:
        return self.urls[next(self._next_node)]

    async def call(
        self,
        method: str,
        params: Any,
        timeout: Optional[float] = None,
        url: Optional[str] = None,
    ) -> Any:
        """POST one JSON-RPC request and return its ``result``."""
        target = url or self.next_url()
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        try:
            response = await self._session().post(target, json=body, timeout=timeout or self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ConnectivityError(f"{method} to {target} failed: {e}") from e

        try:
            payload: Dict[str, Any] = response.json()
        except ValueError as e:
            raise ConnectivityError(f"{method} to {target} returned a non-JSON body") from e

        error = payload.get("error")
        if error:
            if isinstance(error, Mapping):
                raise RpcError(error.get("code"), str(error.get("message", "")), error.get("data"))
            raise RpcError(None, str(error))
        return payload.get("result")

    async def ping_all(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        heights = {}
        for url in self.urls:
            heights[url] = await self.call("getBlockNumber", [self.group_id], timeout=timeout, url=url)
            log.debug(f"node {url} at block {heights[url]}")
        return heights


def client_for(settings: Mapping[str, Any], rpc: Optional[RpcClient] = None) -> RpcClient:
    if rpc is not None:
        return rpc
    return RpcClient(settings.get("network") or {})
