"""
Reference connector for JSON-RPC ledgers (SUT type "ledger").

The connector owns the settings and the round context; the actual
network work lives in the strategy modules next to it (install, invoke,
raw_transactions), which can be swapped through LedgerStrategies.
"""

from __future__ import annotations

import asyncio
import copy
import enum
import logging
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

import httpx

from ledgerbench.bench.arguments import as_batch, normalize_arguments
from ledgerbench.bench.connector import BlockchainConnector
from ledgerbench.bench.errors import ConfigurationError, ConnectivityError, ContextStateError, RpcError
from ledgerbench.bench.types import ArgumentMap, RoundContext, TxStatus, WorkerArgument
from ledgerbench.sut import config
from ledgerbench.sut.ledger import install, invoke, raw_transactions
from ledgerbench.sut.ledger.rpc import RpcClient

log = logging.getLogger("ledgerbench.sut.ledger")

SUT_TYPE = "ledger"


@dataclass(frozen=True)
class LedgerStrategies:
    install: Callable[..., Awaitable[Dict[str, str]]] = install.run
    invoke: Callable[..., Awaitable[TxStatus]] = invoke.run
    generate_raw: Callable[..., Awaitable[TxStatus]] = raw_transactions.generate
    send_raw: Callable[..., Awaitable[TxStatus]] = raw_transactions.send


class ContextState(enum.Enum):
    NO_CONTEXT = "no_context"
    ACTIVE = "active"


class LedgerConnector(BlockchainConnector):
    def __init__(
        self,
        worker_index: int,
        sut_type: str = SUT_TYPE,
        *,
        workspace_root: Optional[Union[str, Path]] = None,
        network_config: Optional[Union[str, Path, Mapping[str, Any]]] = None,
        strategies: Optional[LedgerStrategies] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(worker_index, sut_type)

        root = config.workspace_root(workspace_root)
        self.workspace_root = str(root)

        document = config.network_config(network_config, root)
        self.settings: Dict[str, Any] = copy.deepcopy(config.sut_settings(document, sut_type))

        network = self.settings.get("network")
        if not isinstance(network, dict):
            raise ConfigurationError(f"'{sut_type}.network' section missing or not a mapping")

        auth = network.get("authentication")
        if auth is not None:
            if not isinstance(auth, dict):
                raise ConfigurationError(f"'{sut_type}.network.authentication' must be a mapping")
            for k, v in auth.items():
                if not isinstance(v, (str, os.PathLike)):
                    raise ConfigurationError(
                        f"'{sut_type}.network.authentication.{k}' must be a path, got {type(v).__name__}"
                    )
                auth[k] = config.resolve_path(v, root)

        self.rpc = RpcClient(network, transport=transport)
        self.strategies = strategies or LedgerStrategies()

        self._addresses: Dict[str, str] = {}
        self._state = ContextState.NO_CONTEXT
        self._context: Optional[RoundContext] = None

    async def init(self, worker_init: bool = False) -> None:
        if not self.settings["network"].get("checkConnectivity"):
            return
        try:
            heights = await self.rpc.ping_all()
        except RpcError as e:
            log.error(f"Ledger connectivity check failed: {e}", exc_info=True)
            raise ConnectivityError(f"connectivity check failed: {e}") from e
        except ConnectivityError:
            log.error("Ledger connectivity check failed", exc_info=True)
            raise
        log.info(f"Ledger reachable ({'worker' if worker_init else 'manager'}): {heights}")

    async def install_smart_contract(self) -> None:
        try:
            deployed = await self.strategies.install(self.settings, self.workspace_root, rpc=self.rpc)
        except Exception as e:
            log.error(f"Ledger smart contract install failed: {e}", exc_info=True)
            raise
        self._addresses.update(deployed or {})

    async def prepare_worker_arguments(self, worker_count: int) -> List[WorkerArgument]:
        args = await super().prepare_worker_arguments(worker_count)
        if self._addresses:
            for arg in args:
                arg["contracts"] = dict(self._addresses)
        return args

    @property
    def context_state(self) -> ContextState:
        return self._state

    async def get_context(self, round_index: int, args: Optional[WorkerArgument]) -> RoundContext:
        if self._state is ContextState.ACTIVE:
            raise ContextStateError(
                f"round {self._context.round_index} context still active, release it before round {round_index}"
            )
        worker_args = dict(args or {})
        contracts = dict(worker_args.get("contracts") or {})
        self._addresses.update(contracts)

        self._context = RoundContext(round_index=round_index, worker_args=worker_args, sut={"contracts": contracts})
        self._state = ContextState.ACTIVE
        return self._context

    async def release_context(self) -> None:
        self._context = None
        self._state = ContextState.NO_CONTEXT
        await self.close()

    async def close(self) -> None:
        """Release the node connection pool; the next call reopens it."""
        await self.rpc.aclose()

    async def _call_one(self, contract_id: str, arg: ArgumentMap, read_only: bool, timeout: Optional[float]) -> TxStatus:
        call = normalize_arguments(arg)
        return await self.strategies.invoke(
            self.settings,
            contract_id,
            call,
            self.workspace_root,
            read_only=read_only,
            timeout=timeout,
            addresses=self._addresses,
            rpc=self.rpc,
        )

    async def _run_batch(self, operation: str, calls: Sequence[Callable[[], Awaitable[TxStatus]]]) -> List[TxStatus]:
        """
        Submit every call, wait for all of them, then report.

        One txsSubmitted(1) per element before the calls are issued, a
        single txsFinished with the index-aligned results once every call
        settled. A raised error becomes a failed TxStatus in the report and
        is re-raised afterwards.
        """
        if not calls:
            return []

        pending = []
        for call in calls:
            self._on_txs_submitted(1)
            pending.append(call())

        outcomes = await asyncio.gather(*pending, return_exceptions=True)

        results: List[TxStatus] = []
        errors: List[BaseException] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                errors.append(outcome)
                results.append(TxStatus.from_exception(outcome))
            else:
                results.append(outcome)

        self._on_txs_finished(results)

        if errors:
            log.error(f"Ledger {operation} failed for {len(errors)} of {len(results)} transaction(s): {errors[0]}", exc_info=errors[0])
            raise errors[0]
        return results

    def _calls(self, contract_id: str, args: Any, read_only: bool, timeout: Optional[float]):
        return [
            (lambda arg=arg: self._call_one(contract_id, arg, read_only, timeout))
            for arg in as_batch(args)
        ]

    async def invoke_smart_contract(
        self,
        contract_id: str,
        contract_version: str,
        args: Union[ArgumentMap, List[ArgumentMap]],
        timeout: Optional[float] = None,
    ) -> List[TxStatus]:
        """
        Invoke the contract once per argument map in ``args``.

        The function name comes from the ``transaction_type`` attribute;
        without it the first attribute names the function.
        """
        return await self._run_batch("invoke", self._calls(contract_id, args, False, timeout))

    async def query_smart_contract(
        self,
        contract_id: str,
        contract_version: str,
        args: Union[ArgumentMap, List[ArgumentMap]],
        timeout: Optional[float] = None,
    ) -> List[TxStatus]:
        return await self._run_batch("query", self._calls(contract_id, args, True, timeout))

    async def query_state(self, contract_id: str, contract_version: str, key: str, fcn: str) -> List[TxStatus]:
        warnings.warn(
            "query_state is deprecated, use query_smart_contract",
            DeprecationWarning,
            stacklevel=2,
        )
        arg = {"transaction_type": fcn, "key": key}
        return await self._run_batch("query", self._calls(contract_id, arg, True, None))

    async def generate_raw_transaction(self, contract_id: str, arg: ArgumentMap, file: str) -> TxStatus:
        self._on_txs_submitted(1)
        try:
            result = await self.strategies.generate_raw(
                self.settings,
                self.workspace_root,
                contract_id,
                normalize_arguments(arg),
                file,
                addresses=self._addresses,
                rpc=self.rpc,
            )
        except Exception as e:
            self._on_txs_finished(TxStatus.from_exception(e))
            log.error(f"Ledger raw transaction generation failed: {e}", exc_info=True)
            raise
        self._on_txs_finished(result)
        return result

    async def send_raw_transaction(self, context: Optional[RoundContext], transactions: Sequence[Any]) -> List[TxStatus]:
        if isinstance(transactions, (str, os.PathLike, Mapping)):
            transactions = [transactions]
        calls = [
            (lambda tx=tx: self.strategies.send_raw(self.settings, tx, rpc=self.rpc))
            for tx in transactions
        ]
        return await self._run_batch("send raw", calls)
