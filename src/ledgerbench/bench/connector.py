"""
Connector contract.

Every SUT adapter derives from BlockchainConnector. The manager process
(worker index -1) calls init, install_smart_contract and
prepare_worker_arguments; every worker calls init, then
get_context / invoke / query / release_context once per round.

Async-only. Nothing here talks to a SUT.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Union

from ledgerbench.bench.errors import UnimplementedOperation
from ledgerbench.bench.events import EventChannel, Events
from ledgerbench.bench.types import (
    ArgumentMap,
    ConnectorIdentity,
    InvocationRequest,
    RoundContext,
    TxStatus,
    WorkerArgument,
)


class BlockchainConnector:
    def __init__(self, worker_index: int, sut_type: str):
        self.identity = ConnectorIdentity(worker_index=worker_index, sut_type=sut_type)
        self.events = EventChannel()

    def _on_txs_submitted(self, count: int) -> None:
        """Raise txsSubmitted with the number of submitted transactions."""
        self.events.emit(Events.TXS_SUBMITTED, count)

    def _on_txs_finished(self, results: Union[TxStatus, List[TxStatus]]) -> None:
        """Raise txsFinished with the result(s) of finished transactions."""
        self.events.emit(Events.TXS_FINISHED, results)

    def get_type(self) -> str:
        return self.identity.sut_type

    def get_worker_index(self) -> int:
        return self.identity.worker_index

    def _unimplemented(self, operation: str) -> UnimplementedOperation:
        return UnimplementedOperation(operation, self.identity.sut_type)

    async def init(self, worker_init: bool = False) -> None:
        """
        Prepare SUT-wide resources (e.g. check the network is reachable).

        worker_init tells whether this runs in a worker process.
        """
        raise self._unimplemented("init")

    async def install_smart_contract(self) -> None:
        """Deploy the configured contracts. Manager process only."""
        raise self._unimplemented("install_smart_contract")

    async def prepare_worker_arguments(self, worker_count: int) -> List[WorkerArgument]:
        """
        Material for each worker, index-aligned with the worker index.

        The result crosses a process boundary, so it must stay plain data.
        Defaults to one empty dict per worker.
        """
        if worker_count < 0:
            raise ValueError(f"worker_count must be >= 0, got {worker_count}")
        return [{} for _ in range(worker_count)]

    async def get_context(self, round_index: int, args: WorkerArgument) -> RoundContext:
        """
        Acquire per-round resources.

        The returned context's ``engine`` attribute belongs to the harness.
        """
        raise self._unimplemented("get_context")

    async def release_context(self) -> None:
        """Release whatever the last get_context acquired."""
        raise self._unimplemented("release_context")

    async def invoke_smart_contract(
        self,
        contract_id: str,
        contract_version: str,
        args: Union[ArgumentMap, List[ArgumentMap]],
        timeout: Optional[float] = None,
    ) -> List[TxStatus]:
        raise self._unimplemented("invoke_smart_contract")

    async def query_smart_contract(
        self,
        contract_id: str,
        contract_version: str,
        args: Union[ArgumentMap, List[ArgumentMap]],
        timeout: Optional[float] = None,
    ) -> List[TxStatus]:
        raise self._unimplemented("query_smart_contract")

    async def query_state(self, contract_id: str, contract_version: str, key: str, fcn: str) -> List[TxStatus]:
        """Deprecated single-key query, kept for older workloads."""
        raise self._unimplemented("query_state")

    async def generate_raw_transaction(self, contract_id: str, arg: ArgumentMap, file: str) -> TxStatus:
        raise self._unimplemented("generate_raw_transaction")

    async def send_raw_transaction(self, context: Optional[RoundContext], transactions: Sequence[Any]) -> List[TxStatus]:
        raise self._unimplemented("send_raw_transaction")

    async def execute(self, request: InvocationRequest) -> List[TxStatus]:
        if request.read_only:
            return await self.query_smart_contract(
                request.contract_id, request.contract_version, request.args, request.timeout
            )
        return await self.invoke_smart_contract(
            request.contract_id, request.contract_version, request.args, request.timeout
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(worker_index={self.get_worker_index()}, sut_type={self.get_type()!r})"
