"""Invoke / query strategy for one normalized contract call."""

import logging
from typing import Any, Mapping, Optional

from ledgerbench.bench.arguments import ContractCall
from ledgerbench.bench.errors import RpcError
from ledgerbench.bench.types import TxStatus, now_ms
from ledgerbench.sut.ledger.rpc import RpcClient, client_for

log = logging.getLogger("ledgerbench.sut.invoke")

# receipt status values meaning "executed without exception"
_OK_RECEIPT_STATUS = {None, 0, "0", "0x0"}


def receipt_failure(result: Any) -> Optional[str]:
    if not isinstance(result, Mapping):
        return None
    status = result.get("status")
    if status in _OK_RECEIPT_STATUS:
        return None
    return str(result.get("message") or f"transaction receipt status {status}")


async def run(
    settings: Mapping[str, Any],
    contract_id: str,
    call: ContractCall,
    workspace_root: str,
    *,
    read_only: bool = False,
    timeout: Optional[float] = None,
    addresses: Optional[Mapping[str, str]] = None,
    rpc: Optional[RpcClient] = None,
) -> TxStatus:
    """
    Send one transaction (or a read-only call) and report its outcome.

    JSON-RPC errors are recorded in the returned TxStatus. Transport
    failures raise ConnectivityError.
    """
    client = client_for(settings, rpc)
    resolved = call.resolve()
    to = (addresses or {}).get(contract_id, contract_id)
    method = "call" if read_only else "sendTransaction"

    time_create = now_ms()
    try:
        result = await client.call(
            method,
            [client.group_id, {"to": to, "func": resolved.function_name, "args": list(resolved.args)}],
            timeout=timeout,
        )
    except RpcError as e:
        log.warning(f"{method} {contract_id}.{resolved.function_name} rejected: {e}")
        return TxStatus.failure(None, time_create, str(e), contract=contract_id, func=resolved.function_name)

    tx_id = result.get("transactionHash") if isinstance(result, Mapping) else None
    failure = receipt_failure(result)
    if failure:
        return TxStatus.failure(tx_id, time_create, failure, contract=contract_id, func=resolved.function_name)
    return TxStatus.success(tx_id, time_create, result, contract=contract_id, func=resolved.function_name)
