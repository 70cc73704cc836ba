"""
Offline transaction construction and dispatch.

generate() builds a transaction without touching the network and stores it
as JSON; send() pushes one previously generated transaction to a node.
"""

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from ledgerbench.bench.arguments import ContractCall
from ledgerbench.bench.errors import ConfigurationError, RpcError
from ledgerbench.bench.types import TxStatus, now_ms
from ledgerbench.sut.config import resolve_path
from ledgerbench.sut.ledger.invoke import receipt_failure
from ledgerbench.sut.ledger.rpc import RpcClient, client_for

log = logging.getLogger("ledgerbench.sut.raw")

DEFAULT_BLOCK_LIMIT = 500


def build_transaction(
    settings: Mapping[str, Any],
    contract_id: str,
    call: ContractCall,
    addresses: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    network = settings.get("network") or {}
    resolved = call.resolve()
    return {
        "groupID": network.get("groupID", 1),
        "to": (addresses or {}).get(contract_id, contract_id),
        "func": resolved.function_name,
        "args": list(resolved.args),
        "nonce": uuid.uuid4().hex,
        "blockLimit": int(network.get("blockLimit", DEFAULT_BLOCK_LIMIT)),
    }


async def generate(
    settings: Mapping[str, Any],
    workspace_root: str,
    contract_id: str,
    call: ContractCall,
    file: str,
    *,
    addresses: Optional[Mapping[str, str]] = None,
    rpc: Optional[RpcClient] = None,
) -> TxStatus:
    """Write the transaction to ``file``; the status tells whether that worked."""
    time_create = now_ms()
    tx = build_transaction(settings, contract_id, call, addresses)
    path = Path(resolve_path(file, workspace_root))

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(tx, f, indent=2)
    except OSError as e:
        log.error(f"Could not write raw transaction to {path}: {e}")
        return TxStatus.failure(tx["nonce"], time_create, str(e), file=str(path))

    return TxStatus.success(tx["nonce"], time_create, {"file": str(path)}, file=str(path))


def _load(transaction: Union[str, os.PathLike, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(transaction, Mapping):
        return transaction
    p = Path(transaction)
    if not p.exists():
        raise ConfigurationError(f"raw transaction file not found: {p}")
    return json.loads(p.read_text(encoding="utf-8"))


async def send(
    settings: Mapping[str, Any],
    transaction: Union[str, os.PathLike, Mapping[str, Any]],
    *,
    timeout: Optional[float] = None,
    rpc: Optional[RpcClient] = None,
) -> TxStatus:
    client = client_for(settings, rpc)
    tx = _load(transaction)

    time_create = now_ms()
    try:
        result = await client.call("sendRawTransaction", [client.group_id, dict(tx)], timeout=timeout)
    except RpcError as e:
        return TxStatus.failure(tx.get("nonce"), time_create, str(e))

    tx_id = (result.get("transactionHash") if isinstance(result, Mapping) else None) or tx.get("nonce")
    failure = receipt_failure(result)
    if failure:
        return TxStatus.failure(tx_id, time_create, failure)
    return TxStatus.success(tx_id, time_create, result)
