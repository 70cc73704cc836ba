"""
Install strategy: deploy every contract listed under ``smartContracts``.

    smartContracts:
      - id: helloworld
        version: v0
        path: contracts/helloworld.json   # {"bytecode": "0x...", "abi": [...]}
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ledgerbench.bench.errors import ConfigurationError, OperationFailure
from ledgerbench.sut.config import resolve_path
from ledgerbench.sut.ledger.rpc import RpcClient, client_for

log = logging.getLogger("ledgerbench.sut.install")


def _load_artifact(contract: Mapping[str, Any], workspace_root: str) -> Dict[str, Any]:
    path = contract.get("path")
    if not path:
        raise ConfigurationError(f"smart contract '{contract.get('id')}' has no 'path'")

    p = Path(resolve_path(path, workspace_root))
    if not p.exists():
        raise ConfigurationError(f"smart contract artifact not found: {p}")

    artifact = json.loads(p.read_text(encoding="utf-8"))
    if not artifact.get("bytecode"):
        raise ConfigurationError(f"smart contract artifact {p} has no 'bytecode'")
    return artifact


def _address_of(result: Any) -> str:
    if isinstance(result, Mapping):
        return str(result.get("contractAddress") or result.get("address") or "")
    return str(result or "")


async def run(settings: Mapping[str, Any], workspace_root: str, *, rpc: Optional[RpcClient] = None) -> Dict[str, str]:
    """Deploy each contract and return {contract id: deployed address}."""
    client = client_for(settings, rpc)
    addresses: Dict[str, str] = {}

    for contract in settings.get("smartContracts") or []:
        contract_id = contract.get("id")
        if not contract_id:
            raise ConfigurationError("every entry of smartContracts needs an 'id'")

        artifact = _load_artifact(contract, workspace_root)
        result = await client.call(
            "deployContract",
            [
                client.group_id,
                {
                    "id": contract_id,
                    "version": str(contract.get("version", "")),
                    "bytecode": artifact["bytecode"],
                    "abi": artifact.get("abi", []),
                },
            ],
        )

        address = _address_of(result)
        if not address:
            raise OperationFailure(f"deployContract for '{contract_id}' returned no address")
        addresses[contract_id] = address
        log.info(f"Deployed {contract_id} at {address}")

    return addresses
