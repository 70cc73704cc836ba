"""Error taxonomy shared by the connector layer."""

from __future__ import annotations

from typing import Any, Optional


class LedgerBenchError(Exception):
    """Base class for every error raised by ledgerbench."""


class UnimplementedOperation(LedgerBenchError, NotImplementedError):
    """A connector did not override one of the contract operations."""

    def __init__(self, operation: str, connector: Optional[str] = None) -> None:
        self.operation = operation
        self.connector = connector
        where = f" for the {connector} connector" if connector else " for this connector"
        super().__init__(f"{operation} is not implemented{where}")


class ConfigurationError(LedgerBenchError):
    """Missing or malformed SUT settings."""


class ConnectivityError(LedgerBenchError):
    """The SUT could not be reached (init or contract install)."""


class OperationFailure(LedgerBenchError):
    """A single invoke/query element failed."""


class RpcError(OperationFailure):
    """The node answered a JSON-RPC request with an error object."""

    def __init__(self, code: Any, message: str, data: Any = None) -> None:
        self.code = code
        self.data = data
        super().__init__(f"RPC error {code}: {message}")


class ContextStateError(LedgerBenchError):
    """get_context was called while a round context is still live."""


__all__ = [
    "LedgerBenchError",
    "UnimplementedOperation",
    "ConfigurationError",
    "ConnectivityError",
    "OperationFailure",
    "RpcError",
    "ContextStateError",
]
