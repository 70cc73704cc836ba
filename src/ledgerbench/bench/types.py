from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

MANAGER_INDEX = -1

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ConnectorIdentity:
    worker_index: int  # -1 for the manager process, >= 0 for a worker
    sut_type: str      # e.g. "ledger"

    def __post_init__(self) -> None:
        if self.worker_index < MANAGER_INDEX:
            raise ValueError(f"worker_index must be >= {MANAGER_INDEX}, got {self.worker_index}")

    @property
    def is_manager(self) -> bool:
        return self.worker_index == MANAGER_INDEX


@dataclass(frozen=True)
class TxStatus:
    """
    Outcome of one submitted operation.

    Produced by the call strategies, consumed by whoever listens to
    ``txsFinished``. ``time_final`` is 0 while the outcome is unknown.
    """

    tx_id: str
    status: str                      # "success" | "failed"
    time_create: int                 # ms since epoch
    time_final: int = 0
    result: Any = None
    error_messages: Tuple[str, ...] = ()
    custom_data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, tx_id: Optional[str], time_create: int, result: Any = None, **custom: Any) -> "TxStatus":
        return cls(
            tx_id=tx_id or new_tx_id(),
            status=STATUS_SUCCESS,
            time_create=time_create,
            time_final=now_ms(),
            result=result,
            custom_data=dict(custom),
        )

    @classmethod
    def failure(cls, tx_id: Optional[str], time_create: int, *errors: str, **custom: Any) -> "TxStatus":
        return cls(
            tx_id=tx_id or new_tx_id(),
            status=STATUS_FAILED,
            time_create=time_create,
            time_final=now_ms(),
            error_messages=tuple(str(e) for e in errors),
            custom_data=dict(custom),
        )

    @classmethod
    def from_exception(cls, error: BaseException, time_create: Optional[int] = None) -> "TxStatus":
        message = str(error) or type(error).__name__
        return cls.failure(None, time_create if time_create is not None else now_ms(), message, exception=type(error).__name__)

    def is_committed(self) -> bool:
        return self.status == STATUS_SUCCESS

    def latency(self) -> Optional[int]:
        if not self.time_final:
            return None
        return self.time_final - self.time_create

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_id": self.tx_id,
            "status": self.status,
            "time_create": self.time_create,
            "time_final": self.time_final,
            "result": self.result,
            "error_messages": list(self.error_messages),
            "custom_data": dict(self.custom_data),
        }


def new_tx_id() -> str:
    return uuid.uuid4().hex


ArgumentMap = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]
WorkerArgument = Dict[str, Any]


@dataclass
class InvocationRequest:
    contract_id: str
    contract_version: str
    args: Union[ArgumentMap, List[ArgumentMap]]  # a list of maps is a batch
    timeout: Optional[float] = None              # seconds, handed through to the call strategy
    read_only: bool = False


@dataclass
class RoundContext:
    round_index: int
    worker_args: WorkerArgument
    sut: Dict[str, Any] = field(default_factory=dict)  # connector-owned data
    engine: Optional[Any] = None                       # reserved for the harness, never touched by connectors
