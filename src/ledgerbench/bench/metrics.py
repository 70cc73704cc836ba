import statistics
from typing import Any, Dict, List, Optional, Union

from ledgerbench.bench.connector import BlockchainConnector
from ledgerbench.bench.events import Events
from ledgerbench.bench.types import TxStatus


class Metrics:
    """
    Harness-side observer of a connector's event channel.

    submitted/finished must meet again once every batch settled, failed
    elements included; ``pending`` shows the gap while they are in flight.
    """

    def __init__(self) -> None:
        self.submitted = 0
        self.results: List[TxStatus] = []

    def attach(self, connector: BlockchainConnector) -> "Metrics":
        connector.events.on(Events.TXS_SUBMITTED, self.on_submitted)
        connector.events.on(Events.TXS_FINISHED, self.on_finished)
        return self

    def detach(self, connector: BlockchainConnector) -> None:
        connector.events.off(Events.TXS_SUBMITTED, self.on_submitted)
        connector.events.off(Events.TXS_FINISHED, self.on_finished)

    def on_submitted(self, count: int) -> None:
        self.submitted += int(count)

    def on_finished(self, results: Union[TxStatus, List[TxStatus]]) -> None:
        if isinstance(results, TxStatus):
            results = [results]
        self.results.extend(results)

    @property
    def finished(self) -> int:
        return len(self.results)

    @property
    def pending(self) -> int:
        return self.submitted - self.finished

    def reset(self) -> None:
        self.submitted = 0
        self.results = []

    def aggregate(self) -> Dict[str, Any]:
        # results: [TxStatus(status, time_create, time_final, ...), ...]
        ok = [r for r in self.results if r.is_committed()]
        latencies = sorted(ms for ms in (r.latency() for r in ok) if ms is not None)

        return {
            "submitted": self.submitted,
            "finished": self.finished,
            "pending": self.pending,
            "succeeded": len(ok),
            "failed": self.finished - len(ok),
            "latency_ms": {
                "min": latencies[0] if latencies else None,
                "max": latencies[-1] if latencies else None,
                "avg": statistics.fmean(latencies) if latencies else None,
                "p50": _percentile(latencies, 0.50),
                "p95": _percentile(latencies, 0.95),
            },
        }


def _percentile(sorted_values: List[int], q: float) -> Optional[int]:
    if not sorted_values:
        return None
    index = min(int(q * len(sorted_values)), len(sorted_values) - 1)
    return sorted_values[index]
