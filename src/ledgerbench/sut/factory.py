from typing import Any, Callable, Dict, Optional

from ledgerbench.bench.connector import BlockchainConnector
from ledgerbench.bench.errors import ConfigurationError
from ledgerbench.bench.types import MANAGER_INDEX
from ledgerbench.sut import config
from ledgerbench.sut.ledger.connector import SUT_TYPE as LEDGER_SUT_TYPE
from ledgerbench.sut.ledger.connector import LedgerConnector

ConnectorBuilder = Callable[..., BlockchainConnector]


class ConnectorFactory:
    """Builds the connector for the SUT selected through the environment."""

    def __init__(self) -> None:
        self._builders: Dict[str, ConnectorBuilder] = {LEDGER_SUT_TYPE: LedgerConnector}

    def register(self, sut_type: str, builder: ConnectorBuilder) -> None:
        self._builders[sut_type] = builder

    def supported(self) -> list:
        return sorted(self._builders)

    def build(self, worker_index: int = MANAGER_INDEX, sut_type: Optional[str] = None, **options: Any) -> BlockchainConnector:
        # 1) read env selection
        sut_type = sut_type or config.get(config.ENV_SUT_TYPE)
        if not sut_type:
            raise ConfigurationError(f"{config.ENV_SUT_TYPE} env missing")

        # 2) resolve builder
        builder = self._builders.get(sut_type)
        if builder is None:
            raise ConfigurationError(f"No connector for SUT type '{sut_type}' (known: {', '.join(self.supported())})")

        # 3) connector reads its own settings (workspace + network config)
        return builder(worker_index, sut_type, **options)

    def build_manager(self, **options: Any) -> BlockchainConnector:
        return self.build(MANAGER_INDEX, **options)

    def build_worker(self, worker_index: int, **options: Any) -> BlockchainConnector:
        if worker_index < 0:
            raise ValueError(f"worker index must be >= 0, got {worker_index}")
        return self.build(worker_index, **options)
