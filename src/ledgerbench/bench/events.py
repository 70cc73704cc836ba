from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

log = logging.getLogger("ledgerbench.events")

Listener = Callable[[Any], None]


class Events:
    TXS_SUBMITTED = "txsSubmitted"
    TXS_FINISHED = "txsFinished"

    ALL = (TXS_SUBMITTED, TXS_FINISHED)


class EventChannel:
    """
    Per-connector observer channel.

    Only the two connector events exist. A listener that raises is logged
    and skipped so that emitting never fails the call path.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {name: [] for name in Events.ALL}

    def _check(self, name: str) -> None:
        if name not in self._listeners:
            raise ValueError(f"Unknown connector event: {name!r} (expected one of {', '.join(Events.ALL)})")

    def on(self, name: str, listener: Listener) -> Listener:
        self._check(name)
        self._listeners[name].append(listener)
        return listener

    def off(self, name: str, listener: Listener) -> None:
        self._check(name)
        try:
            self._listeners[name].remove(listener)
        except ValueError:
            pass

    def listener_count(self, name: str) -> int:
        self._check(name)
        return len(self._listeners[name])

    def emit(self, name: str, payload: Any) -> None:
        self._check(name)
        for listener in list(self._listeners[name]):
            try:
                listener(payload)
            except Exception as e:
                log.error(f"Listener {listener!r} failed on {name}: {e}", exc_info=True)
