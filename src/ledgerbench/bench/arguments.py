from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from ledgerbench.bench.types import ArgumentMap

FUNCTION_KEY = "transaction_type"


@dataclass(frozen=True)
class ContractCall:
    """
    One normalized contract call.

    ``function_name`` is None when the argument map carried no
    ``transaction_type`` key. In that case the first positional argument
    names the function, see :meth:`resolve`.
    """

    function_name: Optional[str]
    args: Tuple[str, ...] = ()

    def resolve(self) -> "ContractCall":
        if self.function_name is not None:
            return self
        if not self.args:
            raise ValueError("contract call has neither a transaction_type nor any argument to use as function name")
        return ContractCall(function_name=self.args[0], args=self.args[1:])

    def to_params(self) -> dict:
        resolved = self.resolve()
        return {"func": resolved.function_name, "args": list(resolved.args)}


def _entries(arg: ArgumentMap) -> Iterable[Tuple[str, Any]]:
    if isinstance(arg, Mapping):
        return arg.items()
    if isinstance(arg, (list, tuple)) and all(_is_pair(item) for item in arg):
        return arg
    raise TypeError(f"argument must be a mapping or a sequence of (key, value) pairs, got {type(arg).__name__}")


def _is_pair(item: Any) -> bool:
    return isinstance(item, (list, tuple)) and len(item) == 2 and isinstance(item[0], str)


def normalize_arguments(arg: ArgumentMap) -> ContractCall:
    # insertion order of the mapping (or the pair sequence) is the positional order
    function_name = None
    positional: List[str] = []
    for key, value in _entries(arg):
        if key == FUNCTION_KEY:
            function_name = str(value)
        else:
            positional.append(str(value))
    return ContractCall(function_name=function_name, args=tuple(positional))


def as_batch(args: Any) -> List[ArgumentMap]:
    """
    Wrap a single argument map into a one-element batch.

    A list whose items are all (key, value) pairs is one argument map,
    any other list is a batch of argument maps.
    """
    if isinstance(args, list) and not (args and all(_is_pair(item) for item in args)):
        return list(args)
    return [args]
