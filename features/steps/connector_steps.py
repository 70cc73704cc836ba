import asyncio
import copy
import logging
import os
import warnings
from pathlib import Path

import yaml
from behave import given, when, then

from ledgerbench.bench.errors import OperationFailure
from ledgerbench.bench.events import Events
from ledgerbench.bench.types import TxStatus, now_ms
from ledgerbench.sut import config
from ledgerbench.sut.ledger import raw_transactions
from ledgerbench.sut.ledger.connector import ContextState, LedgerConnector, LedgerStrategies

NETWORK = {
    "ledger": {
        "network": {
            "nodes": [{"url": "http://node0.test:8545"}, {"url": "http://node1.test:8545"}],
            "groupID": 1,
            "authentication": {"key": "keys/account.key", "cert": "keys/account.crt"},
        },
        "smartContracts": [{"id": "simple", "version": "v0", "path": "contracts/simple.json"}],
    }
}


class RecordingStrategies:
    """Stands in for the network strategies; generate_raw stays the real, offline one."""

    def __init__(self):
        self.invoke_calls = []
        self.settled = 0
        self.fail_at = set()          # 1-based batch positions
        self.later_first = False
        self.install_error = None
        self.sent = []

    async def install(self, settings, workspace_root, **kwargs):
        if self.install_error is not None:
            raise self.install_error
        return {"simple": "0xabc"}

    async def invoke(self, settings, contract_id, call, workspace_root, **kwargs):
        position = len(self.invoke_calls) + 1
        self.invoke_calls.append({"contract_id": contract_id, "call": call, **kwargs})

        if position in self.fail_at:
            await asyncio.sleep(0)
            self.settled += 1
            raise OperationFailure(f"element {position} rejected")

        await asyncio.sleep(0.01 * (10 - position) if self.later_first else 0.02)
        self.settled += 1
        return TxStatus.success(f"tx-{position}", now_ms(), {"func": call.function_name, "args": list(call.args)})

    async def send_raw(self, settings, transaction, **kwargs):
        self.sent.append(transaction)
        return TxStatus.success(f"raw-{len(self.sent)}", now_ms(), {"status": "0x0"})

    def bundle(self):
        return LedgerStrategies(
            install=self.install,
            invoke=self.invoke,
            generate_raw=raw_transactions.generate,
            send_raw=self.send_raw,
        )


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


def _call(context, coro):
    context.error = None
    context.result = None
    try:
        context.result = asyncio.run(coro)
    except Exception as e:
        context.error = e


def _create(context, worker_index, **kwargs):
    context.error = None
    kwargs.setdefault("workspace_root", context.workspace)
    try:
        context.connector = LedgerConnector(worker_index, **kwargs)
    except Exception as e:
        context.error = e


def _set_env(context, key, value):
    previous = os.environ.get(key)
    os.environ[key] = value

    def restore():
        if previous is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = previous

    context.add_cleanup(restore)


def _transfers(count):
    return [
        {"transaction_type": "transfer", "from": f"acc-{i}", "to": "acc-x", "amount": str(i + 1)}
        for i in range(count)
    ]


def _recorded(context, name):
    return [payload for event, payload in context.recorded if event == name]


@given("a workspace with a ledger network configuration")
def step_workspace(context):
    context.network = copy.deepcopy(NETWORK)


@given('the network configuration is written to "{path}"')
def step_write_network(context, path):
    target = Path(context.workspace) / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(yaml.safe_dump(context.network, sort_keys=False), encoding="utf-8")


@given('the environment points at "{path}"')
def step_env(context, path):
    _set_env(context, config.ENV_WORKSPACE, str(context.workspace))
    _set_env(context, config.ENV_NETWORK_CONFIG, path)


@given('the network configuration has no "{section}" section')
def step_drop_section(context, section):
    context.network.pop(section, None)
    context.network["other"] = {"network": {}}


@given('the file "{path}" contains "{text}"')
def step_file_contains(context, path, text):
    target = Path(context.workspace) / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")


@given("the ledger network lists no nodes")
def step_no_nodes(context):
    context.network["ledger"]["network"]["nodes"] = []


@when("I create a ledger connector for worker {index:d}")
def step_create(context, index):
    _create(context, index, network_config=context.network)


@when("I create a ledger connector from the environment")
def step_create_from_env(context):
    _create(context, 0, workspace_root=None)


@when('I create a ledger connector from the file "{path}"')
def step_create_from_file(context, path):
    _create(context, 0, network_config=path)


@then('the authentication entry "{name}" points into the workspace at "{relative}"')
def step_auth_path(context, name, relative):
    expected = str((Path(context.workspace) / relative).resolve())
    actual = context.connector.settings["network"]["authentication"][name]
    assert actual == expected, f"{actual} != {expected}"
    # the caller's document is left untouched
    assert context.network["ledger"]["network"]["authentication"][name] == relative


@then("the connector knows {count:d} node(s)")
def step_nodes(context, count):
    assert len(context.connector.rpc.urls) == count


@given("a ledger connector for worker {index:d} with recording strategies")
def step_recording_connector(context, index):
    context.strategies = RecordingStrategies()
    _create(context, index, network_config=context.network, strategies=context.strategies.bundle())
    assert context.error is None, context.error


@given("the invoke strategy finishes later elements first")
def step_later_first(context):
    context.strategies.later_first = True


@given("the invoke strategy rejects element {position:d} of the batch")
def step_reject(context, position):
    context.strategies.fail_at.add(position)


@given('the install strategy fails with "{message}"')
def step_install_fails(context, message):
    context.strategies.install_error = RuntimeError(message)
    handler = _ListHandler()
    logger = logging.getLogger("ledgerbench.sut.ledger")
    logger.addHandler(handler)
    context.add_cleanup(logger.removeHandler, handler)
    context.log_handler = handler


@when("I initialise the connector")
def step_init(context):
    _call(context, context.connector.init(True))


@when("I get the context for round {index:d}")
def step_get_context(context, index):
    _call(context, context.connector.get_context(index, {}))
    if context.error is None:
        context.round_context = context.result


@when('I get the context for round {index:d} with contract "{contract}" at "{address}"')
def step_get_context_with_contract(context, index, contract, address):
    _call(context, context.connector.get_context(index, {"contracts": {contract: address}}))


@when("I release the context")
def step_release(context):
    _call(context, context.connector.release_context())


@then("the context belongs to round {index:d}")
def step_context_round(context, index):
    assert context.error is None, context.error
    assert context.round_context.round_index == index


@then("the context leaves the engine slot empty")
def step_engine_empty(context):
    assert context.round_context.engine is None


@then("I can get the context for round {index:d}")
def step_can_get_context(context, index):
    _call(context, context.connector.get_context(index, {}))
    assert context.error is None, context.error


@when("I install the smart contracts")
def step_install(context):
    _call(context, context.connector.install_smart_contract())


@then("the original install error is raised")
def step_original_install_error(context):
    assert context.error is context.strategies.install_error


@then("the failure was logged")
def step_logged(context):
    errors = [r for r in context.log_handler.records if r.levelno >= logging.ERROR]
    assert errors, "nothing logged at ERROR"
    assert errors[0].exc_info is not None


@when("I prepare worker arguments for {count:d} workers")
def step_prepare(context, count):
    _call(context, context.connector.prepare_worker_arguments(count))


@then('every worker argument lists contract "{contract}" at "{address}"')
def step_worker_args_contract(context, contract, address):
    assert context.result, context.result
    assert all(arg["contracts"] == {contract: address} for arg in context.result)
    assert len({id(arg["contracts"]) for arg in context.result}) == len(context.result)


@when("I invoke a batch of {count:d} transfers")
def step_invoke_batch(context, count):
    context.batch_args = _transfers(count)
    _call(context, context.connector.invoke_smart_contract("simple", "v0", context.batch_args, 30))


@when("I invoke a single transfer")
def step_invoke_single(context):
    context.batch_args = _transfers(1)
    _call(context, context.connector.invoke_smart_contract("simple", "v0", context.batch_args[0], 30))


@when("I invoke an empty batch")
def step_invoke_empty(context):
    _call(context, context.connector.invoke_smart_contract("simple", "v0", [], 30))


@when("I query a batch of {count:d} balances")
def step_query_batch(context, count):
    context.batch_args = [{"transaction_type": "balance", "from": f"acc-{i}"} for i in range(count)]
    _call(context, context.connector.query_smart_contract("simple", "v0", context.batch_args, 5))


@when('I query the state of key "{key}" with function "{fcn}"')
def step_query_state(context, key, fcn):
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        _call(context, context.connector.query_state("simple", "v0", key, fcn))
    context.caught_warnings = caught


@then("{count:d} submissions of 1 were announced before the finished event")
def step_submissions(context, count):
    names = [event for event, _ in context.recorded]
    assert names == [Events.TXS_SUBMITTED] * count + [Events.TXS_FINISHED], names
    assert _recorded(context, Events.TXS_SUBMITTED) == [1] * count


@then("the finished event carries {count:d} results aligned with the batch")
def step_finished_aligned(context, count):
    finished = _recorded(context, Events.TXS_FINISHED)
    assert len(finished) == 1, finished
    results = finished[0]
    assert len(results) == count
    for arg, result in zip(context.batch_args, results):
        assert isinstance(result, TxStatus)
        if result.is_committed():
            assert result.result["args"][0] == arg["from"], (arg, result)


@then("the returned results equal the finished results")
def step_returned_equal(context):
    assert context.result == _recorded(context, Events.TXS_FINISHED)[0]


@then("all {count:d} calls settled before the batch failed")
def step_all_settled(context, count):
    assert context.strategies.settled == count


@then("finished result {position:d} is failed")
def step_result_failed(context, position):
    result = _recorded(context, Events.TXS_FINISHED)[0][position - 1]
    assert not result.is_committed()
    assert f"element {position} rejected" in result.error_messages[0]


@then("finished results {first:d} and {second:d} succeeded")
def step_results_succeeded(context, first, second):
    results = _recorded(context, Events.TXS_FINISHED)[0]
    assert results[first - 1].is_committed()
    assert results[second - 1].is_committed()


@then("every strategy call was read-only")
def step_read_only(context):
    assert context.strategies.invoke_calls
    assert all(c["read_only"] for c in context.strategies.invoke_calls)
    assert all(c["timeout"] == 5 for c in context.strategies.invoke_calls)


@then("a DeprecationWarning was emitted")
def step_deprecation(context):
    assert any(issubclass(w.category, DeprecationWarning) for w in context.caught_warnings)


@then('the strategy received function "{fcn}" with arguments "{args}"')
def step_strategy_received(context, fcn, args):
    call = context.strategies.invoke_calls[0]["call"]
    assert call.function_name == fcn
    assert call.args == tuple(args.split(","))
    assert context.strategies.invoke_calls[0]["read_only"] is True


@then("no events were recorded")
def step_no_events(context):
    assert context.error is None, context.error
    assert context.result == []
    assert context.recorded == []


@then('the strategy saw contract "{contract}" at "{address}"')
def step_strategy_addresses(context, contract, address):
    assert context.error is None, context.error
    assert context.strategies.invoke_calls[0]["addresses"][contract] == address


@when('I generate a raw transaction into "{path}"')
def step_generate_raw(context, path):
    _call(context, context.connector.generate_raw_transaction(
        "simple", {"transaction_type": "transfer", "from": "acc-1", "to": "acc-2"}, path
    ))
    context.generated = context.result
    context.generated_path = Path(context.workspace) / path


@when("I send {count:d} raw transactions")
def step_send_raw(context, count):
    transactions = [str(context.generated_path)] * count
    _call(context, context.connector.send_raw_transaction(None, transactions))


@then("the generated transaction status is committed")
def step_generated_committed(context):
    assert context.generated.is_committed(), context.generated
    assert context.generated_path.exists()
    assert len(context.strategies.sent) == 2


@given("the ledger configuration is broken by {breakage}")
def step_broken_configuration(context, breakage):
    workspace = Path(context.workspace)
    network = context.network["ledger"]["network"]
    context.config_source = context.network
    if breakage == "a directory in place of the file":
        (workspace / "networks").mkdir()
        context.config_source = "networks"
    elif breakage == "a file that is not UTF-8":
        (workspace / "latin1.yaml").write_bytes("ledger:\n  network: {name: caf\xe9}\n".encode("latin-1"))
        context.config_source = "latin1.yaml"
    elif breakage == "an empty authentication entry":
        network["authentication"]["key"] = None
    elif breakage == "a timeout that is not a number":
        network["timeout"] = "ten"
    else:
        raise AssertionError(f"unknown breakage: {breakage}")


@when("I create a ledger connector from the broken configuration")
def step_create_broken(context):
    _create(context, 0, network_config=context.config_source)


@then('the context state is "{state}"')
def step_context_state(context, state):
    assert context.connector.context_state is ContextState[state], context.connector.context_state


@when("I send the generated transaction as a single path")
def step_send_raw_path(context):
    _call(context, context.connector.send_raw_transaction(None, context.generated_path))


@then("the strategy was handed the generated path as {count:d} transaction(s)")
def step_sent_path(context, count):
    assert context.error is None, context.error
    assert len(context.result) == count, context.result
    assert context.strategies.sent == [context.generated_path] * count, context.strategies.sent
