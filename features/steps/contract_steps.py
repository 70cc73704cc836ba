import asyncio

from behave import given, when, then

from ledgerbench.bench.connector import BlockchainConnector
from ledgerbench.bench.errors import UnimplementedOperation
from ledgerbench.bench.events import Events
from ledgerbench.bench.types import InvocationRequest, TxStatus, now_ms


# operation name -> positional arguments for the call
_DEFAULT_CALLS = {
    "init": (False,),
    "install_smart_contract": (),
    "get_context": (0, {}),
    "release_context": (),
    "invoke_smart_contract": ("simple", "v0", {"transaction_type": "open"}, 30),
    "query_smart_contract": ("simple", "v0", {"transaction_type": "query"}, 30),
    "query_state": ("simple", "v0", "acc-1", "query"),
    "generate_raw_transaction": ("simple", {"transaction_type": "open"}, "tx.json"),
    "send_raw_transaction": (None, []),
}


class _RequestRecorder(BlockchainConnector):
    def __init__(self):
        super().__init__(0, "recorder")
        self.executed = []

    async def invoke_smart_contract(self, contract_id, contract_version, args, timeout=None):
        self.executed.append("invoke")
        return []

    async def query_smart_contract(self, contract_id, contract_version, args, timeout=None):
        self.executed.append("query")
        return []


def _call(context, coro):
    context.error = None
    context.result = None
    try:
        context.result = asyncio.run(coro)
    except Exception as e:
        context.error = e


@given('a bare connector for worker {index:d} of SUT type "{sut_type}"')
def step_bare_connector(context, index, sut_type):
    context.connector = BlockchainConnector(index, sut_type)


@when("I create a bare connector for worker {index:d}")
def step_create_bare_connector(context, index):
    context.error = None
    try:
        context.connector = BlockchainConnector(index, "dummy")
    except Exception as e:
        context.error = e


@given("a connector that records how requests are executed")
def step_recorder(context):
    context.connector = _RequestRecorder()


@then('the connector type is "{sut_type}"')
def step_type(context, sut_type):
    assert context.connector.get_type() == sut_type


@then("the connector worker index is {index:d}")
def step_worker_index(context, index):
    assert context.connector.get_worker_index() == index


@then("the connector identity is the manager")
def step_is_manager(context):
    assert context.connector.identity.is_manager


@when('I call the default "{operation}" operation')
def step_call_default(context, operation):
    method = getattr(context.connector, operation)
    _call(context, method(*_DEFAULT_CALLS[operation]))


@then('an UnimplementedOperation error names "{operation}"')
def step_unimplemented(context, operation):
    assert isinstance(context.error, UnimplementedOperation), f"got {context.error!r}"
    assert isinstance(context.error, NotImplementedError)
    assert context.error.operation == operation
    assert str(context.error).startswith(f"{operation} is not implemented")


@when("I prepare default worker arguments for {count:d} workers")
def step_prepare_default(context, count):
    _call(context, context.connector.prepare_worker_arguments(count))


@then("I get {count:d} empty worker arguments")
def step_empty_worker_args(context, count):
    assert context.error is None, context.error
    assert len(context.result) == count
    assert all(arg == {} for arg in context.result)


@then("every worker argument is a distinct object")
def step_distinct(context):
    assert len({id(arg) for arg in context.result}) == len(context.result)


@given("a listener recording connector events")
def step_recording_listener(context):
    context.recorded = []
    context.connector.events.on(Events.TXS_SUBMITTED, lambda n: context.recorded.append((Events.TXS_SUBMITTED, n)))
    context.connector.events.on(Events.TXS_FINISHED, lambda r: context.recorded.append((Events.TXS_FINISHED, r)))


@given("a listener that raises on every event")
def step_raising_listener(context):
    def explode(payload):
        raise RuntimeError("listener exploded")

    for name in Events.ALL:
        context.connector.events.on(name, explode)


@when("the connector announces {count:d} submitted transactions")
def step_announce_submitted(context, count):
    context.connector._on_txs_submitted(count)


@when("the connector announces a finished successful transaction")
def step_announce_finished(context):
    context.connector._on_txs_finished([TxStatus.success("tx-1", now_ms())])


@then('the recorded events are "{names}"')
def step_recorded_names(context, names):
    assert [name for name, _ in context.recorded] == names.split(","), context.recorded


@then("the first recorded event carries {count:d}")
def step_first_payload(context, count):
    assert context.recorded[0][1] == count


@when('I subscribe to the "{name}" event')
def step_subscribe_unknown(context, name):
    context.error = None
    try:
        context.connector.events.on(name, lambda payload: None)
    except Exception as e:
        context.error = e


@when("I execute a read-only request")
def step_execute_read_only(context):
    request = InvocationRequest("simple", "v0", {"transaction_type": "query", "account": "a"}, read_only=True)
    _call(context, context.connector.execute(request))


@when("I execute a state-changing request")
def step_execute_invoke(context):
    request = InvocationRequest("simple", "v0", [{"transaction_type": "open", "account": "a"}])
    _call(context, context.connector.execute(request))


@then('the executed operations are "{names}"')
def step_executed(context, names):
    assert context.connector.executed == names.split(",")
