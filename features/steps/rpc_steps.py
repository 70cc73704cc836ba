import asyncio
import copy
import json
from pathlib import Path
from unittest import mock

import httpx
from behave import given, when, then

from ledgerbench.sut.ledger.connector import LedgerConnector

DEPLOYED = "0x00000000000000000000000000000000000000aa"


class MockNode:
    """httpx.MockTransport handler playing a JSON-RPC ledger node."""

    def __init__(self):
        self.requests = []
        self.refuse = False
        self.rpc_errors = set()
        self.receipt_status = {}
        self.read_timeouts = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.refuse:
            raise httpx.ConnectError("connection refused", request=request)

        body = json.loads(request.content)
        self.requests.append((str(request.url), body))
        self.read_timeouts.append(request.extensions["timeout"]["read"])
        method = body["method"]

        if method in self.rpc_errors:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32000, "message": f"{method} rejected"}})

        if method == "deployContract":
            result = {"contractAddress": DEPLOYED}
        elif method == "getBlockNumber":
            result = "0x1f"
        elif method == "call":
            result = {"output": "0x64", "status": "0x0"}
        else:
            result = {"transactionHash": f"0xhash{len(self.requests)}", "status": self.receipt_status.get(method, "0x0")}
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def of_method(self, method):
        return [body for _, body in self.requests if body["method"] == method]


def _call(context, coro):
    context.error = None
    context.result = None
    try:
        context.result = asyncio.run(coro)
    except Exception as e:
        context.error = e


@given('a contract artifact "{path}" with bytecode "{bytecode}"')
def step_artifact(context, path, bytecode):
    target = Path(context.workspace) / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps({"bytecode": bytecode, "abi": []}), encoding="utf-8")
    context.artifact_path = target


@given("the contract artifact is deleted")
def step_artifact_deleted(context):
    context.artifact_path.unlink()


@given("a mock ledger node")
def step_mock_node(context):
    context.node = MockNode()


@given("the mock node refuses connections")
def step_refuse(context):
    context.node.refuse = True


@given('the mock node answers "{method}" with an RPC error')
def step_rpc_error(context, method):
    context.node.rpc_errors.add(method)


@given('the mock node answers "{method}" with receipt status "{status}"')
def step_receipt_status(context, method, status):
    context.node.receipt_status[method] = status


@given("the ledger network asks for a connectivity check")
def step_connectivity(context):
    context.network["ledger"]["network"]["checkConnectivity"] = True


@given("a ledger connector for worker {index:d} talking to the mock node")
def step_connector_mock(context, index):
    context.connector = LedgerConnector(
        index,
        workspace_root=context.workspace,
        network_config=copy.deepcopy(context.network),
        transport=httpx.MockTransport(context.node.handle),
    )


@when('I invoke "{fcn}" on "{contract}" with arguments "{args}"')
def step_invoke(context, fcn, contract, args):
    arg = {"transaction_type": fcn}
    arg.update({f"arg{i}": value for i, value in enumerate(args.split(","))})
    _call(context, context.connector.invoke_smart_contract(contract, "v0", arg, 10))


@when('I invoke "{fcn}" on "{contract}" with arguments "{args}" {count:d} times in one batch')
def step_invoke_many(context, fcn, contract, args, count):
    arg = {"transaction_type": fcn}
    arg.update({f"arg{i}": value for i, value in enumerate(args.split(","))})
    _call(context, context.connector.invoke_smart_contract(contract, "v0", [dict(arg) for _ in range(count)], 10))


@when('I query "{fcn}" on "{contract}" with arguments "{args}"')
def step_query(context, fcn, contract, args):
    arg = [("transaction_type", fcn)] + [(f"arg{i}", v) for i, v in enumerate(args.split(","))]
    _call(context, context.connector.query_smart_contract(contract, "v0", arg, 10))


@when("I send the generated transaction")
def step_send_generated(context):
    _call(context, context.connector.send_raw_transaction(None, [str(context.generated_path)]))


@then('the mock node received a "{method}" request for "{contract_id}"')
def step_received_deploy(context, method, contract_id):
    bodies = context.node.of_method(method)
    assert bodies, context.node.requests
    group_id, payload = bodies[0]["params"]
    assert group_id == 1
    assert payload["id"] == contract_id
    assert payload["bytecode"] == "0x6060"


@then('the mock node received a "{method}" request calling "{fcn}" with "{args}"')
def step_received_call(context, method, fcn, args):
    bodies = context.node.of_method(method)
    assert bodies, context.node.requests
    payload = bodies[0]["params"][1]
    assert payload["func"] == fcn, payload
    assert payload["args"] == args.split(","), payload


@then('the mock node received {count:d} "{method}" requests')
def step_received_count(context, count, method):
    bodies = context.node.of_method(method)
    assert len(bodies) == count, context.node.requests
    urls = {url for url, body in context.node.requests if body["method"] == method}
    assert len(urls) == count


@then("both nodes received {count:d} requests")
def step_balanced(context, count):
    assert context.error is None, context.error
    per_node = {}
    for url, _ in context.node.requests:
        per_node[url] = per_node.get(url, 0) + 1
    assert sorted(per_node.values()) == [count, count], per_node


@then('worker arguments for {count:d} workers list contract "{contract}" at "{address}"')
def step_worker_args(context, count, contract, address):
    worker_args = asyncio.run(context.connector.prepare_worker_arguments(count))
    assert worker_args == [{"contracts": {contract: address}}] * count


@then("every returned result is committed")
def step_all_committed(context):
    assert context.error is None, context.error
    results = context.result if isinstance(context.result, list) else [context.result]
    assert results and all(r.is_committed() for r in results), results


@then("every returned result is failed")
def step_all_failed(context):
    assert context.error is None, context.error
    assert context.result and all(not r.is_committed() for r in context.result), context.result


class _CountingClient(httpx.AsyncClient):
    opened = []

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        _CountingClient.opened.append(self)


@given("the HTTP clients the connector opens are counted")
def step_count_clients(context):
    _CountingClient.opened = []
    patcher = mock.patch.object(httpx, "AsyncClient", _CountingClient)
    patcher.start()
    context.add_cleanup(patcher.stop)


@when('I run round {index:d} invoking "{fcn}" {count:d} times with a {timeout:d} second timeout and release it')
def step_full_round(context, index, fcn, count, timeout):
    async def run_round():
        connector = context.connector
        await connector.get_context(index, {})
        batch = [{"transaction_type": fcn, "from": f"acc-{i}"} for i in range(count)]
        results = await connector.invoke_smart_contract("simple", "v0", batch, timeout)
        context.open_during_round = connector.rpc.is_open
        await connector.release_context()
        return results

    _call(context, run_round())


@then("the connector opened {count:d} HTTP client(s)")
def step_clients_opened(context, count):
    assert context.error is None, context.error
    assert len(_CountingClient.opened) == count, _CountingClient.opened


@then("every opened HTTP client is closed after the round")
def step_clients_closed(context):
    assert context.open_during_round
    assert all(client.is_closed for client in _CountingClient.opened)
    assert not context.connector.rpc.is_open


@then("every request carried a read timeout of {seconds:d} seconds")
def step_request_timeouts(context, seconds):
    assert context.node.read_timeouts, context.node.requests
    assert all(t == seconds for t in context.node.read_timeouts), context.node.read_timeouts
