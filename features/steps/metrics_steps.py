import json
from pathlib import Path

from behave import given, when, then

from ledgerbench.bench.metrics import Metrics
from ledgerbench.export.result_sink import ResultSink


@given("metrics attached to the connector")
def step_attach(context):
    context.metrics = Metrics().attach(context.connector)


@when("I detach the metrics")
def step_detach(context):
    context.metrics.detach(context.connector)


@then("the metrics count {submitted:d} submitted, {succeeded:d} succeeded and {failed:d} failed")
def step_counts(context, submitted, succeeded, failed):
    report = context.metrics.aggregate()
    assert report["submitted"] == submitted, report
    assert report["succeeded"] == succeeded, report
    assert report["failed"] == failed, report


@then("no transaction is pending")
def step_no_pending(context):
    assert context.metrics.pending == 0
    assert context.metrics.aggregate()["pending"] == 0


@then("the report has p50 and p95 latencies")
def step_latencies(context):
    latency = context.metrics.aggregate()["latency_ms"]
    assert latency["p50"] is not None and latency["p95"] is not None, latency
    assert latency["min"] <= latency["p50"] <= latency["p95"] <= latency["max"], latency


@when('I export round {index:d} to "{path}"')
def step_export(context, index, path):
    target = Path(context.workspace) / path
    ResultSink().write_round(index, context.metrics, {"console": False, "json": {"enabled": True, "path": str(target)}})


@then('the file "{path}" holds a report for round {index:d} with {count:d} finished transactions')
def step_report_file(context, path, index, count):
    report = json.loads((Path(context.workspace) / path).read_text(encoding="utf-8"))
    assert report["round"] == index
    assert report["metrics"]["finished"] == count


@then('the file "{path}" lists {count:d} failed transaction(s) mentioning "{text}"')
def step_report_failures(context, path, count, text):
    report = json.loads((Path(context.workspace) / path).read_text(encoding="utf-8"))
    failures = report["failures"]
    assert len(failures) == count, failures
    for failure in failures:
        assert failure["status"] == "failed", failure
        assert failure["time_final"] >= failure["time_create"], failure
        assert any(text in m for m in failure["error_messages"]), failure
        assert failure["custom_data"]["exception"] == "OperationFailure", failure


@then('the connector has {count:d} "{event}" listener(s)')
def step_listener_count(context, count, event):
    assert context.connector.events.listener_count(event) == count
