from behave import given, when, then

from ledgerbench.bench.arguments import ContractCall, as_batch, normalize_arguments

_BATCH_SHAPES = {
    "a single mapping": {"transaction_type": "open", "account": "a"},
    "a list of three mappings": [{"transaction_type": "open", "account": str(i)} for i in range(3)],
    "a list of pairs": [("transaction_type", "open"), ("account", "a")],
    "an empty list": [],
}


def _normalize(context, arg):
    context.error = None
    try:
        context.call = normalize_arguments(arg)
    except Exception as e:
        context.error = e


@given("the argument map:")
def step_argument_map(context):
    context.argument_map = {row["key"]: row["value"] for row in context.table}


@when("I normalize the argument map")
def step_normalize(context):
    _normalize(context, context.argument_map)


@when('I normalize the pairs "{pairs}"')
def step_normalize_pairs(context, pairs):
    _normalize(context, [tuple(item.split("=", 1)) for item in pairs.split(";")])


@when("I normalize a map with numeric and boolean values")
def step_normalize_values(context):
    _normalize(context, {"transaction_type": 42, "rate": 3.5, "flag": True})


@when('I normalize the plain string "{value}"')
def step_normalize_string(context, value):
    _normalize(context, value)


@when("I resolve an empty argument map")
def step_resolve_empty(context):
    context.error = None
    try:
        normalize_arguments({}).resolve()
    except Exception as e:
        context.error = e


@then('the function name is "{name}"')
def step_function_name(context, name):
    assert context.error is None, context.error
    assert context.call.function_name == name, context.call


@then("the function name is unset")
def step_function_unset(context):
    assert context.call.function_name is None


@then('the positional arguments are "{args}"')
def step_positional(context, args):
    assert context.call.args == tuple(args.split(",")), context.call.args


@then('the resolved call is "{name}" with arguments "{args}"')
def step_resolved(context, name, args):
    assert context.call.resolve() == ContractCall(function_name=name, args=tuple(args.split(",")))
    assert context.call.to_params() == {"func": name, "args": args.split(",")}


@when("I turn {shape} into a batch")
def step_as_batch(context, shape):
    context.batch = as_batch(_BATCH_SHAPES[shape])


@then("the batch has {size:d} element(s)")
def step_batch_size(context, size):
    assert len(context.batch) == size, context.batch
