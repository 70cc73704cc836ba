import copy
import os

from behave import given, when, then

from ledgerbench.bench.connector import BlockchainConnector
from ledgerbench.sut import config
from ledgerbench.sut.factory import ConnectorFactory
from ledgerbench.sut.ledger.connector import LedgerConnector


def _set_env(context, key, value):
    previous = os.environ.get(key)
    if value is None:
        os.environ.pop(key, None)
    else:
        os.environ[key] = value

    def restore():
        if previous is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = previous

    context.add_cleanup(restore)


def _factory(context):
    if not hasattr(context, "factory"):
        context.factory = ConnectorFactory()
    return context.factory


def _build(context, **kwargs):
    context.error = None
    try:
        context.built = _factory(context).build(
            workspace_root=context.workspace,
            network_config=copy.deepcopy(context.network),
            **kwargs,
        )
    except Exception as e:
        context.error = e


@given('the SUT type "{sut_type}" is selected in the environment')
def step_select(context, sut_type):
    _set_env(context, config.ENV_SUT_TYPE, sut_type)


@given("no SUT type is selected in the environment")
def step_unselect(context):
    _set_env(context, config.ENV_SUT_TYPE, None)


@given('a "{sut_type}" connector is registered with the factory')
def step_register(context, sut_type):
    _factory(context).register(sut_type, lambda worker_index, sut_type, **options: BlockchainConnector(worker_index, sut_type))


@when("I build a worker connector {index:d} through the factory")
def step_build_worker(context, index):
    context.error = None
    try:
        context.built = _factory(context).build_worker(
            index,
            workspace_root=context.workspace,
            network_config=copy.deepcopy(context.network),
        )
    except Exception as e:
        context.error = e


@when('I build the manager connector for "{sut_type}" through the factory')
def step_build_manager(context, sut_type):
    _build(context, sut_type=sut_type)


@then("the built connector is a LedgerConnector for worker {index:d}")
def step_built_ledger(context, index):
    assert context.error is None, context.error
    assert isinstance(context.built, LedgerConnector)
    assert context.built.get_worker_index() == index


@then('the built connector has type "{sut_type}"')
def step_built_type(context, sut_type):
    assert context.error is None, context.error
    assert context.built.get_type() == sut_type
