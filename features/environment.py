import logging
import shutil
import tempfile


def before_all(context):
    logging.getLogger("ledgerbench").setLevel(logging.DEBUG)


def before_scenario(context, scenario):
    # Fresh workspace per scenario, every relative path in a test hangs off it
    context.workspace = tempfile.mkdtemp(prefix="ledgerbench-")
    context.error = None
    context.result = None
    context.recorded = []


def after_scenario(context, scenario):
    shutil.rmtree(context.workspace, ignore_errors=True)
