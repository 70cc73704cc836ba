from behave import then


def _error_names(error):
    return [cls.__name__ for cls in type(error).__mro__]


@then("a {error_name} is raised")
def step_error_raised(context, error_name):
    error = getattr(context, "error", None)
    assert error is not None, f"Expected {error_name}, nothing was raised"
    assert error_name in _error_names(error), f"Expected {error_name}, got {type(error).__name__}: {error}"


@then("an {error_name} is raised")
def step_error_raised_an(context, error_name):
    step_error_raised(context, error_name)


@then("no error is raised")
def step_no_error(context):
    error = getattr(context, "error", None)
    assert error is None, f"Unexpected {type(error).__name__}: {error}"
