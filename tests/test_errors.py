import pytest

from stratumpool.errors import (
    AuthorizationFailure,
    InvalidMethod,
    InvalidParams,
    StratumError,
    StratumIOError,
    SubmitFailure,
    SubscriptionFailure,
)


def test_invalid_method_message_and_attribute():
    err = InvalidMethod("mining.unknown")
    assert str(err) == "Invalid stratum method: mining.unknown"
    assert err.method == "mining.unknown"


def test_invalid_params_message():
    assert str(InvalidParams()) == "Invalid parameters provided"


def test_authorization_failure_message():
    err = AuthorizationFailure("Already authorized")
    assert str(err) == "Authorization failed Already authorized"
    assert err.reason == "Already authorized"


def test_submit_failure_message():
    err = SubmitFailure("stale job")
    assert str(err) == "Submit failure: stale job"
    assert err.reason == "stale job"


def test_subscription_failure_message():
    err = SubscriptionFailure("Already subscribed")
    assert str(err) == "Subscription failure: Already subscribed"
    assert err.reason == "Already subscribed"


def test_io_error_wraps_os_error():
    cause = OSError("broken pipe")
    err = StratumIOError(cause)
    assert str(err) == "IO error: broken pipe"
    assert err.error is cause
    assert err.__cause__ is cause


@pytest.mark.parametrize(
    "error",
    [
        InvalidMethod("x"),
        InvalidParams(),
        AuthorizationFailure("x"),
        SubmitFailure("x"),
        SubscriptionFailure("x"),
        StratumIOError(OSError("x")),
    ],
)
def test_all_errors_are_caught_by_base_class(error):
    with pytest.raises(StratumError) as info:
        raise error
    assert info.value is error