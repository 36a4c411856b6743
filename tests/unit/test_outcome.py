import pytest

from uiflow.core.errors import (
    AuthenticationError,
    ConfigurationError,
    InteractionError,
    ResolutionError,
    WaitTimeoutError,
)
from uiflow.core.outcome import OutcomeKind, StepState, classify
from uiflow.core.workflow_loader import FailurePolicy, LocatorSpec

SPEC = LocatorSpec.of("role=button|/status/i")


def test_no_error_is_success():
    out = classify(None, FailurePolicy.abort)
    assert out.kind == OutcomeKind.success
    assert out.state == StepState.succeeded


@pytest.mark.parametrize(
    "error",
    [
        ResolutionError(SPEC),
        WaitTimeoutError(SPEC, "visible", 1500),
        InteractionError(handle=None, chain=None, attempts=[]),
    ],
)
def test_recoverable_errors_follow_the_policy(error):
    assert classify(error, FailurePolicy.continue_).kind == OutcomeKind.soft_fail
    assert classify(error, FailurePolicy.abort).kind == OutcomeKind.hard_fail


@pytest.mark.parametrize("error", [ConfigurationError("BASE_URL missing"), AuthenticationError("bad login")])
def test_config_and_auth_errors_always_abort(error):
    out = classify(error, FailurePolicy.continue_)
    assert out.kind == OutcomeKind.hard_fail
    assert out.error_type == type(error).__name__


def test_soft_fail_carries_reason():
    out = classify(WaitTimeoutError(SPEC, "visible", 15000), FailurePolicy.continue_)
    assert out.state == StepState.soft_failed
    assert "not visible after 15000 ms" in out.reason
