import pytest

from uiflow.core.errors import FlowError, ResolutionError, WaitTimeoutError
from uiflow.core.workflow_loader import LocatorSpec, Readiness, WaitPolicy
from uiflow.selectors.strategy import await_ready
from uiflow.utils.timing import wait_for


STATUS = LocatorSpec.of("role=button|/status/i", description="Status button")


def test_returns_once_element_appears(page, clock, make_element):
    el = make_element("status")
    page.add("role=button|/status/i", lambda: [el] if clock.now >= 250 else [])

    handle = await_ready(page, STATUS, WaitPolicy(timeout_ms=1000, poll_interval_ms=100))

    assert handle is el
    assert 250 <= clock.now < 350


def test_times_out_within_one_interval_of_the_budget(page, clock):
    policy = WaitPolicy(timeout_ms=1000, poll_interval_ms=300)

    with pytest.raises(WaitTimeoutError) as ei:
        await_ready(page, STATUS, policy)

    err = ei.value
    assert 1000 <= err.elapsed_ms < 1300
    assert err.readiness == "visible"
    assert isinstance(err, TimeoutError) and isinstance(err, FlowError)
    # last sleep is clipped to what is left of the budget
    assert clock.sleeps == [300, 300, 300, 100]
    assert isinstance(err.__cause__, ResolutionError)


def test_visible_readiness_waits_for_visibility(page, clock):
    el = page.element("role=button|/status/i", visible=False)

    with pytest.raises(WaitTimeoutError):
        await_ready(page, STATUS, WaitPolicy(readiness=Readiness.visible, timeout_ms=500))

    assert await_ready(page, STATUS, WaitPolicy(readiness=Readiness.attached, timeout_ms=500)) is el
    assert clock.now == 500


def test_checked_readiness(page, clock, make_element):
    el = make_element("status")

    def matches():
        el.checked = clock.now >= 200
        return [el]

    page.add("role=button|/status/i", matches)

    assert await_ready(page, STATUS, WaitPolicy(readiness="checked", timeout_ms=1000)) is el
    assert clock.now == 200


def test_zero_budget_still_probes_once(page, clock):
    el = page.element("role=button|/status/i")
    assert await_ready(page, STATUS, WaitPolicy(timeout_ms=0)) is el
    assert clock.sleeps == []


def test_re_resolves_on_every_poll(page, clock, make_element):
    stale = make_element("stale", visible=False)
    fresh = make_element("fresh")
    page.add("role=button|/status/i", lambda: [fresh] if clock.now >= 100 else [stale])

    assert await_ready(page, STATUS, WaitPolicy(timeout_ms=1000)) is fresh


def test_wait_for_returns_first_truthy_value(clock):
    values = iter([None, False, "ready"])
    assert wait_for(lambda: next(values), timeout_ms=1000, interval_ms=50) == "ready"
    assert clock.now == 100


def test_wait_for_raises_builtin_timeout(clock):
    with pytest.raises(TimeoutError, match="search box"):
        wait_for(lambda: None, timeout_ms=200, interval_ms=100, description="search box")
