import pytest

from uiflow.core.actions import perform
from uiflow.core.errors import InteractionError
from uiflow.core.workflow_loader import ActionChain, ActionName, Technique, TechniqueKind


def test_default_chain_goes_from_safest_to_most_aggressive():
    kinds = [t.kind for t in ActionChain().techniques]
    assert kinds == [TechniqueKind.standard, TechniqueKind.forced, TechniqueKind.programmatic]


def test_falls_through_to_forced_and_stops(make_element):
    el = make_element("more", fail={"click"})

    used = perform(el, ActionChain(), ActionName.click)

    assert used.kind == TechniqueKind.forced
    assert el.calls == ["click", "click:force"]


def test_programmatic_fallback_when_pointer_clicks_fail(make_element):
    clicked = []
    el = make_element("more", fail={"click", "click:force"}, on_click=lambda: clicked.append(True))

    used = perform(el, ActionChain(), ActionName.click)

    assert used.kind == TechniqueKind.programmatic
    assert el.calls == ["click", "click:force", "evaluate"]
    assert clicked == [True]


def test_exhausted_chain_raises_with_every_attempt(make_element):
    el = make_element("more", fail={"click", "click:force", "evaluate"})

    with pytest.raises(InteractionError) as ei:
        perform(el, ActionChain(), ActionName.click)

    assert [kind for kind, _ in ei.value.attempts] == ["standard", "forced", "programmatic"]
    assert ei.value.handle is el


def test_each_technique_gets_its_own_timeout(make_element):
    el = make_element("more", fail={"click"})
    chain = ActionChain(techniques=[{"kind": "standard", "timeout_ms": 1000}, {"kind": "forced", "timeout_ms": 2000}])

    perform(el, chain, ActionName.click)

    assert el.timeouts == [1000, 2000]


def test_scrolled_technique_scrolls_before_clicking(make_element):
    el = make_element("more")
    used = perform(el, ActionChain.of("scrolled", "programmatic"), ActionName.click)

    assert used.kind == TechniqueKind.scrolled
    assert el.calls == ["scroll", "click"]


def test_fill_programmatic_sets_value(make_element):
    el = make_element("search", fail={"fill", "fill:force"})

    perform(el, ActionChain(), ActionName.fill, text="status = Done")

    assert el.value == "status = Done"
    assert el.calls[-1] == "evaluate"


def test_check_skips_already_checked_box(make_element):
    el = make_element("done", checked=True)

    used = perform(el, ActionChain(), ActionName.check)

    assert used.kind == TechniqueKind.standard
    assert "check" not in el.calls
    assert el.checked


def test_check_falls_back_to_script(make_element):
    el = make_element("done", fail={"check", "check:force"})

    perform(el, ActionChain(), ActionName.check)

    assert el.checked


def test_unsupported_action_for_technique_is_a_programming_error(make_element):
    chain = ActionChain(techniques=[Technique(kind=TechniqueKind.standard)])
    with pytest.raises(NotImplementedError):
        perform(make_element("x"), chain, ActionName.goto)
