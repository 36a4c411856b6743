# uiflow/core/actions.py
from __future__ import annotations

"""Interaction techniques
-------------------------
Executes an ActionChain against an already-resolved handle: each technique is
tried in order with its own timeout and the first one that completes wins.

The candidate chosen by resolution is NOT re-chosen between techniques. The
handle is a Playwright `Locator.first`, so every technique re-runs that one
candidate's query: after a re-render it may act on a different element the same
query now matches first, or time out when nothing matches. A timeout ends the
chain in InteractionError and the step's failure policy decides. Picking a
candidate again belongs to the caller (await_ready), not to this module.
"""

from typing import Callable, Dict, List, Optional, Tuple

from playwright.sync_api import Locator

from uiflow.core.errors import InteractionError
from uiflow.core.workflow_loader import ActionChain, ActionName, Technique, TechniqueKind
from uiflow.utils.logger import get_logger, log_with_context
from uiflow.utils.timing import measure

__all__ = ["perform", "TECHNIQUES"]

log = get_logger(__name__)

Executor = Callable[[Locator, int, Optional[str]], None]

_JS_CLICK = "el => el.click()"
_JS_FILL = """(el, value) => {
  el.focus();
  el.value = value;
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
}"""
_JS_CHECK = "el => { if (!el.checked) el.click(); }"


# ------------- click -------------

def _click_standard(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.click(timeout=timeout)


def _click_scrolled(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.scroll_into_view_if_needed(timeout=timeout)
    handle.click(timeout=timeout)


def _click_forced(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.click(force=True, timeout=timeout)


def _click_programmatic(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.evaluate(_JS_CLICK)


# ------------- fill -------------

def _fill_standard(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.fill(text or "", timeout=timeout)


def _fill_scrolled(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.scroll_into_view_if_needed(timeout=timeout)
    handle.fill(text or "", timeout=timeout)


def _fill_forced(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.fill(text or "", force=True, timeout=timeout)


def _fill_programmatic(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.evaluate(_JS_FILL, text or "")


# ------------- check -------------
# check() is idempotent in Playwright; the JS path guards on el.checked itself.

def _check_standard(handle: Locator, timeout: int, text: Optional[str]) -> None:
    if handle.is_checked(timeout=timeout):
        return
    handle.check(timeout=timeout)


def _check_scrolled(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.scroll_into_view_if_needed(timeout=timeout)
    handle.check(timeout=timeout)


def _check_forced(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.check(force=True, timeout=timeout)


def _check_programmatic(handle: Locator, timeout: int, text: Optional[str]) -> None:
    handle.evaluate(_JS_CHECK)


TECHNIQUES: Dict[Tuple[ActionName, TechniqueKind], Executor] = {
    (ActionName.click, TechniqueKind.standard): _click_standard,
    (ActionName.click, TechniqueKind.scrolled): _click_scrolled,
    (ActionName.click, TechniqueKind.forced): _click_forced,
    (ActionName.click, TechniqueKind.programmatic): _click_programmatic,
    (ActionName.fill, TechniqueKind.standard): _fill_standard,
    (ActionName.fill, TechniqueKind.scrolled): _fill_scrolled,
    (ActionName.fill, TechniqueKind.forced): _fill_forced,
    (ActionName.fill, TechniqueKind.programmatic): _fill_programmatic,
    (ActionName.check, TechniqueKind.standard): _check_standard,
    (ActionName.check, TechniqueKind.scrolled): _check_scrolled,
    (ActionName.check, TechniqueKind.forced): _check_forced,
    (ActionName.check, TechniqueKind.programmatic): _check_programmatic,
}


@measure("perform")
def perform(
    handle: Locator,
    chain: ActionChain,
    action: ActionName,
    *,
    text: Optional[str] = None,
) -> Technique:
    """
    Run `action` on `handle` through `chain`, stopping at the first technique
    that does not raise. Returns that technique; raises InteractionError when
    every technique failed.
    """
    act_log = log_with_context(log, action=action.value)
    attempts: List[Tuple[str, BaseException]] = []

    for technique in chain.techniques:
        executor = TECHNIQUES.get((action, technique.kind))
        if executor is None:
            raise NotImplementedError(f"No {technique.kind.value} technique for action {action.value!r}")
        try:
            executor(handle, technique.timeout_ms, text)
        except Exception as e:
            attempts.append((technique.kind.value, e))
            act_log.debug(f"{technique.kind.value} technique failed: {e!r}")
            continue
        if attempts:
            act_log.info(f"Succeeded with {technique.kind.value} technique after {len(attempts)} failed attempt(s)")
        return technique

    raise InteractionError(handle, chain, attempts)
