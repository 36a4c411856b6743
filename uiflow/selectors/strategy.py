# uiflow/selectors/strategy.py
from __future__ import annotations

"""Resolution and readiness
---------------------------
`resolve` picks the first element of the first candidate that matches anything
(first-of-first, no scoring). `await_ready` re-resolves on a polling cadence
until the element is attached, visible or checked, within a bounded budget.
"""

from typing import Any, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator

from uiflow.core.errors import ResolutionError, WaitTimeoutError
from uiflow.core.workflow_loader import LocatorSpec, Readiness, WaitPolicy
from uiflow.selectors.locator import Scope, resolve_locator
from uiflow.utils.logger import get_logger
from uiflow.utils.timing import Stopwatch, wait_for

log = get_logger(__name__)


def scope_label(scope: Any) -> str:
    url = getattr(scope, "url", None)
    if isinstance(url, str):
        return f"page {url}" if url else "page"
    return f"container {scope!r}"


def resolve(scope: Scope, spec: LocatorSpec) -> Locator:
    """Return the first match of the first viable candidate, or raise ResolutionError."""
    tried: List[str] = []
    for idx, sel in enumerate(spec.candidates):
        loc = resolve_locator(scope, sel)
        try:
            count = loc.count()
        except PlaywrightError as e:
            tried.append(f"[{idx}] error: {sel.describe()} -> {e.message}")
            continue
        if count > 0:
            log.debug(f"Resolved {spec.describe()!r} via [{idx}] {sel.describe()} ({count} match(es))")
            return loc.first
        tried.append(f"[{idx}] none found: {sel.describe()}")
    raise ResolutionError(spec, scope_label(scope), tried)


def _satisfies(handle: Locator, readiness: Readiness) -> bool:
    if readiness == Readiness.attached:
        return True
    if readiness == Readiness.visible:
        return handle.is_visible()
    return handle.is_checked()


def await_ready(scope: Scope, spec: LocatorSpec, policy: WaitPolicy) -> Locator:
    """
    Block until `spec` resolves to an element satisfying `policy.readiness`.

    The spec is re-resolved on every poll so a handle gone stale after a
    re-render is never reused. Raises WaitTimeoutError once the budget is spent.
    """
    last_error: Optional[BaseException] = None

    def probe() -> Optional[Locator]:
        nonlocal last_error
        try:
            handle = resolve(scope, spec)
            return handle if _satisfies(handle, policy.readiness) else None
        except (ResolutionError, PlaywrightError) as e:
            last_error = e
            return None

    sw = Stopwatch().start()
    try:
        return wait_for(
            probe,
            timeout_ms=policy.timeout_ms,
            interval_ms=policy.poll_interval_ms,
            description=f"{spec.describe()} {policy.readiness.value}",
        )
    except TimeoutError as e:
        err = WaitTimeoutError(spec, policy.readiness.value, sw.elapsed_ms())
        raise err from (last_error or e)
