# uiflow/selectors/locator.py
from __future__ import annotations

from typing import Optional, Tuple

from playwright.sync_api import Locator, Page

from uiflow.core.workflow_loader import Selector, SelectorStrategy
from uiflow.utils.logger import get_logger

log = get_logger(__name__)

# A page or a container locator; both expose the same query methods.
Scope = Page | Locator


def _parse_role_value(value: str) -> Tuple[str, Optional[str]]:
    """
    Accept a few simple role notations:

    - "button"                      → role="button"
    - "button|Create Project"       → role="button", name="Create Project"
    - "button name=Create Project"  → same as above (space syntax)

    Returns: (role, accessible_name_or_None)
    """
    v = value.strip()
    if "|" in v:
        role, name = v.split("|", 1)
        return role.strip(), name.strip() or None
    if " name=" in v:
        role, name = v.split(" name=", 1)
        return role.strip(), name.strip() or None
    return v, None


def resolve_locator(scope: Scope, sel: Selector) -> Locator:
    """
    Translate one candidate query into a Playwright Locator within `scope`.
    Nothing is queried yet; the caller decides when to count or wait.
    """
    strategy = sel.strategy
    value = sel.value

    if strategy == SelectorStrategy.css:
        return scope.locator(value)

    if strategy == SelectorStrategy.xpath:
        return scope.locator(f"xpath={value}")

    if strategy == SelectorStrategy.text:
        return scope.get_by_text(sel.pattern(value), exact=sel.exact)

    if strategy == SelectorStrategy.test_id:
        return scope.get_by_test_id(sel.pattern(value))

    if strategy == SelectorStrategy.label:
        return scope.get_by_label(sel.pattern(value), exact=sel.exact)

    if strategy == SelectorStrategy.placeholder:
        return scope.get_by_placeholder(sel.pattern(value), exact=sel.exact)

    if strategy == SelectorStrategy.role:
        role, name = _parse_role_value(value)
        kwargs = {}
        if name:
            kwargs["name"] = sel.pattern(name)
            kwargs["exact"] = sel.exact
        return scope.get_by_role(role, **kwargs)  # type: ignore[arg-type]

    log.debug(f"Unknown selector strategy '{strategy}', falling back to css for value={value!r}")
    return scope.locator(value)
