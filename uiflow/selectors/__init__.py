# uiflow/selectors/__init__.py
"""
Selectors package
-----------------
Translate candidate queries into Playwright locators, resolve LocatorSpecs
first-match-wins, and wait for readiness within a bounded budget.
"""

from .locator import resolve_locator
from .strategy import await_ready, resolve

__all__ = [
    "resolve_locator",
    "resolve",
    "await_ready",
]
