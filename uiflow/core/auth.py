# uiflow/core/auth.py
from __future__ import annotations

"""Session / auth flow
----------------------
Fixed composite step: open the login surface, fill email and password (split or
combined form), submit, wait for the load to settle and check the resulting URL.
Built from the same resolve / await_ready / perform primitives as any step.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from uiflow.core.actions import perform
from uiflow.core.errors import AuthenticationError, FlowError, ResolutionError
from uiflow.core.workflow_loader import ActionChain, ActionName, LocatorSpec, Readiness, WaitPolicy
from uiflow.selectors.strategy import await_ready, resolve
from uiflow.utils.config import FlowConfig
from uiflow.utils.logger import get_logger

# data-testid first: on the Atlassian login page getByLabel(/email/i) also hits an icon.
EMAIL_FIELD = LocatorSpec.of("testid=username", 'input[type="email"]', description="email field")
PASSWORD_FIELD = LocatorSpec.of("testid=password", 'input[type="password"]', description="password field")
CONTINUE_BUTTON = LocatorSpec.of("role=button|/continue|log in/i", description="continue button")
SUBMIT_BUTTON = LocatorSpec.of("role=button|/log in|continue/i", 'button[type="submit"]', description="log in button")


@dataclass(frozen=True)
class Session:
    """Authenticated browsing context for the rest of the run."""
    url: str
    reused: bool
    established_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuthFlow:
    def __init__(
        self,
        config: FlowConfig,
        *,
        field_wait: WaitPolicy = WaitPolicy(readiness=Readiness.visible, timeout_ms=15000),
        chain: ActionChain = ActionChain(),
    ) -> None:
        self.config = config
        self.field_wait = field_wait
        self.chain = chain
        self.log = get_logger(__name__)

    def needs_login(self, page: Page) -> bool:
        """True on the login surface or when a credential field is showing."""
        if self.config.login_path and self.config.login_path in (page.url or ""):
            return True
        try:
            return resolve(page, EMAIL_FIELD).is_visible()
        except (ResolutionError, PlaywrightError):
            return False

    def ensure_session(self, page: Page) -> Session:
        if not self.needs_login(page):
            self.log.info("Already authenticated; reusing session")
            return Session(url=page.url, reused=True)
        return self.login(page)

    def login(self, page: Page) -> Session:
        """Run the login sequence; every failure surfaces as AuthenticationError."""
        cfg = self.config
        self.log.info(f"Logging in at {cfg.login_url}")
        try:
            page.goto(cfg.login_url, wait_until="domcontentloaded", timeout=cfg.page_load_timeout_ms)

            email = await_ready(page, EMAIL_FIELD, self.field_wait)
            perform(email, self.chain, ActionName.fill, text=cfg.login_email)

            # Split flow: email first, then "Continue" reveals the password field.
            if not self._visible_now(page, PASSWORD_FIELD):
                button = await_ready(page, CONTINUE_BUTTON, self.field_wait)
                perform(button, self.chain, ActionName.click)

            password = await_ready(page, PASSWORD_FIELD, self.field_wait)
            perform(password, self.chain, ActionName.fill, text=cfg.login_password)
            submit = await_ready(page, SUBMIT_BUTTON, self.field_wait)
            perform(submit, self.chain, ActionName.click)

            # "load" rather than "networkidle": the target keeps long-lived connections open
            page.wait_for_load_state("load", timeout=cfg.page_load_timeout_ms)
        except (FlowError, PlaywrightError) as e:
            raise AuthenticationError(f"Login failed: {e}", url=page.url) from e

        if not re.search(cfg.expected_auth_url, page.url or ""):
            raise AuthenticationError(
                f"Post-login URL does not match {cfg.expected_auth_url!r}", url=page.url
            )
        # Same host, but still on the login surface (e.g. /login?error=...)
        if cfg.login_path and cfg.login_path in (page.url or ""):
            raise AuthenticationError("Still on the login page after submitting credentials", url=page.url)
        self.log.info(f"Authenticated; landed on {page.url}")
        return Session(url=page.url, reused=False)

    @staticmethod
    def _visible_now(page: Page, spec: LocatorSpec) -> bool:
        try:
            return resolve(page, spec).is_visible()
        except (ResolutionError, PlaywrightError):
            return False
