import re
from typing import Callable, Dict, List, Optional

import pytest
from playwright.sync_api import Error as PlaywrightError

import uiflow.utils.timing as timing
from uiflow.utils.config import FlowConfig, get_settings


BASE_URL = "https://acme.atlassian.net"


def _text(v) -> str:
    # Mirror the selector shorthand so tests register matches the way workflows spell them
    if isinstance(v, re.Pattern):
        return f"/{v.pattern}/" + ("i" if v.flags & re.IGNORECASE else "")
    return v


class FakeClock:
    """Monotonic clock that only moves when code sleeps."""

    def __init__(self) -> None:
        self.now = 0
        self.sleeps: List[int] = []

    def now_ms(self) -> int:
        return self.now

    def sleep_ms(self, ms: int) -> None:
        if ms <= 0:
            return
        self.sleeps.append(ms)
        self.now += ms


class _Queries:
    """Query surface shared by the fake page and fake container elements."""

    def __init__(self) -> None:
        self.registry: Dict[str, object] = {}
        self.queries: List[str] = []
        self.broken: set = set()

    def add(self, key: str, matches) -> None:
        """Register a list of elements, or a callable returning one, under a shorthand key."""
        self.registry[key] = matches

    def element(self, key: str, name: Optional[str] = None, **kwargs) -> "FakeElement":
        el = FakeElement(name or key, **kwargs)
        current = self.registry.setdefault(key, [])
        current.append(el)
        return el

    def lookup(self, key: str) -> list:
        """Run a query the way `count()` does; recorded in `queries`."""
        self.queries.append(key)
        if key in self.broken:
            raise PlaywrightError(f"query failed: {key}")
        return self.matches(key)

    def matches(self, key: str) -> list:
        found = self.registry.get(key, [])
        return list(found() if callable(found) else found)

    def locator(self, selector: str) -> "FakeLocator":
        return FakeLocator(self, selector if selector.startswith("xpath=") else f"css={selector}")

    def get_by_text(self, text, exact=None) -> "FakeLocator":
        return FakeLocator(self, f"text={_text(text)}")

    def get_by_role(self, role, name=None, exact=None) -> "FakeLocator":
        return FakeLocator(self, f"role={role}" + (f"|{_text(name)}" if name is not None else ""))

    def get_by_test_id(self, test_id) -> "FakeLocator":
        return FakeLocator(self, f"testid={_text(test_id)}")

    def get_by_label(self, text, exact=None) -> "FakeLocator":
        return FakeLocator(self, f"label={_text(text)}")

    def get_by_placeholder(self, text, exact=None) -> "FakeLocator":
        return FakeLocator(self, f"placeholder={_text(text)}")


class FakeLocator:
    def __init__(self, owner: _Queries, key: str) -> None:
        self.owner = owner
        self.key = key

    def count(self) -> int:
        return len(self.owner.lookup(self.key))

    @property
    def first(self) -> "FakeElement":
        # narrowing an already counted locator is not a new query
        return self.owner.matches(self.key)[0]


class FakeElement(_Queries):
    """
    Element double. `fail` lists interaction labels that raise a driver error:
    click, click:force, fill, fill:force, check, check:force, scroll, evaluate.
    """

    def __init__(
        self,
        name: str,
        *,
        visible: bool = True,
        checked: bool = False,
        fail=(),
        on_click: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__()
        self.name = name
        self.visible = visible
        self.checked = checked
        self.fail = set(fail)
        self.on_click = on_click
        self.value = ""
        self.calls: List[str] = []
        self.timeouts: List[Optional[int]] = []

    def __repr__(self) -> str:
        return f"<FakeElement {self.name}>"

    def _attempt(self, label: str, timeout: Optional[int] = None) -> None:
        self.calls.append(label)
        self.timeouts.append(timeout)
        if label in self.fail:
            raise PlaywrightError(f"{label} failed on {self.name}")

    def _clicked(self) -> None:
        if self.on_click:
            self.on_click()

    def click(self, *, force: bool = False, timeout: Optional[int] = None) -> None:
        self._attempt("click:force" if force else "click", timeout)
        self._clicked()

    def fill(self, value: str, *, force: bool = False, timeout: Optional[int] = None) -> None:
        self._attempt("fill:force" if force else "fill", timeout)
        self.value = value

    def check(self, *, force: bool = False, timeout: Optional[int] = None) -> None:
        self._attempt("check:force" if force else "check", timeout)
        self.checked = True

    def scroll_into_view_if_needed(self, timeout: Optional[int] = None) -> None:
        self._attempt("scroll", timeout)

    def evaluate(self, expression: str, arg=None):
        self._attempt("evaluate")
        if "checked" in expression:
            self.checked = True
        elif "value" in expression:
            self.value = arg
        else:
            self._clicked()

    def is_visible(self, timeout: Optional[int] = None) -> bool:
        return self.visible

    def is_checked(self, timeout: Optional[int] = None) -> bool:
        return self.checked


class FakePage(_Queries):
    def __init__(self, url: str = "about:blank") -> None:
        super().__init__()
        self.url = url
        self.navigations: List[str] = []
        self.broken_urls: set = set()
        self.load_states: List[str] = []
        self.waits: List[int] = []
        self.screenshots: List[str] = []

    def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[int] = None) -> None:
        self.navigations.append(url)
        if url in self.broken_urls:
            raise PlaywrightError(f"net::ERR_FAILED at {url}")
        self.url = url

    def wait_for_load_state(self, state: str = "load", timeout: Optional[int] = None) -> None:
        self.load_states.append(state)

    def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    def screenshot(self, path: Optional[str] = None, full_page: bool = False) -> None:
        self.screenshots.append(path)


def add_login_form(page: FakePage, *, combined: bool = False, landing: str = f"{BASE_URL}/jira/your-work") -> dict:
    """Register an Atlassian-like login form; submitting moves the page to `landing`."""
    email = page.element("testid=username", name="email")
    password = page.element("testid=password", name="password", visible=combined)

    def reveal() -> None:
        password.visible = True

    def land() -> None:
        page.url = landing

    cont = page.element("role=button|/continue|log in/i", name="continue", on_click=reveal)
    submit = page.element("role=button|/log in|continue/i", name="submit", on_click=land)
    return {"email": email, "password": password, "continue": cont, "submit": submit}


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    c = FakeClock()
    monkeypatch.setattr(timing, "now_ms", c.now_ms)
    monkeypatch.setattr(timing, "sleep_ms", c.sleep_ms)
    return c


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def login_form():
    return add_login_form


@pytest.fixture
def flow_config() -> FlowConfig:
    return FlowConfig(
        base_url=BASE_URL,
        login_email="qa@example.com",
        login_password="s3cret",
        expected_auth_url=r"acme\.atlassian\.net",
        page_load_timeout_ms=30000,
    )


@pytest.fixture
def fresh_settings(monkeypatch):
    """Clear cached settings before and after a test that changes the environment."""
    for key in ("BASE_URL", "LOGIN_EMAIL", "LOGIN_PASSWORD", "EXPECTED_AUTH_URL"):
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture
def make_element():
    """Factory for detached elements, for registries that change over time."""
    return FakeElement
