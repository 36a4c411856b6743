# uiflow/utils/config.py
from __future__ import annotations

import functools
import re
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin, urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from uiflow.core.errors import ConfigurationError


# ---------- Enums ----------

class BrowserType(str, Enum):
    chromium = "chromium"
    firefox = "firefox"
    webkit = "webkit"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ---------- Immutable run configuration ----------

class FlowConfig(BaseModel):
    """Validated values the orchestrator and auth flow need for one run."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    login_email: str
    login_password: str = Field(repr=False)
    login_path: str = "/login"
    expected_auth_url: str
    page_load_timeout_ms: int = 60000

    def absolute_url(self, url: str) -> str:
        """Resolve a workflow URL against BASE_URL (absolute URLs pass through)."""
        if url.startswith(("http://", "https://")):
            return url
        return urljoin(self.base_url.rstrip("/") + "/", url.lstrip("/"))

    @property
    def login_url(self) -> str:
        return self.absolute_url(self.login_path)


# ---------- Settings ----------

class Settings(BaseSettings):
    """
    Central configuration for uiflow.

    Values load in this order of precedence:
      1) Environment variables
      2) .env file in project root
      3) Defaults below
    """

    # ---- Target application & credentials ----
    BASE_URL: Optional[str] = Field(default=None, description="Target application root")
    LOGIN_EMAIL: Optional[str] = None
    LOGIN_PASSWORD: Optional[str] = Field(default=None, repr=False)
    LOGIN_PATH: str = Field(default="/login")
    EXPECTED_AUTH_URL: Optional[str] = Field(
        default=None, description="Regex the post-login URL must match (default: BASE_URL host)"
    )

    # ---- Browser configuration ----
    HEADLESS: bool = Field(default=True, description="Run the browser headless")
    BROWSER_TYPE: BrowserType = Field(default=BrowserType.chromium, description="Playwright browser")
    VIEWPORT_WIDTH: int = Field(default=1366, ge=320, le=7680)
    VIEWPORT_HEIGHT: int = Field(default=768, ge=320, le=4320)
    SLOW_MO: int = Field(default=0, ge=0, description="Slow down actions (ms) for debugging")
    USER_AGENT: Optional[str] = Field(default=None)

    # ---- Timing ----
    PAGE_LOAD_TIMEOUT: int = Field(default=60000, ge=1000)

    # ---- Paths & artifacts ----
    OUTPUT_DIR: Path = Field(default=Path("./runs"))
    WORKFLOWS_DIR: Path = Field(default=Path("./workflows"))
    STORAGE_STATE_FILE: Path = Field(default=Path("./storage_state/session.json"))
    PERSIST_SESSION: bool = Field(default=True, description="Save storage state after a fresh login")
    SCREENSHOT_ON_FAILURE: bool = Field(default=True)

    # ---- Logging ----
    LOG_LEVEL: LogLevel = Field(default=LogLevel.INFO)
    LOG_TO_FILE: bool = Field(default=False)
    LOG_FILE: Path = Field(default=Path("./uiflow.log"))
    COLORIZED_OUTPUT: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("OUTPUT_DIR", "WORKFLOWS_DIR", "STORAGE_STATE_FILE", "LOG_FILE", mode="after")
    @classmethod
    def _absolutize(cls, v: Path) -> Path:
        return v if v.is_absolute() else Path.cwd() / v

    @field_validator("BASE_URL", "LOGIN_EMAIL", "LOGIN_PASSWORD", "EXPECTED_AUTH_URL", mode="before")
    @classmethod
    def _blank_is_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def ensure_dirs(self) -> None:
        """Create required directories (idempotent)."""
        for p in {self.OUTPUT_DIR, self.STORAGE_STATE_FILE.parent, self.LOG_FILE.parent}:
            p.mkdir(parents=True, exist_ok=True)

    def flow_config(self) -> FlowConfig:
        """Validate the run configuration once, before any step executes."""
        missing = [k for k in ("BASE_URL", "LOGIN_EMAIL", "LOGIN_PASSWORD") if not getattr(self, k)]
        if missing:
            raise ConfigurationError(
                f"Missing required setting(s): {', '.join(missing)}. Set them in the environment or .env"
            )
        base_url = self.BASE_URL.rstrip("/")
        if not base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"BASE_URL must be an absolute http(s) URL, got {base_url!r}")

        expected = self.EXPECTED_AUTH_URL or re.escape(urlparse(base_url).netloc)
        try:
            re.compile(expected)
        except re.error as e:
            raise ConfigurationError(f"EXPECTED_AUTH_URL is not a valid regex: {e}") from e

        return FlowConfig(
            base_url=base_url,
            login_email=self.LOGIN_EMAIL,
            login_password=self.LOGIN_PASSWORD,
            login_path=self.LOGIN_PATH,
            expected_auth_url=expected,
            page_load_timeout_ms=self.PAGE_LOAD_TIMEOUT,
        )

    # Convenience: Playwright launch options dict
    def playwright_launch_kwargs(self) -> dict:
        return {"headless": self.HEADLESS, "slow_mo": self.SLOW_MO}

    # Convenience: Playwright new_context kwargs
    def playwright_context_kwargs(self) -> dict:
        ctx = {"viewport": {"width": self.VIEWPORT_WIDTH, "height": self.VIEWPORT_HEIGHT}}
        if self.USER_AGENT:
            ctx["user_agent"] = self.USER_AGENT
        return ctx

    def masked(self) -> dict:
        """Settings as plain JSON-friendly values with secrets hidden."""
        data = {}
        for k, v in self.model_dump().items():
            if k == "LOGIN_PASSWORD":
                v = "***" if v else None
            elif isinstance(v, Path):
                v = str(v)
            elif isinstance(v, Enum):
                v = v.value
            data[k] = v
        return data


# --------- Public accessor (memoized) ---------

@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache settings once per process.
    Call `get_settings.cache_clear()` if you need to reload after changing env.
    """
    return Settings()
