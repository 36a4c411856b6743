from __future__ import annotations

"""Workflow engine
-------------------
Launches a Playwright browser, restores a persisted session when one exists,
runs a workflow through the StepOrchestrator and writes report.json plus a
per-run log into the run directory.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from playwright.sync_api import Browser, BrowserContext, Playwright, sync_playwright

from uiflow.core.auth import AuthFlow
from uiflow.core.orchestrator import StepOrchestrator
from uiflow.core.workflow_loader import Workflow, load_workflow
from uiflow.utils.config import Settings, get_settings
from uiflow.utils.logger import attach_file_logger, detach_file_logger, get_logger


@dataclass
class RunContext:
    """Filesystem locations for the current run."""
    run_dir: Path
    report_path: Path
    log_path: Path


def _ts() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d_%H-%M-%S")


class Engine:
    """Runs workflows against a live browser context and manages artifacts."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.log = get_logger(__name__)
        self.last_run_dir: Optional[Path] = None

    # ---------- Browser plumbing ----------

    def _launch(self, p: Playwright) -> Browser:
        s = self.settings
        return getattr(p, s.BROWSER_TYPE.value).launch(**s.playwright_launch_kwargs())

    def _new_context(self, browser: Browser) -> BrowserContext:
        kwargs = self.settings.playwright_context_kwargs()
        state = self.settings.STORAGE_STATE_FILE
        if state.exists():
            self.log.info(f"Restoring session state from {state}")
            kwargs["storage_state"] = str(state)
        return browser.new_context(**kwargs)

    def _persist_session(self, context: BrowserContext) -> None:
        state = self.settings.STORAGE_STATE_FILE
        state.parent.mkdir(parents=True, exist_ok=True)
        context.storage_state(path=str(state))
        self.log.info(f"Saved session state to {state}")

    def _prepare_run_dir(self, wf: Workflow) -> RunContext:
        base = self.settings.OUTPUT_DIR / wf.site / wf.task / _ts()
        base.mkdir(parents=True, exist_ok=True)
        self.last_run_dir = base
        return RunContext(run_dir=base, report_path=base / "report.json", log_path=base / "run.log")

    # ---------- Public API ----------

    def run_workflow(self, wf: Workflow) -> Dict[str, Any]:
        """Execute a workflow and return the report as a dict (plus run_dir).

        ConfigurationError is raised before any browser is launched.
        """
        s = self.settings
        flow = s.flow_config()
        s.ensure_dirs()
        ctx = self._prepare_run_dir(wf)
        handler = attach_file_logger(ctx.log_path)
        try:
            with sync_playwright() as p:
                browser = self._launch(p)
                try:
                    context = self._new_context(browser)
                    page = context.new_page()
                    orchestrator = StepOrchestrator(
                        page,
                        flow,
                        wf,
                        auth=AuthFlow(flow),
                        artifacts_dir=ctx.run_dir if s.SCREENSHOT_ON_FAILURE else None,
                    )
                    report = orchestrator.run()
                    session = orchestrator.session
                    if s.PERSIST_SESSION and session is not None and not session.reused:
                        self._persist_session(context)
                    context.close()
                finally:
                    browser.close()
            result = report.to_dict()
        except Exception as e:
            self.log.exception("Workflow failed:")
            result = {"workflow": wf.key, "ok": False, "status": "hard_failed",
                      "error": str(e), "error_type": e.__class__.__name__}
        finally:
            detach_file_logger(handler)

        result["run_dir"] = str(ctx.run_dir)
        ctx.report_path.write_text(json.dumps(result, indent=2), encoding="utf-8")
        return result

    def save_session(self) -> Path:
        """Log in once and persist the browser storage state for later runs."""
        s = self.settings
        flow = s.flow_config()
        s.ensure_dirs()
        with sync_playwright() as p:
            browser = self._launch(p)
            try:
                context = browser.new_context(**s.playwright_context_kwargs())
                page = context.new_page()
                AuthFlow(flow).login(page)
                self._persist_session(context)
                context.close()
            finally:
                browser.close()
        return s.STORAGE_STATE_FILE


def run_workflow(workflow: Path | str | Workflow) -> Dict[str, Any]:
    if isinstance(workflow, (str, Path)):
        wf = load_workflow(workflow)
    else:
        wf = workflow
    return Engine(settings=get_settings()).run_workflow(wf)


__all__ = ["Engine", "RunContext", "run_workflow"]
