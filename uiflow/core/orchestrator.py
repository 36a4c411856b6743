# uiflow/core/orchestrator.py
from __future__ import annotations

"""Step orchestrator
--------------------
Runs a workflow's steps strictly in order on one page. Each step resolves its
target, waits for readiness, acts through its chain, and is classified into
success / soft failure / hard failure. A hard failure aborts every step after it.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from uiflow.core.actions import perform
from uiflow.core.auth import AuthFlow, Session
from uiflow.core.errors import FlowError
from uiflow.core.outcome import (
    OutcomeKind,
    RunReport,
    RunStatus,
    StepOutcome,
    StepRecord,
    StepState,
    classify,
)
from uiflow.core.workflow_loader import (
    ActionName,
    Readiness,
    Step,
    StepAuthenticate,
    StepGoto,
    StepTarget,
    WaitPolicy,
    Workflow,
)
from uiflow.selectors.strategy import await_ready
from uiflow.utils.config import FlowConfig
from uiflow.utils.logger import get_logger, log_with_context
from uiflow.utils.timing import Stopwatch


class StepOrchestrator:
    """Executes one workflow end-to-end against a live page."""

    def __init__(
        self,
        page: Page,
        config: FlowConfig,
        workflow: Workflow,
        *,
        auth: Optional[AuthFlow] = None,
        artifacts_dir: Optional[Path] = None,
    ) -> None:
        self.page = page
        self.config = config
        self.workflow = workflow
        self.auth = auth or AuthFlow(config)
        self.artifacts_dir = artifacts_dir
        self.session: Optional[Session] = None
        self.log = log_with_context(get_logger(__name__), workflow=workflow.key)

    # ---------- Run ----------

    def run(self) -> RunReport:
        wf = self.workflow
        report = RunReport(
            workflow=wf.key,
            steps=[StepRecord(index=i, name=s.title, action=s.action.value) for i, s in enumerate(wf.steps, start=1)],
            started_at=datetime.now(timezone.utc).isoformat(),
        )
        self.log.info(f"Starting workflow {wf.key} (steps={len(wf.steps)})")

        with Stopwatch() as run_sw:
            for pos, (step, rec) in enumerate(zip(wf.steps, report.steps)):
                if wf.deadline_ms is not None and run_sw.elapsed_ms() >= wf.deadline_ms:
                    report.reason = f"deadline of {wf.deadline_ms} ms exceeded before step {rec.index}"
                    self.log.error(report.reason)
                    self._abort_from(report, pos)
                    break

                outcome = self._run_step(step, rec)

                if outcome.kind == OutcomeKind.hard_fail:
                    report.reason = f"step {rec.index} ({rec.name}) failed: {outcome.reason}"
                    self._abort_from(report, pos + 1)
                    break

                delay = step.post_delay_ms if step.post_delay_ms is not None else wf.default_post_delay_ms
                if delay:
                    self.page.wait_for_timeout(delay)

        report.elapsed_ms = run_sw.elapsed_ms()
        if self.session is not None:
            report.session = self.session.to_dict()
        soft = len(report.diagnostics)
        if report.ok:
            self.log.info(f"Workflow succeeded in {report.elapsed_ms} ms ({soft} soft failure(s))")
        else:
            self.log.error(f"Workflow hard-failed: {report.reason}")
        return report

    @staticmethod
    def _abort_from(report: RunReport, pos: int) -> None:
        report.status = RunStatus.hard_failed
        for rec in report.steps[pos:]:
            if rec.state == StepState.pending:
                rec.state = StepState.aborted

    # ---------- Single step ----------

    def _run_step(self, step: Step, rec: StepRecord) -> StepOutcome:
        step_log = log_with_context(self.log, step=rec.name, index=rec.index)
        step_log.info(f"Step {rec.index}/{len(self.workflow.steps)}: {rec.name} [{step.action.value}]")
        rec.state = StepState.running

        with Stopwatch() as sw:
            try:
                rec.technique = self._execute(step)
                outcome = StepOutcome.success()
            except (FlowError, PlaywrightError) as e:
                outcome = classify(e, step.failure_policy)
        rec.elapsed_ms = sw.elapsed_ms()
        rec.apply(outcome)

        if outcome.kind == OutcomeKind.soft_fail:
            step_log.warning(f"Soft failure, continuing: {outcome.error_type}: {outcome.reason}")
            self._capture_failure(rec)
            self._recover(step, step_log)
        elif outcome.kind == OutcomeKind.hard_fail:
            step_log.error(f"Hard failure: {outcome.error_type}: {outcome.reason}")
            self._capture_failure(rec)
        return outcome

    def _execute(self, step: Step) -> Optional[str]:
        """Perform one step; returns the technique that succeeded, if any."""
        page, cfg = self.page, self.config

        if isinstance(step, StepGoto):
            page.goto(cfg.absolute_url(step.url), wait_until=step.wait_until, timeout=cfg.page_load_timeout_ms)
            technique = None
        elif isinstance(step, StepAuthenticate):
            if self.session is None:
                self.session = self.auth.ensure_session(page)
            technique = None
        elif isinstance(step, StepTarget):
            scope: Any = page
            wait = step.wait
            if step.within is not None:
                # container and target share one readiness budget
                container_wait = WaitPolicy(
                    readiness=Readiness.attached,
                    timeout_ms=wait.timeout_ms,
                    poll_interval_ms=wait.poll_interval_ms,
                )
                with Stopwatch() as sw:
                    scope = await_ready(page, step.within, container_wait)
                wait = wait.model_copy(update={"timeout_ms": max(0, wait.timeout_ms - sw.elapsed_ms())})
            handle = await_ready(scope, step.locator, wait)
            if step.action == ActionName.assert_:
                technique = None
            else:
                used = perform(handle, step.chain, step.action, text=getattr(step, "text", None))
                technique = used.kind.value
        else:
            raise NotImplementedError(f"Unsupported step action {step.action.value!r}")

        if step.settle:
            page.wait_for_load_state(step.settle, timeout=cfg.page_load_timeout_ms)
        return technique

    # ---------- Failure side paths ----------

    def _recover(self, step: Step, step_log) -> None:
        if not step.recover_url:
            return
        guard = step.recover_unless_url_contains
        if guard and guard in (self.page.url or ""):
            step_log.info(f"Already on a page containing {guard!r}; no recovery navigation")
            return
        target = self.config.absolute_url(step.recover_url)
        step_log.info(f"Recovering by navigating to {target}")
        try:
            self.page.goto(target, wait_until="load", timeout=self.config.page_load_timeout_ms)
        except PlaywrightError as e:
            step_log.warning(f"Recovery navigation failed: {e.message}")

    def _capture_failure(self, rec: StepRecord) -> None:
        if self.artifacts_dir is None:
            return
        path = self.artifacts_dir / f"step-{rec.index:02d}-failed.png"
        try:
            self.page.screenshot(path=str(path), full_page=True)
        except PlaywrightError as e:
            self.log.debug(f"Failure screenshot skipped: {e.message}")
