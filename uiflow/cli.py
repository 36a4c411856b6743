# uiflow/cli.py
from __future__ import annotations

"""Command-line interface
------------------------
Validate and run workflow files, save a login session, and view the effective
configuration. Thin wrapper around the loader and engine.
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import click

from uiflow.core.workflow_loader import Workflow, find_workflow_files, load_workflows_file
from uiflow.utils.config import get_settings
from uiflow.utils.logger import bind, get_logger, set_log_level, unbind


# -------- helpers --------


def _echo_json(obj) -> None:
    click.echo(json.dumps(obj, indent=2, ensure_ascii=False))


def _collect_files(targets: List[str], workflows_dir: Optional[str], recursive: bool) -> List[Path]:
    paths: List[Path] = []
    if targets:
        for p in (Path(t).resolve() for t in targets):
            paths.extend(find_workflow_files(p, recursive=True) if p.is_dir() else [p])
    elif workflows_dir:
        paths.extend(find_workflow_files(Path(workflows_dir), recursive=recursive))
    return paths


# -------- CLI root --------


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL from settings",
)
def cli(log_level: Optional[str]):
    if log_level:
        set_log_level(log_level.upper())


# -------- commands --------


@cli.command("config")
def cmd_config():
    """Print effective configuration (after .env & env vars), secrets masked."""
    _echo_json(get_settings().masked())


@cli.command("validate")
@click.argument("targets", nargs=-1, required=False)
@click.option("--dir", "workflows_dir", type=click.Path(file_okay=False, dir_okay=True, exists=True),
              help="Validate all workflows under this directory")
@click.option("--recursive/--no-recursive", default=True, show_default=True)
def cmd_validate(targets: List[str], workflows_dir: Optional[str], recursive: bool):
    """Validate workflows from files or a directory (supports multi-doc YAML)."""
    paths = _collect_files(targets, workflows_dir, recursive)
    if not paths:
        click.echo("Provide file(s) or --dir to validate.")
        sys.exit(2)

    ok = True
    for fp in paths:
        try:
            for wf in load_workflows_file(fp):
                click.echo(f"OK  {fp}  ->  [{wf.site}] {wf.task} ({len(wf.steps)} steps)")
        except (ValueError, FileNotFoundError) as e:
            ok = False
            click.echo(f"ERR {fp}  ->  {e}")

    sys.exit(0 if ok else 1)


@cli.command("run")
@click.argument("targets", nargs=-1, required=False)
@click.option("--dir", "workflows_dir", type=click.Path(file_okay=False, dir_okay=True, exists=True),
              help="Run all workflows found under this directory")
@click.option("--recursive/--no-recursive", default=True, show_default=True)
@click.option("--site", "filter_site", type=str, default=None, help="Only run workflows for this site key")
@click.option("--json-out", type=click.Path(dir_okay=False), default=None, help="Write a JSON summary to this file")
def cmd_run(
    targets: List[str],
    workflows_dir: Optional[str],
    recursive: bool,
    filter_site: Optional[str],
    json_out: Optional[str],
):
    """
    Run one or more workflows, one after another.

    Examples:
      uiflow run workflows/jira/status_filter.yaml
      uiflow run --dir workflows --site jira
    """
    settings = get_settings()
    log = get_logger(__name__)

    paths = _collect_files(targets, workflows_dir, recursive)
    if not paths:
        click.echo("Nothing to run. Provide file(s) or --dir.")
        sys.exit(2)

    workflows: List[Workflow] = []
    for fp in paths:
        try:
            workflows.extend(wf for wf in load_workflows_file(fp) if not filter_site or wf.site == filter_site)
        except (ValueError, FileNotFoundError) as e:
            click.echo(f"ERR {fp} -> {e}")
            sys.exit(1)

    if not workflows:
        click.echo("No workflows matched.")
        sys.exit(1)

    from uiflow.core.engine import Engine  # local import keeps `validate`/`config` browser-free

    bind(run_id=datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"))
    click.echo(f"Running {len(workflows)} workflow(s)...")

    results: List[dict] = []
    for wf in workflows:
        try:
            results.append(Engine(settings=settings).run_workflow(wf))
        except Exception as e:
            log.error(f"{wf.key}: {e}")
            results.append({"workflow": wf.key, "ok": False, "error": str(e), "error_type": e.__class__.__name__})

    for res in results:
        name = res.get("workflow", "?")
        if res.get("ok"):
            click.echo(f"OK  {name} -> run_dir={res.get('run_dir', '-')}")
        else:
            reason = res.get("reason") or res.get("error") or "unknown error"
            prefix = f"{res['error_type']}: " if res.get("error_type") else ""
            click.echo(f"ERR {name} -> {prefix}{reason}")
        for d in res.get("diagnostics") or []:
            click.echo(f"    soft failure in step {d['index']} ({d['step']}): {d['error_type']}: {d['reason']}")

    ok_count = sum(1 for r in results if r.get("ok"))
    fail_count = len(results) - ok_count
    click.echo(f"Done. OK={ok_count}  FAIL={fail_count}")

    if json_out:
        outp = Path(json_out).resolve()
        outp.parent.mkdir(parents=True, exist_ok=True)
        outp.write_text(json.dumps({"results": results}, indent=2), encoding="utf-8")
        click.echo(f"Wrote summary: {outp}")

    unbind("run_id")
    sys.exit(0 if fail_count == 0 else 1)


@cli.command("login")
def cmd_login():
    """Log in once and save the browser session for later runs."""
    from uiflow.core.engine import Engine
    from uiflow.core.errors import FlowError

    try:
        path = Engine(settings=get_settings()).save_session()
    except FlowError as e:
        click.echo(f"ERR {e.__class__.__name__}: {e}")
        sys.exit(1)
    click.echo(f"Saved session: {path}")


def main() -> None:
    cli(prog_name="uiflow")


if __name__ == "__main__":
    main()
