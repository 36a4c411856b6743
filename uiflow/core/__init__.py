"""
Core package for uiflow.
Lightweight package init to avoid import cycles.

Consumers should import submodules directly, e.g.:
  from uiflow.core.workflow_loader import load_workflow, Workflow
  from uiflow.core.orchestrator import StepOrchestrator
  from uiflow.core.engine import run_workflow, Engine
"""

__all__: list[str] = []
