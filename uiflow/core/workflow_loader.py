# uiflow/core/workflow_loader.py
from __future__ import annotations

"""Workflow schema and loader
-----------------------------
Pydantic models for candidate selectors, locator specs, wait policies, action
chains and steps, plus the YAML loader (multi-document, ${ENV} substitution).
All models are frozen: a workflow does not change while it runs.
"""

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


# ---------- Core enums ----------


class SelectorStrategy(str, Enum):
    css = "css"
    text = "text"
    role = "role"
    xpath = "xpath"
    test_id = "testid"
    label = "label"
    placeholder = "placeholder"


class Readiness(str, Enum):
    attached = "attached"
    visible = "visible"
    checked = "checked"


class TechniqueKind(str, Enum):
    standard = "standard"          # respects visibility/occlusion checks
    scrolled = "scrolled"          # scroll into view first, then standard
    forced = "forced"              # skips actionability checks
    programmatic = "programmatic"  # DOM call, no input simulation


class ActionName(str, Enum):
    goto = "goto"
    authenticate = "authenticate"
    click = "click"
    fill = "fill"
    check = "check"
    assert_ = "assert"


class FailurePolicy(str, Enum):
    abort = "abort"
    continue_ = "continue"


LoadState = Literal["load", "domcontentloaded", "networkidle", "commit"]

_REGEX_LITERAL = re.compile(r"^/(?P<body>.+)/(?P<flags>i?)$")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------- Candidate queries ----------


class Selector(_Frozen):
    """One way of finding an element: a strategy plus its value."""

    value: str = Field(..., description="Selector value (css/text/role/xpath/testid/label/placeholder)")
    strategy: SelectorStrategy = Field(default=SelectorStrategy.css)
    exact: bool = False
    regex: bool = False
    ignore_case: bool = False

    @field_validator("value")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("selector.value cannot be empty")
        return v

    @model_validator(mode="before")
    @classmethod
    def _from_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return cls._parse_shorthand(data)
        return data

    @classmethod
    def parse(cls, raw: str) -> "Selector":
        """
        Build a Selector from shorthand:

        - 'testid=username'                 -> get_by_test_id("username")
        - 'role=button|/log in|continue/i'  -> get_by_role("button", name=re.compile(..., re.I))
        - 'text=/^filters?$/i'              -> get_by_text(regex)
        - 'input[type="email"]'             -> css (no known strategy prefix)
        """
        return cls.model_validate(cls._parse_shorthand(raw))

    @staticmethod
    def _parse_shorthand(raw: str) -> dict:
        strategy, value = SelectorStrategy.css, raw.strip()
        head, sep, tail = value.partition("=")
        if sep and head.strip().lower() in {s.value for s in SelectorStrategy}:
            strategy, value = SelectorStrategy(head.strip().lower()), tail.strip()

        data: dict[str, Any] = {"strategy": strategy, "value": value}
        # For roles the regex applies to the accessible name after '|'
        if strategy == SelectorStrategy.role and "|" in value:
            role, name = value.split("|", 1)
            m = _REGEX_LITERAL.match(name.strip())
            if m:
                data.update(value=f"{role.strip()}|{m['body']}", regex=True, ignore_case=bool(m["flags"]))
        elif strategy not in (SelectorStrategy.css, SelectorStrategy.xpath, SelectorStrategy.role):
            m = _REGEX_LITERAL.match(value)
            if m:
                data.update(value=m["body"], regex=True, ignore_case=bool(m["flags"]))
        return data

    def pattern(self, text: str) -> "str | re.Pattern[str]":
        """`text` as a compiled regex when this selector is a regex, else unchanged."""
        if not self.regex:
            return text
        return re.compile(text, re.IGNORECASE if self.ignore_case else 0)

    def describe(self) -> str:
        value = self.value
        if self.regex:
            flags = "i" if self.ignore_case else ""
            if self.strategy == SelectorStrategy.role and "|" in value:
                role, name = value.split("|", 1)
                value = f"{role}|/{name}/{flags}"
            else:
                value = f"/{value}/{flags}"
        return f"{self.strategy.value}={value}"


class LocatorSpec(_Frozen):
    """Ordered candidate queries for one semantic target; first viable candidate wins."""

    candidates: tuple[Selector, ...] = Field(..., min_length=1)
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_list(cls, data: Any) -> Any:
        if isinstance(data, (str, Selector)):
            return {"candidates": [data]}
        if isinstance(data, (list, tuple)):
            return {"candidates": list(data)}
        return data

    @classmethod
    def of(cls, *candidates: str | Selector, description: Optional[str] = None) -> "LocatorSpec":
        return cls(candidates=tuple(c if isinstance(c, Selector) else Selector.parse(c) for c in candidates),
                   description=description)

    def describe(self) -> str:
        if self.description:
            return self.description
        return " | ".join(c.describe() for c in self.candidates)


# ---------- Waiting & acting ----------


class WaitPolicy(_Frozen):
    readiness: Readiness = Readiness.visible
    timeout_ms: int = Field(default=15000, ge=0)
    poll_interval_ms: int = Field(default=100, ge=1)

    @model_validator(mode="before")
    @classmethod
    def _from_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"readiness": data}
        return data


class Technique(_Frozen):
    kind: TechniqueKind
    timeout_ms: int = Field(default=5000, ge=0, description="Budget for this technique alone")

    @model_validator(mode="before")
    @classmethod
    def _from_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"kind": data}
        return data


class ActionChain(_Frozen):
    """Techniques ordered from safest to most aggressive."""

    techniques: tuple[Technique, ...] = Field(
        default=(
            Technique(kind=TechniqueKind.standard),
            Technique(kind=TechniqueKind.forced),
            Technique(kind=TechniqueKind.programmatic),
        ),
        min_length=1,
    )

    @model_validator(mode="before")
    @classmethod
    def _from_list(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {"techniques": list(data)}
        return data

    @classmethod
    def of(cls, *kinds: str | TechniqueKind, timeout_ms: int = 5000) -> "ActionChain":
        return cls(techniques=tuple(Technique(kind=TechniqueKind(k), timeout_ms=timeout_ms) for k in kinds))


# ---------- Step models (discriminated by 'action') ----------


class StepBase(_Frozen):
    action: ActionName
    name: Optional[str] = Field(default=None, description="Human-friendly step label")
    failure_policy: FailurePolicy = Field(default=FailurePolicy.abort)
    post_delay_ms: Optional[int] = Field(default=None, ge=0, description="Settle period after the step")
    settle: Optional[LoadState] = Field(default=None, description="Load state to await after the action")
    recover_url: Optional[str] = Field(default=None, description="Navigate here after a soft failure")
    recover_unless_url_contains: Optional[str] = None

    @property
    def title(self) -> str:
        return self.name or self.action.value


class StepGoto(StepBase):
    action: Literal[ActionName.goto]
    url: str = Field(..., description="Absolute URL or path relative to BASE_URL")
    wait_until: LoadState = "domcontentloaded"

    @field_validator("url")
    @classmethod
    def _url_non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("goto.url cannot be empty")
        return v


class StepAuthenticate(StepBase):
    action: Literal[ActionName.authenticate]


class StepTarget(StepBase):
    locator: LocatorSpec
    wait: WaitPolicy = Field(default_factory=WaitPolicy)
    chain: ActionChain = Field(default_factory=ActionChain)
    within: Optional[LocatorSpec] = Field(default=None, description="Container to resolve the locator in")


class StepClick(StepTarget):
    action: Literal[ActionName.click]


class StepFill(StepTarget):
    action: Literal[ActionName.fill]
    text: str


class StepCheck(StepTarget):
    action: Literal[ActionName.check]


class StepAssert(StepTarget):
    action: Literal[ActionName.assert_]


Step = Union[
    StepGoto,
    StepAuthenticate,
    StepClick,
    StepFill,
    StepCheck,
    StepAssert,
]


# ---------- Workflow model ----------


class Workflow(_Frozen):
    version: str = Field(default="1")
    site: str = Field(..., description="Site key, e.g. 'jira'")
    task: str = Field(..., description="Task name, e.g. 'status_filter'")
    description: Optional[str] = None
    tags: tuple[str, ...] = ()

    steps: tuple[Step, ...] = Field(..., min_length=1)

    default_post_delay_ms: int = Field(default=0, ge=0)
    deadline_ms: Optional[int] = Field(default=None, gt=0, description="Budget for the whole run")

    @field_validator("site", "task")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v

    @field_validator("steps")
    @classmethod
    def _single_auth(cls, steps: tuple) -> tuple:
        if sum(1 for s in steps if s.action == ActionName.authenticate) > 1:
            raise ValueError("a workflow may authenticate at most once")
        return steps

    @property
    def key(self) -> str:
        return f"{self.site}/{self.task}"


# ---------- Public API ----------

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _subst_env(obj: Any) -> Any:
    """Replace ${VAR} in every string; unknown variables are left as-is."""
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), m.group(0)), obj)
    if isinstance(obj, list):
        return [_subst_env(x) for x in obj]
    if isinstance(obj, dict):
        return {k: _subst_env(v) for k, v in obj.items()}
    return obj


def _infer_site_task(p: Path) -> tuple[str, str]:
    # workflows/<site>/<task>.yaml
    return (p.parent.name or "unknown"), p.stem


def _validate(data: Any, wf_path: Path, doc: Optional[int] = None) -> Workflow:
    where = f"'{wf_path}'" + (f" (document {doc})" if doc else "")
    if not isinstance(data, dict):
        raise ValueError(f"Workflow {where} must define a mapping/object at the top level.")
    site, task = _infer_site_task(wf_path)
    data = {"site": site, "task": task, **_subst_env(data)}
    try:
        return Workflow.model_validate(data)
    except ValidationError as ve:
        lines = [f"Invalid workflow {where}:"]
        for e in ve.errors():
            loc = ".".join(str(p) for p in e.get("loc", []))
            lines.append(f"  - {loc}: {e.get('msg', 'invalid value')}")
        raise ValueError("\n".join(lines)) from ve


def load_workflows_file(path: Path | str) -> list[Workflow]:
    """Load one or more workflows from a YAML file (supports multi-document)."""
    wf_path = Path(path)
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    try:
        docs = list(yaml.safe_load_all(wf_path.read_text(encoding="utf-8")))
    except yaml.YAMLError as ye:
        raise ValueError(f"YAML parse error in {wf_path}: {ye}") from ye

    multi = len(docs) > 1
    out = [_validate(d, wf_path, idx if multi else None) for idx, d in enumerate(docs, start=1) if d is not None]
    if not out:
        raise ValueError(f"No workflow documents found in {wf_path}")
    return out


def load_workflow(path: Path | str) -> Workflow:
    """Load a single-workflow file; use load_workflows_file for multi-document files."""
    workflows = load_workflows_file(path)
    if len(workflows) > 1:
        raise ValueError(f"{path} holds {len(workflows)} workflows; use load_workflows_file")
    return workflows[0]


def find_workflow_files(root: Path, recursive: bool = True) -> list[Path]:
    if recursive:
        return sorted(list(root.rglob("*.yaml")) + list(root.rglob("*.yml")))
    return sorted(list(root.glob("*.yaml")) + list(root.glob("*.yml")))


__all__ = [
    "SelectorStrategy",
    "Readiness",
    "TechniqueKind",
    "ActionName",
    "FailurePolicy",
    "Selector",
    "LocatorSpec",
    "WaitPolicy",
    "Technique",
    "ActionChain",
    "Step",
    "StepGoto",
    "StepAuthenticate",
    "StepClick",
    "StepFill",
    "StepCheck",
    "StepAssert",
    "Workflow",
    "load_workflow",
    "load_workflows_file",
    "find_workflow_files",
]
