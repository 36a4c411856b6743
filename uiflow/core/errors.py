# uiflow/core/errors.py
from __future__ import annotations

"""Error taxonomy
-----------------
Resolution, wait and interaction errors are recoverable: the orchestrator turns
them into a step outcome. Configuration and authentication errors always abort.
"""

from typing import Any, Optional, Sequence


class FlowError(RuntimeError):
    """Base class for every error raised by the flow engine."""


class ConfigurationError(FlowError):
    pass


class ResolutionError(FlowError):
    """No candidate of a LocatorSpec matched anything in the given scope."""

    def __init__(self, spec: Any, scope: str = "page", tried: Sequence[str] = ()) -> None:
        self.spec = spec
        self.scope = scope
        self.tried = list(tried)
        lines = "\n  ".join(self.tried or ["<none>"])
        super().__init__(f"No candidate matched {_label(spec)} in {scope}. Tried:\n  {lines}")


class WaitTimeoutError(FlowError, TimeoutError):
    def __init__(self, spec: Any, readiness: str, elapsed_ms: int) -> None:
        self.spec = spec
        self.readiness = readiness
        self.elapsed_ms = elapsed_ms
        super().__init__(f"{_label(spec)} not {readiness} after {elapsed_ms} ms")


class InteractionError(FlowError):
    """Every technique of an ActionChain raised."""

    def __init__(self, handle: Any, chain: Any, attempts: Optional[Sequence[tuple[str, BaseException]]] = None) -> None:
        self.handle = handle
        self.chain = chain
        self.attempts = list(attempts or [])
        detail = "; ".join(f"{kind}: {exc!r}" for kind, exc in self.attempts) or "no techniques"
        super().__init__(f"All interaction techniques failed ({detail})")


class AuthenticationError(FlowError):
    def __init__(self, message: str, url: Optional[str] = None) -> None:
        self.url = url
        super().__init__(message if url is None else f"{message} (url={url})")


# Errors that end the run no matter what the step's failure policy says.
ABORT_CLASS: tuple[type[FlowError], ...] = (ConfigurationError, AuthenticationError)


def _label(spec: Any) -> str:
    describe = getattr(spec, "describe", None)
    return describe() if callable(describe) else repr(spec)
