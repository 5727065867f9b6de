"""Exception hierarchy for the test framework."""

from __future__ import annotations

from typing import Any


class E2EGuardError(Exception):
    """Base class for framework errors.

    Keyword context is kept on ``self.context`` and appended to ``str()``.
    """

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class OperationTimeoutError(E2EGuardError):
    """An operation did not settle within its policy budget."""

    def __init__(self, operation: str, budget_ms: int, elapsed_ms: int, detail: str = "") -> None:
        message = f"{operation} timed out after {elapsed_ms}ms (budget {budget_ms}ms)"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, operation=operation, budget_ms=budget_ms, elapsed_ms=elapsed_ms)
        self.operation = operation
        self.budget_ms = budget_ms
        self.elapsed_ms = elapsed_ms

    def __str__(self) -> str:
        return self.message


class FilesystemError(E2EGuardError):
    """An artifact path could not be created or accessed."""

    def __init__(self, message: str, code: str, path: str, operation: str) -> None:
        super().__init__(message, code=code, path=path, operation=operation)
        self.code = code
        self.path = path
        self.operation = operation


class VisualComparisonError(E2EGuardError):
    """A screenshot did not match its baseline, or no baseline existed."""

    def __init__(self, message: str, screenshot_name: str, diff_ratio: float | None = None) -> None:
        super().__init__(message, screenshot_name=screenshot_name, diff_ratio=diff_ratio)
        self.screenshot_name = screenshot_name
        self.diff_ratio = diff_ratio


class ElementStateError(E2EGuardError):
    """An element was present but not in an actionable state."""

    def __init__(self, message: str, selector: str, state: str) -> None:
        super().__init__(message, selector=selector, state=state)
        self.selector = selector
        self.state = state
