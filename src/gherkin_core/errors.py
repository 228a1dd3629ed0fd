"""
Error types raised by the engine.

Parse, expansion, registration and configuration errors are raised
synchronously from the operation that detects them. Step errors
(undefined, ambiguous, failed) are raised by the registry and the runner
but captured into a ScenarioResult rather than escaping a run.
"""

from typing import List, Optional, Sequence

from .model import Step, location


class GherkinError(Exception):
    """Base exception for all engine errors."""

    pass


class ParseError(GherkinError):
    """Raised when a source unit is structurally malformed."""

    def __init__(self, reason: str, line: int, source_file: Optional[str] = None):
        self.reason = reason
        self.line = line
        self.source_file = source_file
        super().__init__(f"{location(source_file, line)}: {reason}")


class ExpansionError(GherkinError):
    """Raised when an outline row cannot be expanded into a scenario."""

    def __init__(
        self,
        outline_name: str,
        row_name: str,
        missing: Sequence[str],
        line: int = 0,
        source_file: Optional[str] = None,
    ):
        self.outline_name = outline_name
        self.row_name = row_name
        self.missing = list(missing)
        self.line = line
        self.source_file = source_file
        columns = ", ".join(f"<{name}>" for name in self.missing)
        super().__init__(
            f"{location(source_file, line)}: cannot expand '{row_name}': "
            f"no Examples column for {columns}"
        )


class InvalidPatternError(GherkinError, ValueError):
    """Raised at registration time when a step pattern is not a valid regex."""

    def __init__(self, pattern: str, detail: str):
        self.pattern = pattern
        self.detail = detail
        super().__init__(f"Invalid step pattern {pattern!r}: {detail}")


class ConfigError(GherkinError, ValueError):
    """Raised when configuration values are missing or malformed."""

    pass


class StepError(GherkinError):
    """Base class for failures tied to one step of a running scenario."""

    kind = "error"

    def __init__(self, message: str, step: Step, source_file: Optional[str] = None):
        self.step = step
        self.source_file = source_file
        self.message = message
        super().__init__(f"{location(source_file, step.source_line)}: {message}")

    @property
    def location(self) -> str:
        return location(self.source_file, self.step.source_line)


class UndefinedStepError(StepError):
    """No registration matches the step text."""

    kind = "undefined"

    def __init__(self, step: Step, source_file: Optional[str] = None):
        super().__init__(f"Undefined step: {step}", step, source_file)


class AmbiguousStepError(StepError):
    """More than one registration matches the step text."""

    kind = "ambiguous"

    def __init__(self, step: Step, patterns: List[str], source_file: Optional[str] = None):
        self.patterns = list(patterns)
        listing = "; ".join(f"{i}. {p!r}" for i, p in enumerate(self.patterns, 1))
        super().__init__(
            f"Ambiguous step: {step} matches {len(self.patterns)} definitions: {listing}",
            step,
            source_file,
        )


class StepFailedError(StepError):
    """A step handler raised. The original exception is kept as ``cause``."""

    kind = "failed"

    def __init__(self, step: Step, cause: BaseException, source_file: Optional[str] = None):
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Step failed: {step}: {detail}", step, source_file)
