"""
Error taxonomy for the install pipeline.

Every pipeline error names the stage that failed and carries the
underlying cause as a string, so callers can report
"fetch failed: connection refused" without inspecting tracebacks.
"""

from typing import Any, Dict, List, Optional

from .exit_codes import (
    CommandError,
    DATA_ERROR,
    FORMULA_NOT_FOUND,
    UNRESOLVABLE_SOURCE,
    FETCH_FAILED,
    MISSING_DEPENDENCY,
    INSTALL_FAILED,
    VERIFICATION_FAILED,
)


class DescriptorError(CommandError):
    """Raised when a formula is malformed or violates descriptor rules."""
    def __init__(self, message: str):
        super().__init__(message, DATA_ERROR)


class FormulaNotFoundError(CommandError):
    """Raised when no formula file exists for a name."""
    def __init__(self, name: str):
        super().__init__(f"No formula named '{name}'", FORMULA_NOT_FOUND)
        self.name = name


class PipelineError(CommandError):
    """
    Base class for failures inside one pipeline stage.

    Subclasses fix the stage name and exit code.
    """
    stage = "pipeline"
    default_exit_code = 1

    def __init__(self, cause: str, package: Optional[str] = None):
        self.cause = cause
        self.package = package
        prefix = f"{package}: " if package else ""
        super().__init__(f"{prefix}{self.stage} failed: {cause}", self.default_exit_code)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'error': str(self),
            'type': type(self).__name__,
            'stage': self.stage,
            'cause': self.cause,
            'exit_code': self.exit_code,
        }
        if self.package:
            result['package'] = self.package
        return result


class UnresolvableSource(PipelineError):
    """Source location unreachable, or the branch/tag does not exist."""
    stage = "resolve"
    default_exit_code = UNRESOLVABLE_SOURCE


class FetchError(PipelineError):
    """Network, authentication or checksum failure while fetching."""
    stage = "fetch"
    default_exit_code = FETCH_FAILED

    def __init__(self, cause: str, package: Optional[str] = None, retryable: bool = True):
        self.retryable = retryable
        super().__init__(cause, package)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["retryable"] = self.retryable
        return result


class MissingDependency(PipelineError):
    """One or more declared dependencies are not installed."""
    stage = "install"
    default_exit_code = MISSING_DEPENDENCY

    def __init__(self, missing, package: Optional[str] = None):
        self.missing = sorted(missing)
        super().__init__(
            f"missing dependencies: {', '.join(self.missing)}", package
        )


class InstallError(PipelineError):
    """Filesystem failure, or declared files absent from the fetched tree."""
    stage = "install"
    default_exit_code = INSTALL_FAILED


class VerificationFailed(PipelineError):
    """The post-install test command did not produce the expected output."""
    stage = "verify"
    default_exit_code = VERIFICATION_FAILED

    def __init__(
        self,
        expected: str,
        actual: str,
        package: Optional[str] = None,
        reason: Optional[str] = None,
        command: Optional[List[str]] = None,
    ):
        self.expected = expected
        self.actual = actual
        self.command = command
        cause = reason or f"expected output matching {expected!r}, got {actual!r}"
        super().__init__(cause, package)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['expected'] = self.expected
        result['actual'] = self.actual
        return result
