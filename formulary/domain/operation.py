"""
Operation result domain objects for formulary.

Provides the per-package pipeline state machine and the standardized
result types written to JSONL by the install/test commands.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

from .artifact import ArtifactRef


class Stage(Enum):
    """Pipeline stage names, used in error reports."""
    RESOLVE = "resolve"
    FETCH = "fetch"
    INSTALL = "install"
    VERIFY = "verify"


class PipelineState(Enum):
    """State of one package moving through the pipeline."""
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    FETCHED = "fetched"
    INSTALLED = "installed"
    VERIFIED = "verified"
    FAILED = "failed"


# Forward-only transitions; FAILED is reachable from any non-terminal state.
_NEXT_STATE = {
    PipelineState.UNRESOLVED: PipelineState.RESOLVED,
    PipelineState.RESOLVED: PipelineState.FETCHED,
    PipelineState.FETCHED: PipelineState.INSTALLED,
    PipelineState.INSTALLED: PipelineState.VERIFIED,
}

TERMINAL_STATES = frozenset({PipelineState.VERIFIED, PipelineState.FAILED})


@dataclass
class InstallResult:
    """Files placed into the layout by one install."""
    name: str
    version: str
    revision: str
    pinned: bool
    bin_dir: str
    files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'version': self.version,
            'revision': self.revision,
            'pinned': self.pinned,
            'bin_dir': self.bin_dir,
            'files': list(self.files),
        }


@dataclass
class VerifyResult:
    """Outcome of running a descriptor's test command."""
    name: str
    command: Optional[List[str]]
    expected: Optional[str]
    actual: str = ""
    passed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'command': self.command,
            'expected': self.expected,
            'actual': self.actual,
            'passed': self.passed,
        }


@dataclass
class PipelineResult:
    """
    Everything that happened to one package in one pipeline run.

    State only moves forward (see _NEXT_STATE). A verification failure
    is recorded as FAILED at the verify stage while `install` still holds
    the successful install; `outcome` tells the two apart.
    """
    name: str
    version: str
    state: PipelineState = PipelineState.UNRESOLVED
    artifact: Optional[ArtifactRef] = None
    install: Optional[InstallResult] = None
    verify: Optional[VerifyResult] = None
    failed_stage: Optional[Stage] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    caveats: Optional[str] = None
    verify_skipped: bool = False
    exception: Optional[Exception] = field(default=None, repr=False, compare=False)

    def advance(self, state: PipelineState) -> None:
        """Move to the next state. Skipping or going back raises ValueError."""
        expected = _NEXT_STATE.get(self.state)
        if expected is None or state is not expected:
            raise ValueError(f"{self.name}: invalid transition {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, stage: Stage, error: Exception) -> None:
        """Record a terminal failure at `stage`."""
        if self.state in TERMINAL_STATES:
            raise ValueError(f"{self.name}: already finished ({self.state.value})")
        self.state = PipelineState.FAILED
        self.failed_stage = stage
        self.error = getattr(error, 'cause', None) or str(error)
        self.error_type = type(error).__name__
        self.exception = error

    @property
    def outcome(self) -> str:
        if self.state is PipelineState.VERIFIED:
            return "verified"
        if self.state is PipelineState.INSTALLED and self.verify_skipped:
            return "installed"
        if self.failed_stage is Stage.VERIFY and self.install is not None:
            return "installed_unverified"
        if self.state is PipelineState.FAILED:
            return "failed"
        return "incomplete"

    @property
    def success(self) -> bool:
        return self.outcome in ("verified", "installed")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {
            'name': self.name,
            'version': self.version,
            'state': self.state.value,
            'outcome': self.outcome,
        }
        if self.artifact:
            result['artifact'] = self.artifact.to_dict()
        if self.install:
            result['install'] = self.install.to_dict()
        if self.verify:
            result['verify'] = self.verify.to_dict()
        if self.failed_stage:
            result['stage'] = self.failed_stage.value
            result['error'] = self.error
            result['type'] = self.error_type
        if self.caveats:
            result['caveats'] = self.caveats
        return result


@dataclass
class BatchSummary:
    """
    Summary of a multi-package install.

    Collects statistics and per-package results.
    """
    operation: str = "install"
    total: int = 0
    successful: int = 0
    unverified: int = 0
    failed: int = 0
    results: List[PipelineResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if every package finished successfully."""
        return self.failed == 0 and self.unverified == 0

    def add_result(self, result: PipelineResult) -> None:
        """Add a package result and update counts."""
        self.results.append(result)
        self.total += 1

        outcome = result.outcome
        if result.success:
            self.successful += 1
        elif outcome == "installed_unverified":
            self.unverified += 1
            self.errors.append(f"{result.name}: {result.error}")
        else:
            self.failed += 1
            self.errors.append(f"{result.name}: {result.error}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': 'summary',
            'operation': self.operation,
            'total': self.total,
            'successful': self.successful,
            'unverified': self.unverified,
            'failed': self.failed,
            'errors': self.errors,
        }
