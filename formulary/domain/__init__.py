"""
Domain layer for formulary.

Contains pure domain objects with no I/O or side effects:
- Descriptor: Immutable package record loaded from a formula
- ArtifactRef: Resolved URL + revision handed to the fetcher
- TargetLayout: Where installs land
- PipelineResult: Per-package state machine and outcome

These objects provide serialization methods for JSONL output.
"""

from .descriptor import Descriptor, SourceLocation, TestCommand, InstallEntry
from .artifact import ArtifactRef
from .layout import TargetLayout
from .operation import (
    Stage,
    PipelineState,
    InstallResult,
    VerifyResult,
    PipelineResult,
    BatchSummary,
)

__all__ = [
    'Descriptor',
    'SourceLocation',
    'TestCommand',
    'InstallEntry',
    'ArtifactRef',
    'TargetLayout',
    'Stage',
    'PipelineState',
    'InstallResult',
    'VerifyResult',
    'PipelineResult',
    'BatchSummary',
]
