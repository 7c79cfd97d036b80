"""
formulary - package formulas and a resolve/fetch/install/verify pipeline.

A formula describes one installable tool: where its source lives, which
files go on PATH, what it depends on, caveats to show after install and
a command that proves it works.

Quick Start:
    from formulary import get_formula, PipelineService, PipelineOptions

    descriptor = get_formula("mxp")
    service = PipelineService()

    for message in service.install(descriptor, PipelineOptions()):
        print(message)

    result = service.last_result
    print(result.outcome)       # "verified", "installed_unverified" or "failed"
    print(result.failed_stage)  # None, or the Stage that stopped the run

Domain Objects:
    Descriptor - A parsed formula
    ArtifactRef - A source resolved to a concrete revision
    TargetLayout - Where installed files go
    PipelineResult - What happened to one package

Services:
    ResolverService, FetchService, InstallService, VerifyService
    PipelineService - All four stages in order

Errors (each names its stage):
    UnresolvableSource, FetchError, MissingDependency,
    InstallError, VerificationFailed
"""

__version__ = "0.1.0"

# Domain objects
from .domain import (
    Descriptor,
    SourceLocation,
    TestCommand,
    InstallEntry,
    ArtifactRef,
    TargetLayout,
    Stage,
    PipelineState,
    PipelineResult,
    BatchSummary,
)

# Errors
from .errors import (
    DescriptorError,
    FormulaNotFoundError,
    PipelineError,
    UnresolvableSource,
    FetchError,
    MissingDependency,
    InstallError,
    VerificationFailed,
)

# Services
from .services import (
    ResolverService,
    FetchService,
    InstallService,
    VerifyService,
    PipelineService,
    PipelineOptions,
)

# Formulas and configuration
from .formula_loader import get_formula, load_formula
from .config import load_config, save_config

__all__ = [
    "__version__",
    "Descriptor",
    "SourceLocation",
    "TestCommand",
    "InstallEntry",
    "ArtifactRef",
    "TargetLayout",
    "Stage",
    "PipelineState",
    "PipelineResult",
    "BatchSummary",
    "DescriptorError",
    "FormulaNotFoundError",
    "PipelineError",
    "UnresolvableSource",
    "FetchError",
    "MissingDependency",
    "InstallError",
    "VerificationFailed",
    "ResolverService",
    "FetchService",
    "InstallService",
    "VerifyService",
    "PipelineService",
    "PipelineOptions",
    "get_formula",
    "load_formula",
    "load_config",
    "save_config",
]
