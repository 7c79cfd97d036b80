"""
Service layer for formulary.

Contains the pipeline stages and the orchestration that chains them:
- ResolverService: Descriptor -> ArtifactRef
- FetchService: ArtifactRef -> fetched tree in a workspace
- InstallService: fetched tree -> files in the target layout
- VerifyService: runs the descriptor's test command
- PipelineService: runs the stages in order for one or many packages

Services are the primary API for commands to use.
"""

from .resolver_service import ResolverService
from .fetch_service import FetchService
from .install_service import InstallService, InstalledIndex
from .verify_service import VerifyService
from .pipeline_service import PipelineService, PipelineOptions

__all__ = [
    'ResolverService',
    'FetchService',
    'InstallService',
    'InstalledIndex',
    'VerifyService',
    'PipelineService',
    'PipelineOptions',
]
