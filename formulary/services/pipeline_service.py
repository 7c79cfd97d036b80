"""
Install pipeline service for formulary.

Runs Resolve -> Fetch -> Install -> Verify for one package, strictly in
order, inside one disposable workspace. Used by the `formulary install`
and `formulary test` commands.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Callable, Generator, List, Optional

from ..config import load_config, expand_path
from ..domain.artifact import ArtifactRef
from ..domain.descriptor import Descriptor
from ..domain.layout import TargetLayout
from ..domain.operation import (
    BatchSummary,
    PipelineResult,
    PipelineState,
    Stage,
    VerifyResult,
)
from ..errors import (
    DescriptorError,
    FetchError,
    InstallError,
    MissingDependency,
    UnresolvableSource,
    VerificationFailed,
)
from ..infra.git_client import GitClient
from ..infra.http_client import HttpClient
from ..infra.workspace import Workspace
from .fetch_service import FetchService
from .install_service import InstallService
from .resolver_service import ResolverService
from .verify_service import VerifyService

logger = logging.getLogger(__name__)


@dataclass
class PipelineOptions:
    """Options for pipeline runs."""
    head: bool = False         # Install from the descriptor's head source
    skip_verify: bool = False
    parallel: int = 1          # Concurrent packages in install_many (1 = sequential)
    prefix: Optional[Path] = None  # Overrides general.prefix


class PipelineService:
    """
    Service that installs packages end to end.

    Each stage either hands its output to the next or halts the run with
    a stage error; nothing is retried except fetching, which is retried
    with exponential backoff as configured under `fetch`.

    Example:
        service = PipelineService()
        for message in service.install(descriptor, PipelineOptions()):
            print(message)  # "Resolving mxp..."

        result = service.last_result
        print(result.outcome)  # "verified"
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        resolver: Optional[ResolverService] = None,
        fetcher: Optional[FetchService] = None,
        installer: Optional[InstallService] = None,
        verifier: Optional[VerifyService] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize PipelineService.

        Args:
            config: Configuration dict (loads default if None)
            resolver, fetcher, installer, verifier: Stage services (built from config if None)
            sleep: Used between fetch retries
        """
        self.config = config or load_config()
        general = self.config.get('general', {})
        fetch_config = self.config.get('fetch', {})

        self.max_retries = int(fetch_config.get('max_retries', 3))
        self.backoff_seconds = float(fetch_config.get('backoff_seconds', 1.0))
        timeout = int(fetch_config.get('timeout_seconds', 300))

        git = GitClient(timeout=timeout)
        http = HttpClient(timeout=timeout)
        cache_dir = general.get('cache_dir')

        self.resolver = resolver or ResolverService(git, http)
        self.fetcher = fetcher or FetchService(
            cache_dir=expand_path(cache_dir) if cache_dir else None,
            git_client=git,
            http_client=http,
        )
        self.installer = installer or InstallService(self.config)
        self.verifier = verifier or VerifyService(self.config)
        self.workspace_root = general.get('workspace_root') or None
        self.default_prefix = general.get('prefix', '~/.formulary/prefix')
        self._sleep = sleep
        self.last_result: Optional[PipelineResult] = None
        self.last_summary: Optional[BatchSummary] = None

    def layout(self, prefix: Optional[Path] = None) -> TargetLayout:
        """Target layout for prefix, or the configured one."""
        return TargetLayout.at(expand_path(prefix or self.default_prefix))

    def install(
        self,
        descriptor: Descriptor,
        options: Optional[PipelineOptions] = None,
    ) -> Generator[str, None, PipelineResult]:
        """
        Install one package.

        Args:
            descriptor: Package to install
            options: Pipeline options

        Yields:
            Progress messages

        Returns:
            PipelineResult (also stored in last_result)
        """
        result = PipelineResult(name=descriptor.name, version=descriptor.version)
        self.last_result = result
        return (yield from self._pipeline(descriptor, options or PipelineOptions(), result))

    def _pipeline(
        self,
        descriptor: Descriptor,
        options: PipelineOptions,
        result: PipelineResult,
    ) -> Generator[str, None, PipelineResult]:
        if options.head:
            try:
                descriptor = descriptor.with_head()
            except DescriptorError as e:
                result.fail(Stage.RESOLVE, e)
                yield f"✗ {descriptor.name}: {e}"
                return result

        layout = self.layout(options.prefix)

        with Workspace(descriptor.name, self.workspace_root) as workspace:
            yield f"Resolving {descriptor.name} ({descriptor.source.selector})..."
            try:
                artifact = self.resolver.resolve(descriptor)
            except UnresolvableSource as e:
                result.fail(Stage.RESOLVE, e)
                yield f"✗ {e}"
                return result
            result.artifact = artifact
            result.advance(PipelineState.RESOLVED)
            if not artifact.pinned:
                yield f"  {descriptor.name} tracks {artifact.selector}; this install is not reproducible"

            yield f"Fetching {artifact.url} @ {artifact.revision[:12]}..."
            try:
                tree = yield from self._fetch_with_retry(artifact, workspace.path, descriptor.name)
            except FetchError as e:
                result.fail(Stage.FETCH, e)
                yield f"✗ {e}"
                return result
            result.advance(PipelineState.FETCHED)

            yield f"Installing {descriptor.name} into {layout.bin_dir}..."
            try:
                result.install = self.installer.install(tree, descriptor, layout, artifact=artifact)
            except (MissingDependency, InstallError) as e:
                result.fail(Stage.INSTALL, e)
                yield f"✗ {e}"
                return result
            result.advance(PipelineState.INSTALLED)

        result.caveats = descriptor.caveats

        if options.skip_verify:
            result.verify_skipped = True
            yield f"✓ Installed {descriptor.name} {descriptor.version} (verification skipped)"
            return result

        yield from self._verify_into(result, descriptor, layout)
        return result

    def _fetch_with_retry(
        self,
        artifact: ArtifactRef,
        workspace: Path,
        name: str,
    ) -> Generator[str, None, Path]:
        attempt = 0
        while True:
            try:
                return self.fetcher.fetch(artifact, workspace)
            except FetchError as e:
                if not e.retryable or attempt >= self.max_retries:
                    raise
                delay = self.backoff_seconds * (2 ** attempt)
                attempt += 1
                logger.warning(f"Fetch of {name} failed ({e.cause}); retry {attempt}/{self.max_retries} in {delay:.1f}s")
                yield f"  fetch failed ({e.cause}), retrying in {delay:.1f}s ({attempt}/{self.max_retries})"
                self._sleep(delay)

    def _verify_into(
        self,
        result: PipelineResult,
        descriptor: Descriptor,
        layout: TargetLayout,
    ) -> Generator[str, None, None]:
        yield f"Verifying {descriptor.name}..."
        try:
            result.verify = self.verifier.verify(descriptor, layout)
        except VerificationFailed as e:
            result.verify = VerifyResult(
                name=descriptor.name,
                command=e.command,
                expected=e.expected,
                actual=e.actual,
                passed=False,
            )
            result.fail(Stage.VERIFY, e)
            yield f"✗ {e}"
            return
        result.advance(PipelineState.VERIFIED)
        yield f"✓ {descriptor.name} {descriptor.version} verified"

    def test(
        self,
        descriptor: Descriptor,
        prefix: Optional[Path] = None,
    ) -> VerifyResult:
        """
        Verify an already-installed package.

        Raises:
            VerificationFailed: Test command failed or output did not match
        """
        return self.verifier.verify(descriptor, self.layout(prefix))

    def install_many(
        self,
        descriptors: List[Descriptor],
        options: Optional[PipelineOptions] = None,
    ) -> Generator[str, None, BatchSummary]:
        """
        Install several independent packages.

        Packages run in parallel workers when options.parallel > 1, each
        in its own workspace. A parallel batch leaves last_result as None;
        per-package results are in the summary.

        Yields:
            Progress messages

        Returns:
            BatchSummary (also stored in last_summary)
        """
        options = options or PipelineOptions()
        summary = BatchSummary()
        self.last_summary = summary

        if not descriptors:
            yield "No packages to install"
            return summary

        if options.parallel > 1 and len(descriptors) > 1:
            self.last_result = None
            yield f"Installing {len(descriptors)} packages (parallel={options.parallel})..."

            def install_one(descriptor: Descriptor) -> PipelineResult:
                return self._run_to_end(descriptor, options)

            with ThreadPoolExecutor(max_workers=options.parallel) as executor:
                futures = {executor.submit(install_one, d): d for d in descriptors}
                for future in as_completed(futures):
                    package_result = future.result()
                    summary.add_result(package_result)
                    yield f"  {package_result.name}: {package_result.outcome}"
        else:
            for descriptor in descriptors:
                package_result = yield from self.install(descriptor, options)
                summary.add_result(package_result)

        return summary

    def _run_to_end(self, descriptor: Descriptor, options: PipelineOptions) -> PipelineResult:
        """Run one package without a consumer; messages go to the debug log."""
        result = PipelineResult(name=descriptor.name, version=descriptor.version)
        generator = self._pipeline(descriptor, options, result)
        while True:
            try:
                message = next(generator)
            except StopIteration as stop:
                return stop.value
            logger.debug(f"[{descriptor.name}] {message}")
