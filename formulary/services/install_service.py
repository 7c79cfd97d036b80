"""
Install service for formulary.

Places a package's declared files from a fetched tree into the target
layout. An install is all-or-nothing: files are staged next to the bin
directory, swapped in with os.replace, and rolled back if any step
fails, so verification never sees a half-installed package.
"""

import logging
import os
import shutil
import stat
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Iterable, List, Optional, Tuple

from ..config import load_config
from ..domain.artifact import ArtifactRef
from ..domain.descriptor import Descriptor
from ..domain.layout import TargetLayout
from ..domain.operation import InstallResult
from ..errors import InstallError, MissingDependency
from ..infra.file_store import FileStore

logger = logging.getLogger(__name__)

EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


class InstalledIndex:
    """
    Read-only answer to "is this dependency installed?".

    A name counts as installed when the layout holds a receipt for it,
    when the configuration lists it as provided, or (optionally) when an
    executable with that name is on PATH.
    """

    def __init__(
        self,
        layout: TargetLayout,
        provided: Iterable[str] = (),
        check_path: bool = True,
    ):
        self.layout = layout
        self.provided = frozenset(provided)
        self.check_path = check_path
        self._receipts = FileStore(layout.receipts_path)

    def is_satisfied(self, name: str) -> bool:
        if name in self.provided or name in self._receipts:
            return True
        return self.check_path and shutil.which(name) is not None

    def missing(self, names: Iterable[str]) -> List[str]:
        return sorted(name for name in names if not self.is_satisfied(name))


class InstallService:
    """
    Service for installing fetched trees into a layout.

    Example:
        service = InstallService()
        layout = TargetLayout.at("~/.formulary/prefix")
        result = service.install(tree, descriptor, layout, artifact=ref)
        print(result.files)  # ['/home/me/.formulary/prefix/bin/mxp']
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize InstallService.

        Args:
            config: Configuration dict (loads default if None)
        """
        self.config = config or load_config()
        deps = self.config.get('dependencies', {})
        self.provided = deps.get('provided', []) or []
        self.check_path = bool(deps.get('check_path', True))

    def index(self, layout: TargetLayout) -> InstalledIndex:
        return InstalledIndex(layout, self.provided, self.check_path)

    def install(
        self,
        source_path: Path,
        descriptor: Descriptor,
        layout: TargetLayout,
        artifact: Optional[ArtifactRef] = None,
    ) -> InstallResult:
        """
        Install descriptor's files from source_path into layout.

        Args:
            source_path: Fetched tree
            descriptor: Package being installed
            layout: Target layout
            artifact: Resolved ref, recorded in the receipt

        Returns:
            InstallResult listing the installed files

        Raises:
            MissingDependency: A declared dependency is not installed (nothing written)
            InstallError: Declared files missing, or a filesystem write failed
        """
        missing = self.index(layout).missing(descriptor.dependencies)
        if missing:
            raise MissingDependency(missing, descriptor.name)

        sources = self._collect_sources(Path(source_path), descriptor, layout)

        staging = layout.staging_dir / f"{descriptor.name}-{uuid.uuid4().hex[:12]}"
        committed: List[Tuple[Path, Optional[Path]]] = []
        try:
            staging.mkdir(parents=True)
            staged = [(self._stage(src, staging, target), layout.binary_path(target))
                      for src, target in sources]

            layout.bin_dir.mkdir(parents=True, exist_ok=True)
            for staged_file, target in staged:
                backup = None
                if target.exists() or target.is_symlink():
                    backup = staging / f".previous-{target.name}"
                    os.replace(target, backup)
                committed.append((target, backup))
                os.replace(staged_file, target)

            receipts = FileStore(layout.receipts_path)
            previous = receipts.get(descriptor.name) or {}
            result = InstallResult(
                name=descriptor.name,
                version=descriptor.version,
                revision=artifact.revision if artifact else "",
                pinned=artifact.pinned if artifact else descriptor.pinned,
                bin_dir=str(layout.bin_dir),
                files=[str(target) for _, target in staged],
            )
            receipts.set(descriptor.name, self._receipt(result, artifact))
        except OSError as e:
            self._rollback(committed)
            raise InstallError(f"cannot write to {layout.prefix}: {e}", descriptor.name) from e
        except BaseException:
            self._rollback(committed)
            raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        self._remove_stale_files(previous.get('files', []), result.files)
        logger.info(f"Installed {descriptor.name} {descriptor.version} into {layout.bin_dir}")
        return result

    def _collect_sources(
        self,
        source_path: Path,
        descriptor: Descriptor,
        layout: TargetLayout,
    ) -> List[Tuple[Path, str]]:
        """Check every declared file before anything is written."""
        root = source_path.resolve()
        sources = []
        for entry in descriptor.binaries:
            src = source_path / entry.source
            if not src.is_file():
                raise InstallError(f"'{entry.source}' not found in fetched source", descriptor.name)
            if root not in src.resolve().parents:
                raise InstallError(f"'{entry.source}' points outside the fetched source", descriptor.name)
            target = layout.binary_path(entry.target_name)
            if target.is_dir() and not target.is_symlink():
                raise InstallError(f"{target} exists and is a directory", descriptor.name)
            sources.append((src, entry.target_name))
        return sources

    @staticmethod
    def _stage(src: Path, staging: Path, target_name: str) -> Path:
        staged = staging / target_name
        shutil.copy2(src, staged)
        mode = staged.stat().st_mode
        # Executable wherever readable
        staged.chmod(mode | ((mode & 0o444) >> 2) | stat.S_IXUSR)
        return staged

    @staticmethod
    def _rollback(committed: List[Tuple[Path, Optional[Path]]]) -> None:
        for target, backup in reversed(committed):
            try:
                if backup is not None:
                    os.replace(backup, target)
                elif target.exists() or target.is_symlink():
                    target.unlink()
            except OSError as e:
                logger.error(f"Rollback of {target} failed: {e}")

    @staticmethod
    def _receipt(result: InstallResult, artifact: Optional[ArtifactRef]) -> Dict[str, Any]:
        receipt = result.to_dict()
        receipt['installed_at'] = datetime.now(timezone.utc).isoformat()
        if artifact:
            receipt['source'] = artifact.to_dict()
        return receipt

    @staticmethod
    def _remove_stale_files(old_files: Iterable[str], new_files: Iterable[str]) -> None:
        """Delete files a previous version installed that this one does not."""
        keep = set(new_files)
        for path in old_files:
            if path in keep:
                continue
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove stale file {path}: {e}")

    def uninstall(self, name: str, layout: TargetLayout) -> Dict[str, Any]:
        """
        Remove an installed package's files and receipt.

        Raises:
            InstallError: Package is not installed, or a file cannot be removed
        """
        receipts = FileStore(layout.receipts_path)
        try:
            receipt = receipts.read(strict=True).get(name)
        except OSError as e:
            raise InstallError(f"cannot read receipts: {e}", name) from e
        if receipt is None:
            raise InstallError(f"'{name}' is not installed", name)

        removed = []
        for path in receipt.get('files', []):
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                raise InstallError(f"cannot remove {path}: {e}", name) from e
            removed.append(path)

        try:
            receipts.delete(name)
        except OSError as e:
            raise InstallError(f"cannot update receipts: {e}", name) from e
        logger.info(f"Uninstalled {name}")
        return {'name': name, 'version': receipt.get('version'), 'removed': removed}

    def installed(self, layout: TargetLayout) -> List[Dict[str, Any]]:
        """Receipts for everything installed in layout, sorted by name."""
        receipts = FileStore(layout.receipts_path)
        return [dict(receipt, name=name) for name, receipt in sorted(receipts.items())]
