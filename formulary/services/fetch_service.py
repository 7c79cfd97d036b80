"""
Fetch service for formulary.

Materializes a resolved ArtifactRef as a plain file tree inside a
workspace. Content for pinned refs is cached by (url, revision) so a
repeated fetch produces the same bytes without touching the network.
"""

import logging
import os
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Optional, List

import requests

from ..domain.artifact import ArtifactRef
from ..errors import FetchError
from ..infra.git_client import GitClient
from ..infra.http_client import HttpClient

logger = logging.getLogger(__name__)

# Name of the fetched tree inside a workspace
TREE_NAME = "src"


def _is_safe_member(name: str) -> bool:
    path = PurePosixPath(name.replace('\\', '/'))
    return not path.is_absolute() and '..' not in path.parts


class FetchService:
    """
    Fetch artifacts into workspaces.

    Example:
        service = FetchService(cache_dir=Path("~/.formulary/cache").expanduser())
        with Workspace("mxp") as ws:
            tree = service.fetch(ref, ws.path)
            print(sorted(p.name for p in tree.iterdir()))
    """

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        git_client: Optional[GitClient] = None,
        http_client: Optional[HttpClient] = None,
    ):
        """
        Initialize FetchService.

        Args:
            cache_dir: Where pinned content is cached (no caching if None)
            git_client: GitClient instance (creates new if None)
            http_client: HttpClient instance (creates new if None)
        """
        self.cache_dir = Path(cache_dir).expanduser() if cache_dir else None
        self.git = git_client or GitClient()
        self.http = http_client or HttpClient()

    def cache_path(self, ref: ArtifactRef) -> Optional[Path]:
        """Cache location for ref, or None when ref must not be cached."""
        if self.cache_dir is None or not ref.cacheable:
            return None
        return self.cache_dir / ref.cache_key

    def fetch(self, ref: ArtifactRef, workspace: Path) -> Path:
        """
        Materialize ref under workspace.

        Work happens in a hidden partial directory that is renamed into
        place only when complete. On any failure or interruption the
        partial directory is removed and nothing is left behind.

        Args:
            ref: Resolved artifact
            workspace: Scoped, disposable directory for this install

        Returns:
            Path of the fetched tree

        Raises:
            FetchError: Network, authentication or checksum failure
        """
        workspace = Path(workspace)
        dest = workspace / TREE_NAME
        if dest.exists():
            shutil.rmtree(dest)

        partial = Path(tempfile.mkdtemp(prefix=".partial-", dir=workspace))
        try:
            tree = partial / "tree"
            cached = self.cache_path(ref)
            if cached is not None and cached.is_dir():
                logger.info(f"Using cached {ref.url} @ {ref.revision}")
                shutil.copytree(cached, tree, symlinks=True)
            else:
                if ref.kind == "archive":
                    self._fetch_archive(ref, partial, tree)
                else:
                    self._fetch_git(ref, tree)
                if cached is not None:
                    self._store_in_cache(tree, cached)
            os.replace(tree, dest)
        except OSError as e:
            raise FetchError(f"cannot write fetched files: {e}") from e
        finally:
            shutil.rmtree(partial, ignore_errors=True)

        logger.debug(f"Fetched {ref.url} @ {ref.revision} into {dest}")
        return dest

    def _fetch_git(self, ref: ArtifactRef, tree: Path) -> None:
        tree.mkdir(parents=True)
        path = str(tree)

        result = self.git.init(path)
        if not result.ok:
            raise FetchError(f"git init failed: {result.message}")

        result = self.git.fetch(path, ref.url, ref.revision, depth=1)
        if not result.ok:
            # Some servers refuse requests for unadvertised commits
            logger.debug(f"Shallow fetch of {ref.revision} refused ({result.message}), fetching refs")
            result = self.git.fetch(path, ref.url, *self._fallback_refspecs(ref), depth=None)
            if not result.ok:
                raise FetchError(f"git fetch {ref.url} failed: {result.message}")

        result = self.git.checkout(path, ref.revision)
        if not result.ok:
            raise FetchError(f"revision {ref.revision} not available from {ref.url}: {result.message}", retryable=False)

        head = self.git.rev_parse(path, "HEAD")
        if head is not None and not head.startswith(ref.revision) and not ref.revision.startswith(head):
            raise FetchError(f"checked out {head}, expected {ref.revision}", retryable=False)

        shutil.rmtree(tree / ".git")

    @staticmethod
    def _fallback_refspecs(ref: ArtifactRef) -> List[str]:
        kind, _, value = ref.selector.partition(':')
        if kind == "branch" and value:
            return [f"+refs/heads/{value}:refs/remotes/origin/{value}"]
        if kind == "tag" and value:
            return [f"+refs/tags/{value}:refs/tags/{value}"]
        return ["+refs/heads/*:refs/remotes/origin/*", "+refs/tags/*:refs/tags/*"]

    def _fetch_archive(self, ref: ArtifactRef, partial: Path, tree: Path) -> None:
        archive = partial / "download"
        try:
            digest = self.http.download(ref.url, archive)
        except requests.RequestException as e:
            raise FetchError(f"download of {ref.url} failed: {e}") from e

        expected = ref.sha256
        if expected and digest != expected.lower():
            raise FetchError(f"checksum mismatch for {ref.url}: expected {expected}, got {digest}", retryable=False)

        extracted = partial / "extracted"
        extracted.mkdir()
        lowered = ref.url.lower().split('?', 1)[0]
        if lowered.endswith('.zip'):
            self._extract_zip(archive, extracted)
        else:
            self._extract_tar(archive, extracted)

        # Release archives usually wrap everything in one top-level directory
        entries = list(extracted.iterdir())
        if len(entries) == 1 and entries[0].is_dir() and not entries[0].is_symlink():
            os.replace(entries[0], tree)
        else:
            os.replace(extracted, tree)

    @staticmethod
    def _extract_tar(archive: Path, target: Path) -> None:
        try:
            with tarfile.open(archive, 'r:*') as tf:
                for member in tf.getmembers():
                    if not _is_safe_member(member.name):
                        raise FetchError(f"archive member escapes the tree: {member.name}", retryable=False)
                    if (member.issym() or member.islnk()) and not _is_safe_member(member.linkname):
                        raise FetchError(f"archive link escapes the tree: {member.name} -> {member.linkname}", retryable=False)
                    if member.isdev():
                        raise FetchError(f"archive contains a device file: {member.name}", retryable=False)
                extract_kwargs = {'filter': 'data'} if hasattr(tarfile, 'data_filter') else {}
                tf.extractall(target, **extract_kwargs)
        except tarfile.TarError as e:
            raise FetchError(f"cannot unpack {archive.name}: {e}") from e

    @staticmethod
    def _extract_zip(archive: Path, target: Path) -> None:
        try:
            with zipfile.ZipFile(archive) as zf:
                for info in zf.infolist():
                    if not _is_safe_member(info.filename):
                        raise FetchError(f"archive member escapes the tree: {info.filename}", retryable=False)
                for info in zf.infolist():
                    extracted = Path(zf.extract(info, target))
                    # zipfile drops permission bits; restore them from the unix attributes
                    mode = (info.external_attr >> 16) & 0o777
                    if mode and not info.is_dir():
                        extracted.chmod(mode)
        except zipfile.BadZipFile as e:
            raise FetchError(f"cannot unpack {archive.name}: {e}") from e

    def _store_in_cache(self, tree: Path, cached: Path) -> None:
        """Copy tree into the cache; a concurrent writer may win the race."""
        cached.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{cached.name}.", dir=cached.parent))
        try:
            copy = staging / "tree"
            shutil.copytree(tree, copy, symlinks=True)
            try:
                os.rename(copy, cached)
            except OSError:
                if not cached.is_dir():
                    raise
                logger.debug(f"Cache entry {cached.name} already written")
        finally:
            shutil.rmtree(staging, ignore_errors=True)

