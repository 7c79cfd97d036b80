"""
Source resolution service for formulary.

Turns a descriptor's source location into a concrete ArtifactRef:
a URL plus the exact revision that will be fetched.
"""

import logging
from typing import Optional

from ..domain.artifact import ArtifactRef
from ..domain.descriptor import Descriptor, SourceLocation
from ..errors import UnresolvableSource
from ..infra.git_client import GitClient
from ..infra.http_client import HttpClient

logger = logging.getLogger(__name__)


class ResolverService:
    """
    Resolve descriptors to ArtifactRefs.

    - tag: the tag's commit (peeled for annotated tags), pinned
    - branch: the branch's current head, not pinned
    - revision: used as given once the remote answers, pinned
    - archive: sha256 when declared (pinned), else the server's validator

    Example:
        ref = ResolverService().resolve(descriptor)
        print(ref.revision, ref.pinned)
    """

    def __init__(
        self,
        git_client: Optional[GitClient] = None,
        http_client: Optional[HttpClient] = None,
    ):
        self.git = git_client or GitClient()
        self.http = http_client or HttpClient()

    def resolve(self, descriptor: Descriptor) -> ArtifactRef:
        """
        Resolve the descriptor's source.

        Raises:
            UnresolvableSource: Remote unreachable or the ref does not exist
        """
        source = descriptor.source
        if source.is_archive:
            ref = self._resolve_archive(descriptor.name, source)
        else:
            ref = self._resolve_git(descriptor.name, source)
        logger.info(f"Resolved {descriptor.name} {ref.selector} -> {ref.revision}")
        return ref

    def _resolve_git(self, name: str, source: SourceLocation) -> ArtifactRef:
        if source.tag:
            tag_ref = f"refs/tags/{source.tag}"
            refs, error = self.git.ls_remote(source.url, tag_ref, f"{tag_ref}^{{}}")
            if error is not None:
                raise UnresolvableSource(f"{source.url} unreachable: {error}", name)
            # Annotated tags advertise the tag object and the peeled commit
            revision = refs.get(f"{tag_ref}^{{}}") or refs.get(tag_ref)
            if not revision:
                raise UnresolvableSource(f"tag '{source.tag}' not found at {source.url}", name)
            return ArtifactRef(source.url, revision, pinned=True, kind="git", selector=source.selector)

        if source.branch:
            branch_ref = f"refs/heads/{source.branch}"
            refs, error = self.git.ls_remote(source.url, branch_ref)
            if error is not None:
                raise UnresolvableSource(f"{source.url} unreachable: {error}", name)
            revision = refs.get(branch_ref)
            if not revision:
                raise UnresolvableSource(f"branch '{source.branch}' not found at {source.url}", name)
            return ArtifactRef(source.url, revision, pinned=False, kind="git", selector=source.selector)

        _, error = self.git.ls_remote(source.url, "HEAD")
        if error is not None:
            raise UnresolvableSource(f"{source.url} unreachable: {error}", name)
        return ArtifactRef(source.url, source.revision, pinned=True, kind="git", selector=source.selector)

    def _resolve_archive(self, name: str, source: SourceLocation) -> ArtifactRef:
        headers, error = self.http.probe(source.url)
        if error is not None:
            raise UnresolvableSource(f"{source.url} unreachable: {error}", name)

        if source.sha256:
            revision = f"sha256:{source.sha256.lower()}"
            pinned = True
        else:
            validator = headers.get('ETag') or headers.get('Last-Modified') or 'unversioned'
            revision = f"url:{validator.strip()}"
            pinned = False
        return ArtifactRef(source.url, revision, pinned=pinned, kind="archive", selector=source.selector)
