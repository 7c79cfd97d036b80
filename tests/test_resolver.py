"""
Tests for ResolverService with mocked clients, plus real git against a local repository.
"""

from unittest.mock import MagicMock

import pytest

from formulary.domain import Descriptor
from formulary.errors import UnresolvableSource
from formulary.infra.git_client import GitClient
from formulary.services.resolver_service import ResolverService

from conftest import git as run_git, requires_git

URL = "https://github.com/agzam/emacs-piper.git"
SHA = "0123456789abcdef0123456789abcdef01234567"


def descriptor(**source):
    return Descriptor.from_dict({"name": "mxp", "version": "0.4.0", "source": dict(url=URL, **source)})


@pytest.fixture
def git():
    return MagicMock()


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def resolver(git, http):
    return ResolverService(git_client=git, http_client=http)


class TestGitSources:

    def test_branch_is_unpinned(self, resolver, git):
        git.ls_remote.return_value = ({"refs/heads/main": SHA}, None)
        ref = resolver.resolve(descriptor(branch="main"))
        assert ref.revision == SHA
        assert not ref.pinned
        assert ref.selector == "branch:main"
        git.ls_remote.assert_called_once_with(URL, "refs/heads/main")

    def test_annotated_tag_prefers_peeled_commit(self, resolver, git):
        git.ls_remote.return_value = (
            {"refs/tags/v0.4.0": "f" * 40, "refs/tags/v0.4.0^{}": SHA}, None
        )
        ref = resolver.resolve(descriptor(tag="v0.4.0"))
        assert ref.revision == SHA
        assert ref.pinned

    def test_lightweight_tag(self, resolver, git):
        git.ls_remote.return_value = ({"refs/tags/v0.4.0": SHA}, None)
        assert resolver.resolve(descriptor(tag="v0.4.0")).revision == SHA

    def test_missing_branch(self, resolver, git):
        git.ls_remote.return_value = ({}, None)
        with pytest.raises(UnresolvableSource) as exc_info:
            resolver.resolve(descriptor(branch="nope"))
        assert exc_info.value.stage == "resolve"
        assert exc_info.value.exit_code == 72
        assert "not found" in exc_info.value.cause

    def test_unreachable_remote(self, resolver, git):
        git.ls_remote.return_value = ({}, "fatal: unable to access")
        with pytest.raises(UnresolvableSource, match="unreachable"):
            resolver.resolve(descriptor(tag="v1"))

    def test_revision_checks_remote(self, resolver, git):
        git.ls_remote.return_value = ({"HEAD": "x"}, None)
        ref = resolver.resolve(descriptor(revision=SHA))
        assert ref.revision == SHA
        assert ref.pinned
        git.ls_remote.assert_called_once_with(URL, "HEAD")

    def test_resolution_is_deterministic(self, resolver, git):
        git.ls_remote.return_value = ({"refs/heads/main": SHA}, None)
        d = descriptor(branch="main")
        assert resolver.resolve(d) == resolver.resolve(d)


class TestArchiveSources:
    ARCHIVE = "https://example.com/mxp-0.4.0.tar.gz"

    def archive(self, **extra):
        return Descriptor.from_dict({"name": "mxp", "version": "0.4.0",
                                     "source": dict(url=self.ARCHIVE, **extra)})

    def test_checksummed_archive_is_pinned(self, resolver, http):
        http.probe.return_value = ({}, None)
        ref = resolver.resolve(self.archive(sha256="A" * 64))
        assert ref.kind == "archive"
        assert ref.revision == "sha256:" + "a" * 64
        assert ref.pinned

    def test_unchecksummed_archive_uses_etag(self, resolver, http):
        http.probe.return_value = ({"ETag": '"abc"'}, None)
        ref = resolver.resolve(self.archive())
        assert ref.revision == 'url:"abc"'
        assert not ref.pinned

    def test_http_error(self, resolver, http):
        http.probe.return_value = ({}, "404 Client Error")
        with pytest.raises(UnresolvableSource):
            resolver.resolve(self.archive())


@requires_git
class TestRealGit:

    def resolve(self, repo, **source):
        resolver = ResolverService(git_client=GitClient(timeout=30), http_client=MagicMock())
        return resolver.resolve(Descriptor.from_dict({
            "name": "mxp", "version": "0.4.0", "source": dict(url=str(repo), **source),
        }))

    def test_branch(self, upstream_repo):
        ref = self.resolve(upstream_repo, branch="main")
        assert ref.revision == run_git(upstream_repo, "rev-parse", "HEAD")
        assert not ref.pinned

    def test_tag(self, upstream_repo):
        ref = self.resolve(upstream_repo, tag="v0.4.0")
        assert ref.revision == run_git(upstream_repo, "rev-parse", "HEAD")
        assert ref.pinned

    def test_branch_tracks_new_commits(self, upstream_repo):
        first = self.resolve(upstream_repo, branch="main").revision
        (upstream_repo / "README").write_text("changed\n")
        run_git(upstream_repo, "commit", "-q", "-am", "update")
        assert self.resolve(upstream_repo, branch="main").revision != first
        assert self.resolve(upstream_repo, tag="v0.4.0").revision == first

    def test_missing_branch(self, upstream_repo):
        with pytest.raises(UnresolvableSource, match="not found"):
            self.resolve(upstream_repo, branch="does-not-exist")
