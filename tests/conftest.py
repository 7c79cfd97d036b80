"""
Shared fixtures for formulary tests.
"""

import os
import shutil
import subprocess

import pytest


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Point HOME at a temp dir and drop FORMULARY_* variables from the environment."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    for key in list(os.environ):
        if key.startswith("FORMULARY_"):
            monkeypatch.delenv(key)
    return home


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(cwd, *args):
    """Run git in cwd with a throwaway identity; returns stdout."""
    env = dict(
        os.environ,
        GIT_AUTHOR_NAME="Test", GIT_AUTHOR_EMAIL="test@example.com",
        GIT_COMMITTER_NAME="Test", GIT_COMMITTER_EMAIL="test@example.com",
        GIT_CONFIG_NOSYSTEM="1",
    )
    completed = subprocess.run(
        ["git", *args], cwd=str(cwd), env=env,
        capture_output=True, text=True, check=True,
    )
    return completed.stdout.strip()


@pytest.fixture
def upstream_repo(tmp_path):
    """
    A local git repository standing in for a remote.

    Holds an executable `mxp` script printing "mxp v0.4.0", tagged v0.4.0
    on branch main.
    """
    repo = tmp_path / "upstream"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "checkout", "-q", "-b", "main")
    script = repo / "mxp"
    script.write_text("#!/bin/sh\necho 'mxp v0.4.0'\n")
    script.chmod(0o755)
    (repo / "README").write_text("piper\n")
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "initial")
    git(repo, "tag", "v0.4.0")
    return repo
