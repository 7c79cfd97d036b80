"""
Tests for GitClient (subprocess mocked).
"""

import subprocess
from unittest.mock import MagicMock, patch

from formulary.infra.git_client import GitClient, GitCommandResult


def completed(stdout="", stderr="", returncode=0):
    return MagicMock(stdout=stdout, stderr=stderr, returncode=returncode)


class TestGitCommandResult:

    def test_message_uses_last_stderr_line(self):
        result = GitCommandResult(stderr="warning: x\nfatal: repository not found\n", returncode=128)
        assert not result.ok
        assert result.message == "fatal: repository not found"

    def test_message_fallback(self):
        assert GitCommandResult(returncode=3).message == "git exited with status 3"


class TestGitClient:

    @patch('formulary.infra.git_client.subprocess.run')
    def test_ls_remote_parses_refs(self, mock_run):
        mock_run.return_value = completed(
            "aaa111\trefs/tags/v1\nbbb222\trefs/tags/v1^{}\n"
        )
        refs, error = GitClient().ls_remote("https://e.com/r.git", "refs/tags/v1", "refs/tags/v1^{}")
        assert error is None
        assert refs == {"refs/tags/v1": "aaa111", "refs/tags/v1^{}": "bbb222"}

        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["git", "ls-remote", "https://e.com/r.git"]
        assert mock_run.call_args[1]['env']['GIT_TERMINAL_PROMPT'] == "0"

    @patch('formulary.infra.git_client.subprocess.run')
    def test_ls_remote_error(self, mock_run):
        mock_run.return_value = completed(stderr="fatal: unable to access", returncode=128)
        refs, error = GitClient().ls_remote("https://e.com/r.git")
        assert refs == {}
        assert error == "fatal: unable to access"

    @patch('formulary.infra.git_client.subprocess.run')
    def test_timeout_becomes_failed_result(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=5)
        result = GitClient(timeout=5)._run(["status"])
        assert result.returncode == -1
        assert "timed out" in result.message

    @patch('formulary.infra.git_client.subprocess.run')
    def test_missing_git_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError("git")
        result = GitClient()._run(["status"])
        assert not result.ok

    @patch('formulary.infra.git_client.subprocess.run')
    def test_fetch_depth(self, mock_run):
        mock_run.return_value = completed()
        client = GitClient()
        client.fetch("/tmp/r", "https://e.com/r.git", "abc123")
        assert mock_run.call_args[0][0] == [
            "git", "fetch", "--quiet", "--no-tags", "--depth=1", "https://e.com/r.git", "abc123"
        ]
        client.fetch("/tmp/r", "https://e.com/r.git", "refs/heads/main", depth=None)
        assert "--depth=1" not in mock_run.call_args[0][0]
        assert mock_run.call_args[1]['cwd'] == "/tmp/r"

    @patch('formulary.infra.git_client.subprocess.run')
    def test_rev_parse(self, mock_run):
        mock_run.return_value = completed("abc123\n")
        assert GitClient().rev_parse("/tmp/r") == "abc123"
        mock_run.return_value = completed(stderr="fatal: bad revision", returncode=128)
        assert GitClient().rev_parse("/tmp/r") is None
