"""
Git client infrastructure for formulary.

Provides a clean abstraction over git command execution.
All git operations go through this client, making them:
- Easy to mock for testing
- Consistent in error handling
- Isolated from business logic
"""

import os
import subprocess
from dataclasses import dataclass
from typing import Optional, List, Dict, Tuple
import logging

logger = logging.getLogger(__name__)


@dataclass
class GitCommandResult:
    """Result of one git invocation."""
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def message(self) -> str:
        """Best single-line explanation of a failure."""
        text = (self.stderr or self.stdout).strip()
        lines = [line for line in text.splitlines() if line.strip()]
        return lines[-1] if lines else f"git exited with status {self.returncode}"


class GitClient:
    """
    Abstraction over git commands.

    Example:
        client = GitClient()
        refs, error = client.ls_remote("https://github.com/agzam/emacs-piper.git",
                                       "refs/heads/main")
        if error is None:
            print(refs["refs/heads/main"])
    """

    def __init__(self, timeout: int = 300):
        """
        Initialize GitClient.

        Args:
            timeout: Command timeout in seconds (default: 300)
        """
        self.timeout = timeout

    def _run(self, args: List[str], cwd: Optional[str] = None) -> GitCommandResult:
        """
        Run a git command.

        Never prompts for credentials; an authentication failure is
        reported like any other failure.

        Args:
            args: Arguments after "git"
            cwd: Working directory

        Returns:
            GitCommandResult (returncode -1 when git could not run at all)
        """
        cmd = ["git", *args]
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Git command timed out: {' '.join(cmd)}")
            return GitCommandResult(stderr=f"timed out after {self.timeout}s", returncode=-1)
        except OSError as e:
            logger.error(f"Git command failed: {' '.join(cmd)} - {e}")
            return GitCommandResult(stderr=str(e), returncode=-1)

        if result.returncode != 0:
            logger.debug(f"git {' '.join(args)} exited {result.returncode}: {result.stderr.strip()}")
        return GitCommandResult(
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            returncode=result.returncode,
        )

    def ls_remote(self, url: str, *refs: str) -> Tuple[Dict[str, str], Optional[str]]:
        """
        List refs advertised by a remote.

        Args:
            url: Remote URL
            refs: Ref patterns to ask for (all refs when empty)

        Returns:
            Tuple of ({refname: sha}, error). error is None on success.
        """
        result = self._run(["ls-remote", url, *refs])
        if not result.ok:
            return {}, result.message

        found: Dict[str, str] = {}
        for line in result.stdout.splitlines():
            parts = line.strip().split('\t')
            if len(parts) != 2:
                continue
            sha, ref = parts
            found[ref.strip()] = sha.strip()
        return found, None

    def init(self, path: str) -> GitCommandResult:
        """Create an empty repository at path."""
        return self._run(["init", "--quiet", path])

    def fetch(self, path: str, url: str, *refspecs: str, depth: Optional[int] = 1) -> GitCommandResult:
        """
        Fetch refs or commits from url into the repository at path.

        Args:
            path: Local repository
            url: Remote URL
            refspecs: Ref names, refspecs or commit shas
            depth: Shallow depth, None for full history
        """
        args = ["fetch", "--quiet", "--no-tags"]
        if depth:
            args.append(f"--depth={depth}")
        args.extend([url, *refspecs])
        return self._run(args, cwd=path)

    def checkout(self, path: str, revision: str) -> GitCommandResult:
        """Check out a revision as a detached HEAD."""
        return self._run(["checkout", "--quiet", "--detach", revision], cwd=path)

    def rev_parse(self, path: str, ref: str = "HEAD") -> Optional[str]:
        """Resolve ref to a full commit sha, or None."""
        result = self._run(["rev-parse", "--verify", f"{ref}^{{commit}}"], cwd=path)
        if result.ok and result.stdout.strip():
            return result.stdout.strip()
        return None

