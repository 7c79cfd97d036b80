"""
Infrastructure layer for formulary.

Contains abstractions for external systems:
- GitClient: Git command execution
- HttpClient: Archive probes and downloads
- FileStore: JSON receipt persistence
- Workspace: Disposable per-install scratch directories

These provide clean interfaces that can be mocked for testing.
"""

from .git_client import GitClient, GitCommandResult
from .http_client import HttpClient
from .file_store import FileStore, CorruptStoreError
from .workspace import Workspace

__all__ = [
    'GitClient',
    'GitCommandResult',
    'HttpClient',
    'FileStore',
    'CorruptStoreError',
    'Workspace',
]
