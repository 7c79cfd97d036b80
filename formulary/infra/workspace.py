"""
Disposable per-install workspaces.

Each install attempt gets its own directory; nothing in it outlives the
attempt, and two concurrent installs never share one.
"""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class Workspace:
    """
    Scoped scratch directory.

    Example:
        with Workspace("mxp") as ws:
            tree = fetcher.fetch(ref, ws.path)
            installer.install(tree, descriptor, layout)
        # ws.path is gone here, whatever happened inside
    """

    def __init__(self, label: str, root: Optional[Union[str, Path]] = None):
        self.label = label
        self.root = Path(root).expanduser() if root else None
        self.path: Optional[Path] = None

    def __enter__(self) -> 'Workspace':
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(
            prefix=f"formulary-{self.label}-",
            dir=str(self.root) if self.root else None,
        ))
        logger.debug(f"Created workspace {self.path}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.discard()
        return False

    def discard(self) -> None:
        """Remove the workspace and everything in it."""
        if self.path is not None and self.path.exists():
            shutil.rmtree(self.path, ignore_errors=True)
            logger.debug(f"Removed workspace {self.path}")
        self.path = None
