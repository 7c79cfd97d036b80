"""
File store infrastructure for formulary.

Provides JSON file persistence for install receipts with:
- Atomic writes (write to temp, then rename)
- Pretty formatting for human readability
- Thread-safe operations: every store for the same file shares one lock
- Reads that never touch the disk beyond opening the file
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict
import logging

logger = logging.getLogger(__name__)

_LOCKS: Dict[str, Any] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    """The process-wide lock for a store file."""
    key = os.path.abspath(path)
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(key, threading.RLock())


class CorruptStoreError(OSError):
    """The store file exists but does not hold a JSON object."""


class FileStore:
    """
    JSON file persistence with atomic writes.

    Example:
        store = FileStore(layout.receipts_path)
        store.set("mxp", {"version": "0.4.0", ...})
        receipt = store.get("mxp")
    """

    def __init__(self, path: Path):
        """
        Initialize FileStore.

        The file and its parent directories are created on first write,
        so constructing a store for a read-only query has no side effects.

        Args:
            path: Path to JSON file
        """
        self.path = Path(path).expanduser()
        self._lock = _lock_for(self.path)

    def _write_atomic(self, data: Dict[str, Any]) -> None:
        """Write data atomically using temp file and rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write to temp file in same directory
        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp"
        )

        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
                f.write('\n')  # Trailing newline

            # Atomic rename
            os.replace(temp_path, self.path)

        except BaseException:
            # Clean up temp file on error
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def _load(self, strict: bool) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            if strict:
                raise CorruptStoreError(f"{self.path} is not valid JSON: {e}") from e
            logger.warning(f"Error reading {self.path}: {e}")
            return {}
        except OSError as e:
            if strict:
                raise
            logger.warning(f"Error reading {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            if strict:
                raise CorruptStoreError(f"{self.path} does not hold a JSON object")
            return {}
        return data

    def read(self, strict: bool = False) -> Dict[str, Any]:
        """
        Read entire store.

        A corrupt file reads as empty unless strict is set; writes always
        refuse to replace it.

        Returns:
            Dictionary with all stored data (empty if the file is missing)
        """
        with self._lock:
            return self._load(strict=strict)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get single value.

        Args:
            key: Key to retrieve
            default: Default value if not found
        """
        return self.read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set single value.

        Args:
            key: Key to set
            value: Value to store

        Raises:
            CorruptStoreError: The existing file cannot be parsed
        """
        with self._lock:
            data = self._load(strict=True)
            data[key] = value
            self._write_atomic(data)

    def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if key was deleted, False if not found
        """
        with self._lock:
            data = self._load(strict=True)
            if key not in data:
                return False
            del data[key]
            self._write_atomic(data)
            return True

    def items(self):
        """Get all key-value pairs."""
        return self.read().items()

    def __contains__(self, key: str) -> bool:
        return key in self.read()

    def __len__(self) -> int:
        return len(self.read())

    def __repr__(self) -> str:
        return f"FileStore({str(self.path)!r})"

