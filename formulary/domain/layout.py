"""
Target layout for installs.

The layout is a prefix directory with a fixed shape:

    <prefix>/bin/                         installed executables
    <prefix>/var/formulary/receipts.json  what is installed, and from where
    <prefix>/var/formulary/staging/       per-install staging (same filesystem as bin)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union


@dataclass(frozen=True)
class TargetLayout:
    prefix: Path

    @classmethod
    def at(cls, prefix: Union[str, Path]) -> 'TargetLayout':
        return cls(prefix=Path(prefix).expanduser().resolve())

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    @property
    def state_dir(self) -> Path:
        return self.prefix / "var" / "formulary"

    @property
    def receipts_path(self) -> Path:
        return self.state_dir / "receipts.json"

    @property
    def staging_dir(self) -> Path:
        return self.state_dir / "staging"

    def binary_path(self, name: str) -> Path:
        """Where an executable called `name` is installed."""
        return self.bin_dir / name
