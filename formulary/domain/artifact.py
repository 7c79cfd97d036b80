"""
ArtifactRef domain object for formulary.

An ArtifactRef is what the resolver hands to the fetcher: a concrete
URL + revision pair. Pinned refs always name the same content; head
refs (branch tips, unchecksummed archives) do not and are never cached.
"""

import hashlib
from dataclasses import dataclass
from typing import Dict, Any


@dataclass(frozen=True)
class ArtifactRef:
    """Resolved pointer to fetchable source content."""
    url: str
    revision: str
    pinned: bool
    kind: str = "git"  # git | archive
    selector: str = ""

    @property
    def cache_key(self) -> str:
        """Stable identifier for the (url, revision) pair."""
        digest = hashlib.sha256(f"{self.url}\n{self.revision}".encode('utf-8'))
        return digest.hexdigest()

    @property
    def cacheable(self) -> bool:
        return self.pinned

    @property
    def sha256(self) -> str:
        """Declared archive checksum, or empty when there is none."""
        if self.kind == "archive" and self.revision.startswith("sha256:"):
            return self.revision[len("sha256:"):]
        return ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'revision': self.revision,
            'pinned': self.pinned,
            'kind': self.kind,
            'selector': self.selector,
        }
