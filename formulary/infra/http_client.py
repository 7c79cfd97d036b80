"""
HTTP client infrastructure for formulary.

Used for archive sources (release tarballs and zips):
- HEAD probes to check that an archive URL is reachable
- Streamed downloads that hash while writing
"""

import hashlib
import logging
from pathlib import Path
from typing import Optional, Mapping, Tuple

import requests

logger = logging.getLogger(__name__)

# Bytes per read when streaming a download
CHUNK_SIZE = 64 * 1024


class HttpClient:
    """
    Thin wrapper over a requests Session.

    Example:
        client = HttpClient()
        headers, error = client.probe("https://example.com/tool-1.0.tar.gz")
        digest = client.download("https://example.com/tool-1.0.tar.gz", Path("/tmp/tool.tgz"))
    """

    def __init__(self, timeout: int = 300):
        """
        Initialize HttpClient.

        Args:
            timeout: HTTP request timeout in seconds
        """
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': 'formulary',
        })

    def probe(self, url: str) -> Tuple[Mapping[str, str], Optional[str]]:
        """
        Check that url answers.

        Returns:
            Tuple of (response headers, error). error is None on success.
        """
        try:
            response = self.session.head(url, allow_redirects=True, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"HEAD {url} failed: {e}")
            return {}, str(e)
        return response.headers, None

    def download(self, url: str, dest: Path) -> str:
        """
        Stream url into dest.

        Returns:
            Hex SHA-256 of the downloaded bytes

        Raises:
            requests.RequestException: On network or HTTP errors
            OSError: If dest cannot be written
        """
        digest = hashlib.sha256()
        with self.session.get(url, stream=True, timeout=self.timeout) as response:
            response.raise_for_status()
            with open(dest, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        digest.update(chunk)
        logger.debug(f"Downloaded {url} to {dest}")
        return digest.hexdigest()
