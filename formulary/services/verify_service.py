"""
Verification service for formulary.

Runs a descriptor's test command against the installed files and
checks the output. Verification is advisory: a failure is reported to
the caller but never touches the install.
"""

import logging
import re
import subprocess
from typing import Dict, Any, Optional

from ..config import load_config
from ..domain.descriptor import Descriptor
from ..domain.layout import TargetLayout
from ..domain.operation import VerifyResult
from ..errors import DescriptorError, VerificationFailed

logger = logging.getLogger(__name__)


class VerifyService:
    """
    Service for post-install smoke tests.

    Example:
        result = VerifyService().verify(descriptor, layout)
        print(result.actual)  # "mxp v0.4.0"
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize VerifyService.

        Args:
            config: Configuration dict (loads default if None)
        """
        self.config = config or load_config()
        self.timeout = self.config.get('verify', {}).get('timeout_seconds', 30)

    @staticmethod
    def template_context(descriptor: Descriptor, layout: TargetLayout) -> Dict[str, str]:
        return {
            'bin': str(layout.bin_dir),
            'prefix': str(layout.prefix),
            'name': descriptor.name,
            'version': descriptor.version,
        }

    def verify(self, descriptor: Descriptor, layout: TargetLayout) -> VerifyResult:
        """
        Run the test command and match its output.

        Returns:
            VerifyResult (passed=True, command=None when there is no test)

        Raises:
            VerificationFailed: Output did not match, or the command could not run
        """
        if descriptor.test is None:
            logger.info(f"{descriptor.name} declares no test; nothing to verify")
            return VerifyResult(name=descriptor.name, command=None, expected=None)

        try:
            argv, expected = descriptor.test.render(self.template_context(descriptor, layout))
        except DescriptorError as e:
            raise VerificationFailed(
                descriptor.test.expect, "", descriptor.name,
                reason=f"cannot expand test command: {e}",
                command=list(descriptor.test.args),
            ) from e
        logger.debug(f"Verifying {descriptor.name}: {' '.join(argv)}")

        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise VerificationFailed(
                expected, _decode(e.stdout), descriptor.name,
                reason=f"'{' '.join(argv)}' timed out after {self.timeout}s",
                command=argv,
            ) from e
        except OSError as e:
            raise VerificationFailed(
                expected, "", descriptor.name,
                reason=f"cannot run '{argv[0]}': {e.strerror or e}",
                command=argv,
            ) from e

        actual = ((completed.stdout or "") + (completed.stderr or "")).strip()

        if descriptor.test.regex:
            matched = re.search(expected, actual) is not None
        else:
            matched = expected in actual

        if not matched:
            raise VerificationFailed(expected, actual, descriptor.name, command=argv)

        logger.info(f"Verified {descriptor.name}: {actual.splitlines()[0] if actual else ''}")
        return VerifyResult(
            name=descriptor.name,
            command=argv,
            expected=expected,
            actual=actual,
            passed=True,
        )


def _decode(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode('utf-8', errors='replace').strip()
    return output.strip()
