"""
Test command for formulary.

Re-runs a formula's post-install test against an existing install.
"""

import click
from pathlib import Path
from typing import Optional

from ..cli_utils import standard_command, add_common_options, command_config
from ..formula_loader import get_formula
from ..services.pipeline_service import PipelineService


@click.command('test')
@click.argument('name')
@add_common_options('prefix', 'verbose', 'quiet', 'format')
@standard_command
def test_handler(name: str, prefix: Optional[str], verbose: bool, quiet: bool,
                 format: Optional[str], progress):
    """
    Verify an installed package with its formula's test command.

    Example:

        formulary test mxp
    """
    config = command_config(verbose)
    descriptor = get_formula(name, config)
    service = PipelineService(config)

    progress(f"Testing {descriptor.name} {descriptor.version}...")
    result = service.test(descriptor, Path(prefix) if prefix else None)
    if result.command is None:
        progress.warning(f"{descriptor.name} has no test command")
    else:
        progress.success(f"✓ {descriptor.name} passed")
    return result.to_dict()
