"""
Uninstall command for formulary.
"""

import click
from pathlib import Path
from typing import Optional

from ..cli_utils import standard_command, add_common_options, command_config
from ..services.pipeline_service import PipelineService


@click.command('uninstall')
@click.argument('name')
@add_common_options('prefix', 'verbose', 'quiet', 'format')
@standard_command
def uninstall_handler(name: str, prefix: Optional[str], verbose: bool, quiet: bool,
                      format: Optional[str], progress):
    """
    Remove an installed package's files and receipt.

    The formula does not need to exist any more; the receipt lists what
    was installed.
    """
    config = command_config(verbose)
    service = PipelineService(config)
    result = service.installer.uninstall(name, service.layout(Path(prefix) if prefix else None))
    progress.success(f"✓ Uninstalled {name} ({len(result['removed'])} files)")
    return result
