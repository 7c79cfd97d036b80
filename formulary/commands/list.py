"""
List command for formulary: packages installed in a prefix.
"""

import click
from pathlib import Path
from typing import Optional

from ..cli_utils import standard_command, add_common_options, command_config
from ..services.pipeline_service import PipelineService


@click.command('list')
@add_common_options('prefix', 'verbose', 'quiet', 'pretty', 'format')
@standard_command
def list_handler(prefix: Optional[str], verbose: bool, quiet: bool, pretty: bool,
                 format: Optional[str], progress):
    """
    List installed packages.

    Examples:

        formulary list
        formulary list --pretty
        formulary list --prefix ~/.local
    """
    config = command_config(verbose)
    service = PipelineService(config)
    receipts = service.installer.installed(service.layout(Path(prefix) if prefix else None))

    if pretty and not quiet:
        from ..render import render_installed_table
        render_installed_table(receipts)
        return None
    return receipts
