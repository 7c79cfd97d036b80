"""
Resolve command for formulary.

Resolves a formula's source to a concrete revision without fetching it.
"""

import click
from typing import Optional

from ..cli_utils import standard_command, add_common_options, command_config
from ..formula_loader import get_formula
from ..services.pipeline_service import PipelineService


@click.command('resolve')
@click.argument('name')
@click.option('--head', is_flag=True, help="Resolve the formula's head branch")
@add_common_options('verbose', 'quiet', 'format')
@standard_command
def resolve_handler(name: str, head: bool, verbose: bool, quiet: bool,
                    format: Optional[str], progress):
    """
    Print the artifact a formula currently resolves to.

    Branch sources report "pinned": false; installing them again later may
    give different content.

    Examples:

        formulary resolve mxp
        formulary resolve mxp --head
    """
    config = command_config(verbose)
    descriptor = get_formula(name, config)
    if head:
        descriptor = descriptor.with_head()

    progress(f"Resolving {descriptor.name} ({descriptor.source.selector})...")
    artifact = PipelineService(config).resolver.resolve(descriptor)
    result = artifact.to_dict()
    result['name'] = descriptor.name
    return result
