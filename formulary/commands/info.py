"""
Info command for formulary.
"""

import click
from typing import Optional

from ..cli_utils import standard_command, add_common_options, command_config
from ..formula_loader import find_formula, formula_search_paths, load_formula


@click.command('info')
@click.argument('name')
@add_common_options('verbose', 'quiet', 'pretty', 'format')
@standard_command
def info_handler(name: str, verbose: bool, quiet: bool, pretty: bool,
                 format: Optional[str], progress):
    """
    Show a formula: version, source, dependencies, binaries and caveats.

    Example:

        formulary info mxp --pretty
    """
    config = command_config(verbose)
    path = find_formula(name, formula_search_paths(config))
    info = load_formula(path).to_dict()
    info['formula_path'] = str(path)

    if pretty and not quiet:
        from ..render import render_descriptor
        render_descriptor(info)
        return None
    return info
