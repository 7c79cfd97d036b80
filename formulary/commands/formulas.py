"""
Formulas command for formulary: names that can be installed.
"""

import click
from typing import Optional

from ..cli_utils import standard_command, add_common_options, command_config
from ..formula_loader import formula_search_paths, list_formulas


@click.command('formulas')
@add_common_options('verbose', 'quiet', 'pretty', 'format')
@standard_command
def formulas_handler(verbose: bool, quiet: bool, pretty: bool,
                     format: Optional[str], progress):
    """List available formulas and the files they come from."""
    config = command_config(verbose)
    found = list_formulas(formula_search_paths(config))

    if pretty and not quiet:
        from ..render import render_table
        render_table(["Formula", "Path"], [[name, str(path)] for name, path in found.items()],
                     title="Formulas")
        return None
    return [{'name': name, 'path': str(path)} for name, path in found.items()]
