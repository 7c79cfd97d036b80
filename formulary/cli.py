#!/usr/bin/env python3

import click

from formulary.commands.install import install_handler
from formulary.commands.test import test_handler
from formulary.commands.info import info_handler
from formulary.commands.resolve import resolve_handler
from formulary.commands.list import list_handler
from formulary.commands.uninstall import uninstall_handler
from formulary.commands.formulas import formulas_handler
from formulary.commands.config import config_cmd


@click.group()
@click.version_option(package_name='formulary')
def cli():
    """formulary - Install command-line tools from small package formulas.

    A formula names a source (git tag, branch, revision or archive), the
    files to put on PATH, dependencies, caveats and a smoke test. Each
    install runs resolve, fetch, install and verify in order and stops at
    the first stage that fails.
    """
    pass


# Pipeline commands
cli.add_command(install_handler, name='install')
cli.add_command(test_handler, name='test')
cli.add_command(resolve_handler, name='resolve')

# Inspection and housekeeping
cli.add_command(info_handler, name='info')
cli.add_command(list_handler, name='list')
cli.add_command(uninstall_handler, name='uninstall')
cli.add_command(formulas_handler, name='formulas')
cli.add_command(config_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
