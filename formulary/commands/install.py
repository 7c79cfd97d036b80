"""
Install command for formulary.

Runs Resolve -> Fetch -> Install -> Verify for one or more formulas and
reports one result object per package.
"""

import click
from pathlib import Path
from typing import Optional

from ..cli_utils import standard_command, add_common_options, command_config
from ..exit_codes import PartialSuccessError
from ..formula_loader import get_formula
from ..services.pipeline_service import PipelineService, PipelineOptions


@click.command('install')
@click.argument('names', nargs=-1, required=True)
@click.option('--head', is_flag=True, help="Install from the formula's head branch (not reproducible)")
@click.option('--skip-verify', is_flag=True, help='Do not run the post-install test')
@click.option('--parallel', '-j', type=click.IntRange(min=1),
              help='Packages to install concurrently (default: install.parallel)')
@add_common_options('prefix', 'verbose', 'quiet', 'pretty', 'format')
@standard_command
def install_handler(
    names: tuple,
    head: bool,
    skip_verify: bool,
    parallel: Optional[int],
    prefix: Optional[str],
    verbose: bool,
    quiet: bool,
    pretty: bool,
    format: Optional[str],
    progress,
):
    """
    Install packages from their formulas.

    Exits 0 only when every package installed and passed its test.

    Examples:

        formulary install mxp
        formulary install mxp --head              # track the head branch
        formulary install mxp --prefix ~/.local   # install into ~/.local/bin
        formulary install a b c --parallel 3 --pretty
    """
    config = command_config(verbose)
    descriptors = [get_formula(name, config) for name in names]

    options = PipelineOptions(
        head=head,
        skip_verify=skip_verify,
        parallel=parallel or int(config.get('install', {}).get('parallel', 1)),
        prefix=Path(prefix) if prefix else None,
    )
    service = PipelineService(config)

    for message in service.install_many(descriptors, options):
        progress(message)
    summary = service.last_summary

    for result in summary.results:
        if result.install is not None and result.caveats and not quiet:
            if pretty:
                from ..render import render_caveats
                render_caveats(result.name, result.caveats)
            else:
                progress.notice(f"==> Caveats for {result.name}\n{result.caveats.rstrip()}")

    if pretty and not quiet:
        from ..render import render_install_results
        render_install_results([r.to_dict() for r in summary.results], summary.to_dict())
        _raise_for_summary(summary)
        return None

    return _emit(summary)


def _emit(summary):
    for result in summary.results:
        yield result.to_dict()
    if summary.total > 1:
        yield summary.to_dict()
    _raise_for_summary(summary)


def _raise_for_summary(summary) -> None:
    """Turn a batch outcome into the exit status: the stage error or a partial-success error."""
    if summary.success:
        return
    failures = [r for r in summary.results if not r.success]
    if summary.successful == 0:
        raise failures[0].exception
    raise PartialSuccessError(
        f"{len(failures)} of {summary.total} packages did not finish: " + "; ".join(summary.errors),
        succeeded=summary.successful,
        failed=len(failures),
    )
