"""
Rendering functions for formulary output.

This module handles all pretty-printing and table formatting.
Commands produce dicts; this module makes them human-readable.
"""

from rich.table import Table
from rich.console import Console
from rich.panel import Panel
from rich import box
from typing import List, Dict, Any, Optional

console = Console()
err_console = Console(stderr=True)

OUTCOME_STYLES = {
    'verified': 'green',
    'installed': 'green',
    'installed_unverified': 'yellow',
    'failed': 'red',
    'incomplete': 'red',
}


def render_table(headers: List[str], rows: List[List[Any]], title: Optional[str] = None) -> None:
    """
    Render a generic table with the given headers and rows.

    Args:
        headers: List of column headers
        rows: List of rows, where each row is a list of values
        title: Optional table title
    """
    if not rows:
        console.print("[yellow]No data to display.[/yellow]")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )
    for header in headers:
        table.add_column(header)
    for row in rows:
        table.add_row(*["" if val is None else str(val) for val in row])

    console.print(table)


def render_install_results(results: List[Dict[str, Any]], summary: Optional[Dict[str, Any]] = None) -> None:
    """Render per-package pipeline results and the batch summary."""
    if not results:
        console.print("[yellow]Nothing installed.[/yellow]")
        return

    table = Table(title="Install", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Package", style="cyan")
    table.add_column("Version")
    table.add_column("Revision")
    table.add_column("Pinned")
    table.add_column("Outcome")
    table.add_column("Detail")

    for result in results:
        artifact = result.get('artifact') or {}
        outcome = result.get('outcome', '')
        style = OUTCOME_STYLES.get(outcome, 'white')
        detail = ""
        if result.get('stage'):
            detail = f"{result['stage']}: {result.get('error', '')}"
        table.add_row(
            result.get('name', ''),
            result.get('version', ''),
            (artifact.get('revision') or '')[:12],
            "yes" if artifact.get('pinned') else "no" if artifact else "",
            f"[{style}]{outcome}[/{style}]",
            detail,
        )

    console.print(table)

    if summary:
        console.print(
            f"[bold]{summary['successful']}[/bold] of {summary['total']} succeeded"
            f", {summary['unverified']} unverified, {summary['failed']} failed"
        )


def render_caveats(name: str, caveats: str) -> None:
    """Show a package's caveats in a panel on stderr."""
    err_console.print(Panel(caveats.strip(), title=f"{name} caveats", border_style="yellow"))


def render_descriptor(info: Dict[str, Any]) -> None:
    """Render one formula as a two-column table plus its caveats."""
    table = Table(title=info['name'], box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    source = info.get('source', {})
    table.add_row("Version", info.get('version', ''))
    table.add_row("Description", info.get('description') or '')
    if info.get('homepage'):
        table.add_row("Homepage", info['homepage'])
    if info.get('license'):
        table.add_row("License", info['license'])
    table.add_row("Source", _describe_source(source))
    if info.get('head'):
        table.add_row("Head", _describe_source(info['head']))
    table.add_row("Dependencies", ", ".join(info.get('dependencies', [])) or "none")
    binaries = [b if isinstance(b, str) else f"{b['source']} -> {b['target']}"
                for b in info.get('binaries', [])]
    table.add_row("Binaries", ", ".join(binaries))
    test = info.get('test')
    if test:
        table.add_row("Test", f"{' '.join(test['args'])}  =>  {test['expect']}")

    console.print(table)
    if info.get('caveats'):
        console.print(Panel(info['caveats'].strip(), title="Caveats", border_style="yellow"))


def _describe_source(source: Dict[str, Any]) -> str:
    for key in ('tag', 'branch', 'revision', 'sha256'):
        if source.get(key):
            return f"{source['url']} ({key} {source[key]})"
    return source.get('url', '')


def render_installed_table(receipts: List[Dict[str, Any]]) -> None:
    """Render the installed packages of a prefix."""
    if not receipts:
        console.print("[yellow]No packages installed.[/yellow]")
        return

    table = Table(title="Installed", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Package", style="cyan")
    table.add_column("Version")
    table.add_column("Revision")
    table.add_column("Pinned")
    table.add_column("Files")
    table.add_column("Installed")

    for receipt in receipts:
        table.add_row(
            receipt.get('name', ''),
            receipt.get('version', ''),
            (receipt.get('revision') or '')[:12],
            "yes" if receipt.get('pinned') else "[yellow]no[/yellow]",
            str(len(receipt.get('files', []))),
            (receipt.get('installed_at') or '')[:19],
        )

    console.print(table)


def render_config(config: Dict[str, Any]) -> None:
    """Render configuration as one table per section."""
    for section, values in config.items():
        if not isinstance(values, dict):
            render_table(["Key", "Value"], [[section, values]])
            continue
        rows = [[key, ", ".join(map(str, value)) if isinstance(value, list) else value]
                for key, value in values.items()]
        render_table(["Key", "Value"], rows, title=section)
