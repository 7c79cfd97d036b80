import click
import os
from pathlib import Path

from ..cli_utils import standard_command, add_common_options
from ..config import load_config, get_config_path, get_default_config, save_config


@click.group("config")
def config_cmd():
    """Configuration management commands."""
    pass


@config_cmd.command("show")
@click.option("--path", is_flag=True, help="Show the config file path being used")
@add_common_options('pretty')
@standard_command
def show_config(path, pretty, progress):
    """Show the current configuration with all merges applied.

    By default, outputs single-line JSON (JSONL format).
    Use --pretty for tables.
    Use --path to see which config file is being used.
    """
    if path:
        return {"config_path": str(get_config_path())}

    config = load_config()
    if pretty:
        from ..render import render_config
        render_config(config)
        return None
    return config


@config_cmd.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing configuration file")
@standard_command
def init_config(force, progress):
    """Write the default configuration to the config file location.

    Writes to $FORMULARY_CONFIG when set, else ~/.formulary/config.json.
    """
    if os.environ.get("FORMULARY_CONFIG"):
        config_path = Path(os.environ["FORMULARY_CONFIG"])
    else:
        config_path = get_config_path()
    if config_path.exists() and not force:
        raise click.ClickException(f"Configuration already exists at {config_path} (use --force to overwrite)")
    written = save_config(get_default_config(), config_path)
    progress(f"Configuration written to {written}")
    return {"config_path": str(written)}
