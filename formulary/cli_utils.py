"""
Common CLI utilities and decorators for consistent command behavior.
"""

import json
import logging
import sys
import click
from functools import wraps
from typing import Any, Dict, Generator
from .config import load_config, configure_logging
from .progress import get_progress
from .exit_codes import (
    SUCCESS, INTERRUPTED,
    get_exit_code_for_exception, CommandError
)
from .format_utils import format_output, get_format_from_env, OUTPUT_FORMATS

logger = logging.getLogger(__name__)


def error_object(exc: Exception) -> Dict[str, Any]:
    """JSON error record for an exception; pipeline errors name their stage."""
    if hasattr(exc, 'to_dict'):
        return exc.to_dict()
    error_obj: Dict[str, Any] = {
        "error": str(exc),
        "type": type(exc).__name__,
        "exit_code": get_exit_code_for_exception(exc),
    }
    # Add extra fields for PartialSuccessError
    if hasattr(exc, 'succeeded'):
        error_obj['succeeded'] = exc.succeeded
        error_obj['failed'] = exc.failed
    return error_obj


def standard_command(func):
    """
    Decorator that provides standard CLI behavior:
    - Progress reporting on stderr
    - Clean JSONL output on stdout
    - Automatic --quiet handling to suppress data output
    - Consistent error handling: a JSON error object and a stage-specific exit code

    The wrapped command may return a generator, list, dict, or None
    (None means the command printed its own output).
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        verbose = kwargs.get('verbose', False)
        quiet = kwargs.get('quiet', False)
        output_format = kwargs.get('format', None) or get_format_from_env('jsonl')

        progress = get_progress(enabled=verbose or None)
        kwargs['progress'] = progress

        try:
            result = func(*args, **kwargs)

            if quiet:
                # In quiet mode, consume the generator but don't output
                if isinstance(result, Generator):
                    for _ in result:
                        pass
            elif result is None:
                pass
            elif isinstance(result, Generator):
                for line in format_output(result, output_format):
                    print(line, flush=True)
            elif isinstance(result, (list, tuple)):
                for line in format_output(iter(result), output_format):
                    print(line, flush=True)
            elif isinstance(result, dict):
                for line in format_output(iter([result]), output_format):
                    print(line, flush=True)
            else:
                print(result, flush=True)

            sys.exit(SUCCESS)

        except KeyboardInterrupt:
            progress.error("Interrupted by user")
            sys.exit(INTERRUPTED)
        except click.ClickException:
            # Click exceptions already have their exit code
            raise
        except CommandError as e:
            progress.error(str(e))
            if not quiet:
                print(json.dumps(error_object(e), ensure_ascii=False), flush=True)
            sys.exit(e.exit_code)
        except Exception as e:
            logger.debug("Command failed", exc_info=True)
            progress.error(f"Command failed: {e}")
            if not quiet:
                print(json.dumps(error_object(e), ensure_ascii=False), flush=True)
            sys.exit(get_exit_code_for_exception(e))

    return wrapper


# Standard options that many commands share
common_options = {
    'verbose': click.option('-v', '--verbose', is_flag=True,
                            help='Show progress and debug logging even when piped'),
    'quiet': click.option('-q', '--quiet', is_flag=True,
                          help='Suppress data output, show only progress'),
    'pretty': click.option('--pretty', is_flag=True,
                           help='Display as formatted tables instead of JSONL'),
    'prefix': click.option('--prefix', type=click.Path(file_okay=False),
                           help='Install prefix (default: general.prefix from config)'),
    'format': click.option('-f', '--format',
                           type=click.Choice(list(OUTPUT_FORMATS)),
                           help='Output format (default: jsonl, or from FORMULARY_FORMAT env)'),
}


def add_common_options(*option_names):
    """
    Decorator to add common options to a command.

    Example:
        @add_common_options('verbose', 'pretty')
        def my_command(verbose, pretty):
            ...
    """
    def decorator(func):
        for name in reversed(option_names):
            if name in common_options:
                func = common_options[name](func)
        return func
    return decorator


def command_config(verbose: bool = False) -> Dict[str, Any]:
    """Load configuration and apply its logging settings for a command run."""
    config = load_config()
    configure_logging(config, verbose)
    return config
