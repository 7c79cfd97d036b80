"""
Formula discovery and loading.

Formulas are YAML, TOML or JSON files named after the package they
describe (mxp.yaml, mxp.toml, ...). They are searched for in the
configured formula paths first, then in the formulas bundled with
formulary.
"""

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from .config import expand_path
from .domain.descriptor import Descriptor
from .errors import DescriptorError, FormulaNotFoundError

logger = logging.getLogger(__name__)

BUNDLED_FORMULA_DIR = Path(__file__).parent / "formulas"

FORMULA_SUFFIXES = ('.yaml', '.yml', '.toml', '.json')


def formula_search_paths(config: Optional[Dict[str, Any]] = None) -> List[Path]:
    """Configured formula directories followed by the bundled ones."""
    configured = (config or {}).get('general', {}).get('formula_paths', []) or []
    if isinstance(configured, str):
        configured = [configured]
    return [expand_path(p) for p in configured] + [BUNDLED_FORMULA_DIR]


def find_formula(name: str, search_paths: Iterable[Path]) -> Path:
    """
    Locate the formula file for name.

    Raises:
        FormulaNotFoundError: No directory holds a formula for name
    """
    for directory in search_paths:
        for suffix in FORMULA_SUFFIXES:
            candidate = Path(directory) / f"{name}{suffix}"
            if candidate.is_file():
                return candidate
    raise FormulaNotFoundError(name)


def _parse(path: Path) -> Any:
    suffix = path.suffix.lower()
    if suffix == '.toml':
        with open(path, 'rb') as f:
            return tomllib.load(f)
    if suffix in ('.yaml', '.yml'):
        with open(path, 'r') as f:
            return yaml.safe_load(f)
    with open(path, 'r') as f:
        return json.load(f)


def load_formula(path: Path) -> Descriptor:
    """
    Parse a formula file into a Descriptor.

    A formula without a name takes it from the file name.

    Raises:
        DescriptorError: Unreadable file or invalid descriptor
    """
    path = Path(path)
    try:
        data = _parse(path)
    except (OSError, ValueError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise DescriptorError(f"cannot read formula {path}: {e}") from e

    if not isinstance(data, dict):
        raise DescriptorError(f"formula {path} must contain a mapping")
    data.setdefault('name', path.stem)
    if data['name'] != path.stem:
        logger.warning(f"Formula {path} declares name '{data['name']}'")

    descriptor = Descriptor.from_dict(data)
    logger.debug(f"Loaded formula {descriptor.name} {descriptor.version} from {path}")
    return descriptor


def get_formula(name: str, config: Optional[Dict[str, Any]] = None) -> Descriptor:
    """Find and load the formula for name."""
    return load_formula(find_formula(name, formula_search_paths(config)))


def list_formulas(search_paths: Iterable[Path]) -> Dict[str, Path]:
    """Available formula names mapped to their files; first occurrence wins."""
    found: Dict[str, Path] = {}
    for directory in search_paths:
        directory = Path(directory)
        if not directory.is_dir():
            continue
        for path in sorted(directory.iterdir()):
            if path.suffix.lower() in FORMULA_SUFFIXES and path.is_file():
                found.setdefault(path.stem, path)
    return dict(sorted(found.items()))
