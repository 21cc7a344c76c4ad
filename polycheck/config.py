"""
Layered YAML configuration of polycheck.

A configuration file is looked up in a fixed list of directories: the
defaults shipped with the package, then /etc/polycheck, then the user's
configuration directory.  The packaged file must exist and every later
layer found is merged into it, key by key, so that a local file only has
to name what it changes.
"""
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml


class ConfigError(Exception):
    pass


def load_config(configuration_file: str, priority_dirs: list[Path] = []) -> dict:
    """Load a configuration file, e.g. "languages.yaml", from all layers.

    Args:
        configuration_file (str): file name, relative to the configuration
            directories.
        priority_dirs (list): extra directories, merged in last.

    Raises:
        ConfigError if the packaged layer is missing, or a layer is not
        a YAML mapping.
    """
    layers = [__read_layer(Path(dirname) / configuration_file)
              for dirname in __config_file_paths() + list(priority_dirs)]
    if layers[0] is None:
        raise ConfigError(f'Base configuration file {configuration_file} not found in {__config_file_paths()[0]}')

    merged = layers[0]
    for layer in layers[1:]:
        if layer is not None:
            __merge(merged, layer)
    return merged


def default_limits() -> dict[str, Any]:
    """The tooling budgets used for a problem package whose problem.yaml
    does not override them."""
    limits = load_config('problem.yaml').get('limits')
    if not isinstance(limits, Mapping):
        raise ConfigError(f'problem.yaml: limits must be a mapping, got {type(limits).__name__}')
    return dict(limits)


def __read_layer(path: Path) -> dict | None:
    if not path.is_file():
        return None
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f'Config file {path}: failed to parse: {err}')
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f'Config file {path}: expected a mapping, got {type(data).__name__}')
    return data


def __config_file_paths() -> list[Path]:
    """Configuration directories, lowest priority first."""
    user_dir = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))
    return [
        Path(__file__).parent / 'config',
        Path('/etc/polycheck'),
        user_dir / 'polycheck',
    ]


def __merge(base: dict, layer: Mapping) -> None:
    """Merge layer into base in place.  Mappings present on both sides are
    merged recursively, anything else in layer replaces the value in base."""
    for key, value in layer.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            __merge(current, value)
        else:
            base[key] = value
